#!/usr/bin/env python3
#
# wgrest/__init__.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""wgrest: WireGuard configuration REST API."""

from .main import create_app

__all__ = ["create_app"]
