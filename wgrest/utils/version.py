#!/usr/bin/env python3
#
# wgrest/utils/version.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Version information for wgrest."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

APP_NAME = "wgrest"

__all__ = ["APP_NAME", "APP_VERSION", "get_version"]


def get_version() -> str:
	"""Installed package version. Falls back to 'dev' for source checkouts."""
	try:
		return version(APP_NAME)
	except PackageNotFoundError:
		return "dev"


APP_VERSION = get_version()
