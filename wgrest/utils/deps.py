#!/usr/bin/env python3
#
# wgrest/utils/deps.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""FastAPI dependency helpers."""

from __future__ import annotations

from fastapi import Request

from ..services.devices import DeviceService
from ..services.peers import PeerService
from .config import Config


def get_config(request: Request) -> Config:
	"""Get the application configuration from app state."""
	return request.app.state.cfg


def get_device_service(request: Request) -> DeviceService:
	return request.app.state.devices


def get_peer_service(request: Request) -> PeerService:
	return request.app.state.peers
