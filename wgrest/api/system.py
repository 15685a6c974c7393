#!/usr/bin/env python3
#
# wgrest/api/system.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Version endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Request

from ..utils.version import APP_VERSION
from ..wireguard.process import wg_version

router = APIRouter(tags=["system"])

__all__ = ["router"]


@router.get("/version")
async def version(request: Request):
	"""wgrest and wireguard-tools versions."""
	return {
		"wgrest": APP_VERSION,
		"wireguard": await wg_version(request.app.state.runner),
	}

