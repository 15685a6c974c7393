#!/usr/bin/env python3
#
# wgrest/api/auth.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Static bearer-token authentication."""

from __future__ import annotations

import logging
import secrets
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..errors import UnauthorizedError
from ..utils.config import Config
from ..utils.deps import get_config

_log = logging.getLogger(__name__)

__all__ = ["require_token"]

_security = HTTPBearer(auto_error=False)


def require_token(
	request: Request,
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_security),
	cfg: Config = Depends(get_config),
) -> None:
	"""Reject requests without the configured bearer token.

	No token configured means authentication is disabled.
	"""
	expected = cfg.static_auth_token
	if not expected:
		return
	if credentials is None:
		raise UnauthorizedError("missing authorization header")
	if not secrets.compare_digest(credentials.credentials.encode("utf-8"), expected.encode("utf-8")):
		client = request.client.host if request.client else "unknown"
		_log.info("AUTH_FAILED ip=%s path=%s", client, request.url.path)
		raise UnauthorizedError("invalid token")
