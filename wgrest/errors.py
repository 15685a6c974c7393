#!/usr/bin/env python3
#
# wgrest/errors.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Error taxonomy shared by the engine and the HTTP layer.

Every error carries a stable machine-readable ``code`` and the HTTP status
the API maps it to, so callers can tell "needs root" from "tool hung" from
"tool rejected input" without parsing messages.
"""

from __future__ import annotations

__all__ = [
	"WgRestError",
	"NotFoundError",
	"DeviceNotFoundError",
	"PeerNotFoundError",
	"ConfigNotFoundError",
	"ValidationError",
	"ConflictError",
	"ExternalToolError",
	"ToolTimeoutError",
	"PermissionRequiredError",
	"StorageError",
	"ControlPlaneError",
	"UnauthorizedError",
]


class WgRestError(Exception):
	"""Base class for all typed outcomes surfaced to callers."""
	code = "internal_error"
	status_code = 500

	def __init__(self, message: str, *, detail: str | None = None) -> None:
		super().__init__(message)
		self.message = message
		self.detail = detail

	def to_dict(self) -> dict[str, str]:
		payload = {"code": self.code, "message": self.message}
		if self.detail:
			payload["detail"] = self.detail
		return payload


class NotFoundError(WgRestError):
	code = "not_found"
	status_code = 404


class DeviceNotFoundError(NotFoundError):
	code = "device_not_found"

	def __init__(self, name: str) -> None:
		super().__init__(f"device not found: {name}")
		self.name = name


class PeerNotFoundError(NotFoundError):
	code = "peer_not_found"

	def __init__(self, public_key: str) -> None:
		super().__init__(f"peer not found: {public_key}")
		self.public_key = public_key


class ConfigNotFoundError(NotFoundError):
	code = "config_not_found"

	def __init__(self, name: str) -> None:
		super().__init__(f"config not found: {name}")
		self.name = name


class ValidationError(WgRestError):
	"""Malformed request input. ``field`` names the offending field."""
	code = "invalid_request"
	status_code = 400

	def __init__(self, field: str, message: str) -> None:
		super().__init__(f"{field}: {message}", detail=field)
		self.field = field


class ConflictError(WgRestError):
	code = "device_exists"
	status_code = 409

	def __init__(self, message: str, *, code: str | None = None) -> None:
		super().__init__(message)
		if code:
			self.code = code


class ExternalToolError(WgRestError):
	"""An external command (wg, wg-quick) failed."""
	code = "external_tool_error"
	status_code = 502

	def __init__(self, command: str, message: str) -> None:
		super().__init__(f"{command}: {message}")
		self.command = command


class ToolTimeoutError(ExternalToolError):
	code = "external_tool_timeout"
	status_code = 504


class PermissionRequiredError(ExternalToolError):
	code = "permission_required"
	status_code = 403


class StorageError(WgRestError):
	"""Filesystem I/O failure while loading or saving state."""
	code = "storage_error"
	status_code = 500


class ControlPlaneError(WgRestError):
	"""Control-plane call failure not otherwise classified."""
	code = "internal_error"
	status_code = 500


class UnauthorizedError(WgRestError):
	code = "unauthorized"
	status_code = 401
