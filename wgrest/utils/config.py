#!/usr/bin/env python3
#
# wgrest/utils/config.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Configuration loading and app-level defaults."""

from __future__ import annotations

import logging
import os
import sys
import threading
from dataclasses import dataclass
from pathlib import Path

from .network import parse_duration

_log = logging.getLogger(__name__)


class ConfigValidationError(Exception):
	"""Raised when critical configuration is missing or invalid."""


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000
DEFAULT_DUMP_INTERVAL = "10m"
DEFAULT_DATA_DIR = Path("/var/lib/wgrest")

# Homebrew and ports install wireguard-tools under their own prefixes
_PLATFORM_CONFIG_DIRS = {
	"darwin": ("/etc/wireguard", "/usr/local/etc/wireguard", "/opt/homebrew/etc/wireguard"),
	"freebsd": ("/etc/wireguard", "/usr/local/etc/wireguard"),
	"openbsd": ("/etc/wireguard", "/usr/local/etc/wireguard"),
}


def default_config_dirs(platform: str | None = None) -> list[Path]:
	"""Config search path for the current (or given) platform."""
	platform = platform or sys.platform
	for prefix, dirs in _PLATFORM_CONFIG_DIRS.items():
		if platform.startswith(prefix):
			return [Path(d) for d in dirs]
	return [Path("/etc/wireguard")]


@dataclass(frozen=True)
class Config:
	"""Resolved runtime configuration derived from env and defaults."""
	config_dirs: tuple[Path, ...]
	data_dir: Path
	host: str = DEFAULT_HOST
	port: int = DEFAULT_PORT
	dump_interval: float = 600.0
	static_auth_token: str = ""
	secret_key: str = ""
	log_level: str = "INFO"

	@property
	def peers_dir(self) -> Path:
		"""Directory of the peer private-key store."""
		return self.data_dir / "peers"


def _parse_value(raw: str) -> str:
	"""Extract value, respecting quotes and stripping inline comments."""
	raw = raw.strip()
	if raw and raw[0] in ('"', "'"):
		quote = raw[0]
		end = raw.find(quote, 1)
		if end != -1:
			return raw[1:end]
	if " #" in raw:
		raw = raw.split(" #", 1)[0]
	return raw.strip()


def load_dotenv(dotenv_path: Path | None = None) -> None:
	"""Load simple KEY=VALUE pairs from settings.env.

	Behavior:
	- Ignores blank lines and comments (# ...)
	- Handles `export KEY=VALUE` syntax
	- Respects quoted values (doesn't strip # inside quotes)
	- Does not override already-set environment variables
	"""
	if dotenv_path is None:
		dotenv_path = Path(os.getenv("WGREST_SETTINGS_FILE", "settings.env"))
	if not dotenv_path.is_file():
		return
	for raw_line in dotenv_path.read_text(encoding="utf-8").splitlines():
		line = raw_line.strip()
		if not line or line.startswith("#"):
			continue
		if "=" not in line:
			continue
		key, value = line.split("=", 1)
		key = key.strip()
		if key.startswith("export "):
			key = key[7:].strip()
		if not key:
			continue
		os.environ.setdefault(key, _parse_value(value))


def _parse_config_dirs(raw: str) -> list[Path]:
	dirs: list[Path] = []
	for item in raw.replace(os.pathsep, ",").split(","):
		item = item.strip()
		if item:
			dirs.append(Path(item))
	return dirs


def load_config(dotenv_path: Path | None = None) -> Config:
	"""Load configuration from environment variables (optionally via settings.env).

	Raises:
		ConfigValidationError: On invalid values.
	"""
	load_dotenv(dotenv_path)

	raw_dirs = os.getenv("WGREST_CONFIG_DIR", "")
	config_dirs = _parse_config_dirs(raw_dirs) if raw_dirs.strip() else default_config_dirs()
	if not config_dirs:
		raise ConfigValidationError("WGREST_CONFIG_DIR must name at least one directory")

	host = os.getenv("WGREST_HOST", DEFAULT_HOST).strip() or DEFAULT_HOST
	port_raw = os.getenv("WGREST_PORT", str(DEFAULT_PORT)).strip()
	try:
		port = int(port_raw)
	except ValueError:
		raise ConfigValidationError(f"WGREST_PORT is not a number: {port_raw!r}") from None
	if not 1 <= port <= 65535:
		raise ConfigValidationError(f"WGREST_PORT out of range: {port}")

	interval_raw = os.getenv("WGREST_DUMP_INTERVAL", DEFAULT_DUMP_INTERVAL)
	try:
		dump_interval = parse_duration(interval_raw)
	except ValueError as exc:
		raise ConfigValidationError(f"WGREST_DUMP_INTERVAL: {exc}") from exc
	if dump_interval < 1:
		raise ConfigValidationError(f"WGREST_DUMP_INTERVAL must be at least 1s, got {interval_raw!r}")

	data_dir = Path(os.getenv("WGREST_DATA_DIR", str(DEFAULT_DATA_DIR))).expanduser()

	allowed_levels = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
	log_level = os.getenv("LOG_LEVEL", "INFO").upper()
	if log_level not in allowed_levels:
		log_level = "INFO"

	static_auth_token = os.getenv("WGREST_STATIC_AUTH_TOKEN", "").strip()
	if not static_auth_token:
		_log.warning("WGREST_STATIC_AUTH_TOKEN is not set, the API is unauthenticated")

	return Config(
		config_dirs=tuple(config_dirs),
		data_dir=data_dir,
		host=host,
		port=port,
		dump_interval=dump_interval,
		static_auth_token=static_auth_token,
		secret_key=os.getenv("WGREST_SECRET_KEY", ""),
		log_level=log_level,
	)


# Global config singleton with thread-safe lazy initialization
_config: Config | None = None
_config_lock = threading.Lock()


def get_config() -> Config:
	"""Get the global config singleton (thread-safe)."""
	global _config
	if _config is None:
		with _config_lock:
			if _config is None:  # Double-checked locking
				_config = load_config()
	return _config


def reset_config() -> None:
	"""Reset the cached config. Intended for tests only."""
	global _config
	with _config_lock:
		_config = None
