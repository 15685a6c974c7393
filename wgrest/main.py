#!/usr/bin/env python3
#
# wgrest/main.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""FastAPI application factory and startup lifecycle wiring."""

from __future__ import annotations

import logging
import os
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI, Request

from .api import devices as devices_api
from .api import peers as peers_api
from .api import system as system_api
from .api.auth import require_token
from .api.response import error_response
from .errors import WgRestError
from .services.devices import DeviceService
from .services.peers import PeerService
from .utils.config import Config, load_config
from .utils.scheduler import Scheduler
from .utils.version import APP_VERSION
from .wireguard.control import ControlPlane, WgControlPlane
from .wireguard.dump import ConfigDumpService
from .wireguard.process import Runner, run_command
from .wireguard.secrets import PeerSecretStore
from .wireguard.store import ConfigStore, StorageBackend

_log = logging.getLogger(__name__)

__all__ = ["create_app", "setup_logging", "run"]

# ANSI color codes for log levels (if TTY)
_LOG_COLORS = {
	"DEBUG": "\033[36m",    # Cyan
	"INFO": "\033[32m",     # Green
	"WARNING": "\033[33m",  # Yellow
	"ERROR": "\033[31m",    # Red
	"CRITICAL": "\033[35m", # Magenta
}
_RESET = "\033[0m"
_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_SHUTDOWN_TIMEOUT_SECONDS = 30.0

# Uvicorn logging dict-config that reuses the same format as the app
_UVICORN_LOG_CONFIG: dict = {
	"version": 1,
	"disable_existing_loggers": False,
	"formatters": {
		"default": {
			"format": _LOG_FORMAT,
			"datefmt": _DATE_FORMAT,
		},
		"access": {
			"format": _LOG_FORMAT,
			"datefmt": _DATE_FORMAT,
		},
	},
	"handlers": {
		"default": {
			"formatter": "default",
			"class": "logging.StreamHandler",
			"stream": "ext://sys.stderr",
		},
		"access": {
			"formatter": "access",
			"class": "logging.StreamHandler",
			"stream": "ext://sys.stdout",
		},
	},
	"loggers": {
		"uvicorn": {"handlers": ["default"], "level": "INFO", "propagate": False},
		"uvicorn.error": {"level": "INFO"},
		"uvicorn.access": {"handlers": ["access"], "level": "INFO", "propagate": False},
	},
}


class _ColoredFormatter(logging.Formatter):
	"""Custom formatter that adds color to log levels in TTY."""

	def format(self, record):
		orig_levelname = record.levelname
		if orig_levelname in _LOG_COLORS:
			record.levelname = f"{_LOG_COLORS[orig_levelname]}{orig_levelname:<8}{_RESET}"
		else:
			record.levelname = f"{orig_levelname:<8}"
		try:
			return super().format(record)
		finally:
			record.levelname = orig_levelname


def setup_logging(log_level: str) -> None:
	"""Configure unified logging for the entire application."""
	level = getattr(logging, log_level.upper(), logging.INFO)

	if sys.stdout.isatty():
		formatter: logging.Formatter = _ColoredFormatter(
			fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
			datefmt=_DATE_FORMAT,
		)
	else:
		formatter = logging.Formatter(fmt=_LOG_FORMAT, datefmt=_DATE_FORMAT)

	# force=True drops handlers installed earlier (e.g. by uvicorn)
	logging.basicConfig(
		level=level,
		handlers=[logging.StreamHandler(sys.stdout)],
		force=True,
	)
	for handler in logging.root.handlers:
		handler.setFormatter(formatter)

	for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
		logger = logging.getLogger(name)
		logger.handlers.clear()
		logger.setLevel(level)
		logger.propagate = True

	for name in ("httpcore", "httpx", "watchfiles"):
		logging.getLogger(name).setLevel(logging.WARNING)


@asynccontextmanager
async def _lifespan(app: FastAPI):
	"""Start the periodic config dump; flush one last pass on shutdown."""
	cfg: Config = app.state.cfg
	scheduler = Scheduler()
	app.state.dump.register(scheduler, cfg.dump_interval)
	await scheduler.start()
	app.state.scheduler = scheduler
	_log.info(
		"WGREST_STARTED version=%s config_dirs=%s dump_interval=%.0fs pid=%d",
		APP_VERSION,
		",".join(str(d) for d in cfg.config_dirs),
		cfg.dump_interval,
		os.getpid(),
	)

	yield

	await scheduler.stop_graceful(timeout=_SHUTDOWN_TIMEOUT_SECONDS)
	_log.info("WGREST_STOPPED")


async def _handle_wgrest_error(request: Request, exc: WgRestError):
	if exc.status_code >= 500:
		_log.error("REQUEST_FAILED path=%s code=%s error=%s", request.url.path, exc.code, exc)
	return error_response(exc)


def create_app(
	cfg: Config | None = None,
	*,
	control: ControlPlane | None = None,
	runner: Runner | None = None,
	backend: StorageBackend | None = None,
) -> FastAPI:
	"""Application factory for wgrest.

	Without arguments the configuration is read from the environment and the
	real ``wg`` tools are used; tests pass fakes for the control plane, the
	process runner and the storage backend.
	"""
	if cfg is None:
		cfg = load_config()
		setup_logging(cfg.log_level)

	runner = runner or run_command
	control = control or WgControlPlane(runner=runner)
	store = ConfigStore(cfg.config_dirs, backend=backend)
	secrets = PeerSecretStore(cfg.peers_dir, backend=backend, pepper=cfg.secret_key)
	dump = ConfigDumpService(control, store, runner=runner)

	app = FastAPI(
		title="wgrest",
		description="WireGuard configuration REST API",
		version=APP_VERSION,
		lifespan=_lifespan,
	)

	app.state.cfg = cfg
	app.state.runner = runner
	app.state.store = store
	app.state.dump = dump
	app.state.devices = DeviceService(control, store, runner=runner)
	app.state.peers = PeerService(control, secrets, dump, store)

	app.add_exception_handler(WgRestError, _handle_wgrest_error)

	guarded = [Depends(require_token)]
	app.include_router(devices_api.router, prefix="/v1", dependencies=guarded)
	app.include_router(peers_api.router, prefix="/v1", dependencies=guarded)
	app.include_router(system_api.router)

	return app


def run() -> None:
	"""Console entry point: serve the API with uvicorn."""
	cfg = load_config()

	level = cfg.log_level.upper()
	for logger in _UVICORN_LOG_CONFIG["loggers"].values():
		logger["level"] = level

	uvicorn.run(
		"wgrest.main:create_app",
		host=cfg.host,
		port=cfg.port,
		reload=os.environ.get("WGREST_DEV_RELOAD", "").lower() in ("1", "true", "yes"),
		factory=True,
		log_config=_UVICORN_LOG_CONFIG,
	)
