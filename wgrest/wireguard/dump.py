#!/usr/bin/env python3
#
# wgrest/wireguard/dump.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Periodic persistence of live device state into wg-quick files.

Every pass snapshots each running device with `wg showconf`, folds the
wg-quick only options of the existing file back in, and saves the result
atomically. A failing device is logged and skipped; the rest of the pass
continues.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..errors import ConfigNotFoundError, WgRestError
from ..utils.scheduler import Scheduler
from .codec import merge_interface_options
from .control import ControlPlane
from .process import Runner, run_command, wg_showconf
from .store import ConfigStore

__all__ = ["DumpResult", "ConfigDumpService", "DUMP_JOB_NAME"]

DUMP_JOB_NAME = "config-dump"


@dataclass
class DumpResult:
	"""Result of one dump pass."""
	succeeded: list[str] = field(default_factory=list)
	failed: dict[str, str] = field(default_factory=dict)  # device name → error


class ConfigDumpService:
	"""Snapshots running devices into the config store."""

	def __init__(
		self,
		control: ControlPlane,
		store: ConfigStore,
		runner: Runner = run_command,
		logger: logging.Logger | None = None,
	) -> None:
		self._control = control
		self._store = store
		self._run = runner
		self._log = logger or logging.getLogger(__name__)

	async def snapshot(self, name: str) -> None:
		"""Persist the current live configuration of one device.

		Raises:
			ExternalToolError: If `wg showconf` fails.
			StorageError: If the file cannot be written.
		"""
		text = await wg_showconf(name, self._run)
		try:
			existing = self._store.load(name)
		except ConfigNotFoundError:
			existing = None
		self._store.save_raw(name, merge_interface_options(text, existing).encode("utf-8"))

	async def save_all(self) -> DumpResult:
		"""Snapshot every running device, best effort.

		Raises:
			WgRestError: If the running devices cannot be listed.
		"""
		result = DumpResult()
		for live in await self._control.list_devices():
			name = live.device.name
			try:
				await self.snapshot(name)
			except WgRestError as exc:
				self._log.warning("DUMP_FAILED name=%s error=%s", name, exc)
				result.failed[name] = str(exc)
			else:
				result.succeeded.append(name)
		self._log.info("DUMP_PASS saved=%d failed=%d", len(result.succeeded), len(result.failed))
		return result

	async def _job(self) -> None:
		await self.save_all()

	def register(self, scheduler: Scheduler, interval_seconds: float) -> None:
		"""Run a pass at startup, every ``interval_seconds``, and once more on shutdown."""
		scheduler.add(
			DUMP_JOB_NAME,
			interval_seconds=interval_seconds,
			func=self._job,
			run_on_start=True,
			run_on_stop=True,
		)
