#!/usr/bin/env python3
#
# wgrest/utils/scheduler.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Lightweight async background scheduler for periodic tasks."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, TypedDict

_log = logging.getLogger(__name__)

__all__ = ["Scheduler", "JobStatus"]

# Minimum allowed interval to prevent CPU-pinning tight loops
_MIN_INTERVAL = 1.0

_MAX_BACKOFF = 300.0


class JobStatus(TypedDict):
	"""Status information for a scheduled job."""
	name: str
	interval_seconds: float
	last_success: str | None
	last_attempt: str | None
	is_running: bool
	run_count: int
	fail_count: int


@dataclass
class _Job:
	"""A scheduled repeating job (internal implementation detail)."""
	name: str
	interval_seconds: float
	func: Callable[[], Awaitable[None]]
	run_on_start: bool = False
	run_on_stop: bool = False
	timeout: float | None = None
	last_success: datetime | None = None
	last_attempt: datetime | None = None
	run_count: int = 0
	fail_count: int = 0


class Scheduler:
	"""Simple async scheduler that runs jobs at fixed intervals.

	Usage::

		scheduler = Scheduler()
		scheduler.add("config-dump", 600, dump_all, run_on_start=True, run_on_stop=True)

		# In lifespan:
		await scheduler.start()
		await scheduler.stop_graceful()

	The stop signal is only checked between executions: a running job is
	never interrupted by it. Jobs with ``run_on_stop`` execute one final
	time after the signal, before their task returns.
	"""

	def __init__(self, logger: logging.Logger | None = None) -> None:
		self._jobs: dict[str, _Job] = {}
		self._tasks: dict[str, asyncio.Task] = {}
		self._stop_event: asyncio.Event | None = None
		self._started = False
		self._log = logger or _log

	@property
	def running(self) -> bool:
		return self._started

	def add(
		self,
		name: str,
		interval_seconds: float,
		func: Callable[[], Awaitable[None]],
		*,
		run_on_start: bool = False,
		run_on_stop: bool = False,
		timeout: float | None = None,
	) -> None:
		"""Register a periodic job.

		Args:
			name: Unique identifier for the job
			interval_seconds: Seconds between executions (minimum 1.0)
			func: Async callable to execute
			run_on_start: Execute once immediately on start
			run_on_stop: Execute once more after the stop signal
			timeout: Per-execution timeout in seconds (None = no limit)

		Raises:
			RuntimeError: If scheduler is already running
			ValueError: If name is duplicate or interval is invalid
		"""
		if self._started:
			raise RuntimeError(f"Cannot add job {name!r} while scheduler is running")
		if name in self._jobs:
			raise ValueError(f"Job {name!r} is already registered")
		if interval_seconds < _MIN_INTERVAL:
			raise ValueError(f"interval_seconds must be ≥ {_MIN_INTERVAL}, got {interval_seconds}")

		self._jobs[name] = _Job(
			name=name,
			interval_seconds=interval_seconds,
			func=func,
			run_on_start=run_on_start,
			run_on_stop=run_on_stop,
			timeout=timeout,
		)

	async def start(self) -> None:
		"""Start all registered jobs as background tasks."""
		if self._started:
			return

		self._started = True
		self._stop_event = asyncio.Event()

		for job in self._jobs.values():
			self._tasks[job.name] = asyncio.create_task(self._run_loop(job))
			self._log.info("SCHEDULER job=%s interval=%ds started", job.name, job.interval_seconds)

	async def stop_graceful(self, timeout: float = 5.0) -> None:
		"""Gracefully stop all jobs, waiting up to timeout for clean exit.

		Phase 1: Set stop event and wait for tasks (including final runs) to finish.
		Phase 2: Cancel any stubborn tasks that didn't stop in time.
		"""
		if not self._started:
			return

		self._started = False
		if self._stop_event is not None:
			self._stop_event.set()

		pending = [t for t in self._tasks.values() if not t.done()]
		if pending:
			self._log.info("SCHEDULER waiting for %d tasks to finish gracefully", len(pending))
			_, not_done = await asyncio.wait(pending, timeout=timeout)

			if not_done:
				self._log.warning("SCHEDULER %d tasks did not stop gracefully, forcing cancel", len(not_done))
				for task in not_done:
					task.cancel()
				# Await cancelled tasks to prevent 'Task was destroyed' warnings
				await asyncio.gather(*not_done, return_exceptions=True)

		self._tasks.clear()
		self._log.info("SCHEDULER stopped")

	def _backoff(self, job: _Job, failures: int) -> float:
		backoff = min(2 ** failures, _MAX_BACKOFF)
		self._log.error(
			"SCHEDULER job=%s failed (%d consecutive), backing off %.0fs",
			job.name, failures, backoff,
		)
		return backoff

	async def _run_loop(self, job: _Job) -> None:
		"""Internal loop that executes a job at its interval with retry/backoff."""
		assert self._stop_event is not None, "Bug: _run_loop called without start()"
		stop_event = self._stop_event
		loop = asyncio.get_running_loop()

		consecutive_failures = 0
		next_run = loop.time() + job.interval_seconds

		try:
			if job.run_on_start and not stop_event.is_set():
				if await self._execute(job):
					next_run = loop.time() + job.interval_seconds
				else:
					consecutive_failures += 1
					next_run = max(next_run, loop.time() + self._backoff(job, consecutive_failures))

			while not stop_event.is_set():
				delay = max(0.0, next_run - loop.time())
				try:
					await asyncio.wait_for(stop_event.wait(), timeout=delay)
					break
				except asyncio.TimeoutError:
					pass

				success = await self._execute(job)
				now = loop.time()
				if success:
					consecutive_failures = 0
					# Skip any missed intervals (prevents burst execution after long jobs)
					if next_run <= now:
						skipped = int((now - next_run) / job.interval_seconds)
						next_run += (skipped + 1) * job.interval_seconds
						if skipped > 0:
							self._log.warning("SCHEDULER job=%s skipped %d intervals", job.name, skipped)
					else:
						next_run += job.interval_seconds
				else:
					consecutive_failures += 1
					backoff_until = now + self._backoff(job, consecutive_failures)
					while next_run < backoff_until:
						next_run += job.interval_seconds

			if job.run_on_stop:
				self._log.info("SCHEDULER job=%s final run before shutdown", job.name)
				await self._execute(job)

		except asyncio.CancelledError:
			self._log.debug("SCHEDULER job=%s cancelled", job.name)
		except Exception:
			self._log.exception("SCHEDULER job=%s fatal error in run loop", job.name)

	async def _execute(self, job: _Job) -> bool:
		"""Execute a single job with error handling and optional timeout.

		Returns:
			True if execution succeeded, False if it failed or timed out
		"""
		try:
			self._log.debug("SCHEDULER job=%s executing", job.name)
			if job.timeout is not None:
				await asyncio.wait_for(job.func(), timeout=job.timeout)
			else:
				await job.func()

			now = datetime.now(timezone.utc)
			job.last_success = now
			job.last_attempt = now
			job.run_count += 1
			self._log.info("SCHEDULER job=%s completed (run #%d)", job.name, job.run_count)
			return True
		except asyncio.TimeoutError:
			job.last_attempt = datetime.now(timezone.utc)
			job.fail_count += 1
			self._log.error("SCHEDULER job=%s timed out after %.1fs (fail #%d)", job.name, job.timeout, job.fail_count)
			return False
		except Exception:
			job.last_attempt = datetime.now(timezone.utc)
			job.fail_count += 1
			self._log.exception("SCHEDULER job=%s failed (fail #%d)", job.name, job.fail_count)
			return False

	def get_status(self) -> list[JobStatus]:
		"""Return status of all jobs (for monitoring/API)."""
		return [
			{
				"name": job.name,
				"interval_seconds": job.interval_seconds,
				"last_success": job.last_success.isoformat() if job.last_success else None,
				"last_attempt": job.last_attempt.isoformat() if job.last_attempt else None,
				"is_running": job.name in self._tasks and not self._tasks[job.name].done(),
				"run_count": job.run_count,
				"fail_count": job.fail_count,
			}
			for job in self._jobs.values()
		]
