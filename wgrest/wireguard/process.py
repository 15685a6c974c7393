#!/usr/bin/env python3
#
# wgrest/wireguard/process.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""External process execution for `wg` and `wg-quick`.

Everything that spawns a process goes through a ``Runner`` callable so
tests can substitute a fake that records arguments and returns canned
results.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Literal, Mapping, Protocol

from ..errors import ExternalToolError, PermissionRequiredError, ToolTimeoutError

_log = logging.getLogger(__name__)

__all__ = [
	"CommandResult",
	"Runner",
	"run_command",
	"wg_quick",
	"wg_showconf",
	"wg_version",
	"WG_COMMAND_TIMEOUT",
	"WG_QUICK_TIMEOUT",
]

# Timeout for wg commands (seconds)
WG_COMMAND_TIMEOUT = 30

# wg-quick may hang on an interactive sudo prompt; bound it hard
WG_QUICK_TIMEOUT = 30

# Secondary timeout for process cleanup after kill (seconds)
_KILL_WAIT_TIMEOUT = 5

_PERMISSION_MARKERS = (
	"must be run as root",
	"Permission denied",
	"Operation not permitted",
)


@dataclass
class CommandResult:
	"""Outcome of one external command."""
	returncode: int
	stdout: str = ""
	stderr: str = ""
	timed_out: bool = False

	@property
	def ok(self) -> bool:
		return self.returncode == 0 and not self.timed_out

	@property
	def output(self) -> str:
		"""Combined stderr/stdout for error messages."""
		return "\n".join(part for part in (self.stderr.strip(), self.stdout.strip()) if part)


class Runner(Protocol):
	def __call__(
		self,
		*args: str,
		timeout: float = WG_COMMAND_TIMEOUT,
		input: str | None = None,
		env: Mapping[str, str] | None = None,
		stdin_devnull: bool = False,
	) -> Awaitable[CommandResult]: ...


async def run_command(
	*args: str,
	timeout: float = WG_COMMAND_TIMEOUT,
	input: str | None = None,
	env: Mapping[str, str] | None = None,
	stdin_devnull: bool = False,
) -> CommandResult:
	"""Run a command with a timeout; kill it when the timeout expires.

	``env`` entries are added on top of the current environment. A missing
	executable yields returncode 127 rather than an exception.
	"""
	if not args:
		raise ValueError("No command arguments provided")

	if input is not None:
		stdin = asyncio.subprocess.PIPE
	elif stdin_devnull:
		stdin = asyncio.subprocess.DEVNULL
	else:
		stdin = None

	proc_env = None
	if env:
		proc_env = dict(os.environ)
		proc_env.update(env)

	try:
		proc = await asyncio.create_subprocess_exec(
			*args,
			stdin=stdin,
			stdout=asyncio.subprocess.PIPE,
			stderr=asyncio.subprocess.PIPE,
			env=proc_env,
		)
	except FileNotFoundError:
		return CommandResult(127, "", f"{args[0]}: command not found")
	except OSError as exc:
		return CommandResult(126, "", f"{args[0]}: {exc}")

	try:
		stdout_bytes, stderr_bytes = await asyncio.wait_for(
			proc.communicate(input=input.encode("utf-8") if input is not None else None),
			timeout=timeout,
		)
	except asyncio.TimeoutError:
		proc.kill()
		# Wait with secondary timeout to avoid zombie processes
		try:
			await asyncio.wait_for(proc.wait(), timeout=_KILL_WAIT_TIMEOUT)
		except asyncio.TimeoutError:
			_log.warning("COMMAND_KILL_STUCK cmd=%s", args[0])
		return CommandResult(1, "", f"Command timed out after {timeout}s", timed_out=True)

	return CommandResult(
		proc.returncode if proc.returncode is not None else 1,
		stdout_bytes.decode("utf-8", errors="replace"),
		stderr_bytes.decode("utf-8", errors="replace"),
	)


async def wg_quick(
	action: Literal["up", "down"],
	target: str | Path,
	runner: Runner = run_command,
) -> None:
	"""Run `wg-quick up|down` on a device name or config path.

	stdin is bound to /dev/null and askpass helpers are pointed at
	/bin/false so sudo can never block waiting for a password.

	Raises:
		ToolTimeoutError: If wg-quick did not finish within 30s.
		PermissionRequiredError: If wg-quick reported missing privileges.
		ExternalToolError: On any other non-zero exit.
	"""
	if action not in ("up", "down"):
		raise ValueError(f"unsupported wg-quick action {action!r}")

	command = f"wg-quick {action}"
	result = await runner(
		"wg-quick", action, str(target),
		timeout=WG_QUICK_TIMEOUT,
		env={"SUDO_ASKPASS": "/bin/false", "SSH_ASKPASS": "/bin/false"},
		stdin_devnull=True,
	)
	if result.timed_out:
		_log.error("WG_QUICK_TIMEOUT action=%s target=%s", action, target)
		raise ToolTimeoutError(
			command,
			f"timed out after {WG_QUICK_TIMEOUT}s, likely waiting for a sudo password: run wgrest as root",
		)
	if result.returncode != 0:
		output = result.output
		if any(marker in output for marker in _PERMISSION_MARKERS):
			_log.error("WG_QUICK_PERMISSION action=%s target=%s", action, target)
			raise PermissionRequiredError(command, "requires root privileges: run wgrest as root")
		raise ExternalToolError(command, output or f"exit code {result.returncode}")
	_log.info("WG_QUICK action=%s target=%s", action, target)


async def wg_showconf(name: str, runner: Runner = run_command) -> str:
	"""Return the `wg showconf` snapshot of a running device.

	Raises:
		ExternalToolError: If the command fails.
	"""
	result = await runner("wg", "showconf", name, timeout=WG_COMMAND_TIMEOUT)
	if not result.ok:
		raise ExternalToolError("wg showconf", result.output or f"exit code {result.returncode}")
	return result.stdout


async def wg_version(runner: Runner = run_command) -> str:
	"""Installed wireguard-tools version, ``"unknown"`` if it cannot be determined."""
	try:
		result = await runner("wg", "--version", timeout=5)
	except Exception as exc:
		_log.debug("WG_VERSION failed: %s", exc)
		return "unknown"
	if not result.ok:
		return "unknown"
	# "wireguard-tools v1.0.20210914 - https://git.zx2c4.com/wireguard-tools/"
	fields = result.stdout.split()
	return fields[1] if len(fields) > 1 else "unknown"
