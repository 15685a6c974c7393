#!/usr/bin/env python3
#
# wgrest/wireguard/control.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Live control-plane access for WireGuard devices.

``ControlPlane`` is the capability the engine depends on. ``WgControlPlane``
implements it on top of the `wg` CLI: state comes from `wg show ... dump`,
changes are applied with `wg set`. Each call spawns its own short-lived
process, so no handle is held open across requests.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol

from ..errors import (
	ConflictError,
	ControlPlaneError,
	DeviceNotFoundError,
	PeerNotFoundError,
)
from ..models import Device, DeviceCreateOrUpdate, Peer
from .keys import generate_private_key, parse_key, public_key_from_private, url_safe_key
from .process import Runner, run_command
from .store import validate_device_name

__all__ = [
	"LiveDevice",
	"PeerConfig",
	"DeviceConfig",
	"ControlPlane",
	"WgControlPlane",
	"parse_wg_dump",
]

_NO_DEVICE_MARKERS = ("No such device", "Cannot find device", "does not exist")


@dataclass
class LiveDevice:
	"""A running device and its peers as reported by the kernel."""
	device: Device
	peers: list[Peer] = field(default_factory=list)


@dataclass
class PeerConfig:
	"""One peer change in a ``configure_device`` call.

	``None`` means "leave unchanged". Without ``replace_allowed_ips`` the
	given allowed IPs are added to the peer's existing ones.
	"""
	public_key: str
	remove: bool = False
	update_only: bool = False
	preshared_key: str | None = None
	endpoint: str | None = None
	persistent_keepalive: int | None = None
	replace_allowed_ips: bool = False
	allowed_ips: list[str] | None = None


@dataclass
class DeviceConfig:
	"""Partial device change; ``None`` fields are left as they are."""
	private_key: str | None = None
	listen_port: int | None = None
	firewall_mark: int | None = None
	peers: list[PeerConfig] = field(default_factory=list)


class ControlPlane(Protocol):
	"""Live WireGuard state capability."""

	async def list_devices(self) -> list[LiveDevice]: ...

	async def get_device(self, name: str) -> LiveDevice: ...

	async def create_device(self, req: DeviceCreateOrUpdate) -> LiveDevice: ...

	async def update_device(self, name: str, req: DeviceCreateOrUpdate) -> LiveDevice: ...

	async def delete_device(self, name: str) -> None: ...

	async def configure_device(self, name: str, config: DeviceConfig) -> None: ...


def _none(value: str) -> str | None:
	return None if value in ("", "(none)") else value


def _safe_int(value: str, base: int = 10) -> int:
	try:
		return int(value, base) if value and value != "off" else 0
	except (ValueError, TypeError):
		return 0


def _handshake(value: str) -> datetime | None:
	ts = _safe_int(value)
	return datetime.fromtimestamp(ts, tz=timezone.utc) if ts > 0 else None


def _parse_peer(parts: list[str]) -> Peer:
	# public-key, preshared-key, endpoint, allowed-ips, latest-handshake, rx, tx, keepalive
	allowed = _none(parts[3])
	return Peer(
		public_key=parts[0],
		url_safe_public_key=url_safe_key(parts[0]),
		preshared_key=_none(parts[1]),
		endpoint=_none(parts[2]),
		allowed_ips=[ip for ip in allowed.split(",") if ip] if allowed else [],
		last_handshake_time=_handshake(parts[4]),
		receive_bytes=_safe_int(parts[5]),
		transmit_bytes=_safe_int(parts[6]),
		persistent_keepalive_interval=_safe_int(parts[7]),
	)


def parse_wg_dump(stdout: str, name: str | None = None) -> list[LiveDevice]:
	"""Parse `wg show all dump` (``name`` None) or `wg show <name> dump` output.

	All-dump lines carry the interface name as first column:
	- interface (5 cols): iface, private-key, public-key, listen-port, fwmark
	- peer (9 cols): iface, public-key, psk, endpoint, allowed-ips, handshake, rx, tx, keepalive

	The per-device dump omits that column (4 and 8 cols).
	"""
	devices: dict[str, LiveDevice] = {}
	for line in stdout.splitlines():
		if not line.strip():
			continue
		parts = line.split("\t")
		if name is not None:
			parts = [name, *parts]
		if len(parts) == 5:
			dev_name = parts[0]
			private_key = _none(parts[1])
			devices[dev_name] = LiveDevice(Device(
				name=dev_name,
				private_key=private_key,
				public_key=_none(parts[2]) or "",
				listen_port=_safe_int(parts[3]),
				firewall_mark=_safe_int(parts[4], 0),
				running=True,
			))
		elif len(parts) == 9:
			live = devices.get(parts[0])
			if live is None:
				continue
			peer = _parse_peer(parts[1:])
			live.peers.append(peer)
			live.device.peers_count += 1
			live.device.total_receive_bytes += peer.receive_bytes
			live.device.total_transmit_bytes += peer.transmit_bytes

	return list(devices.values())


class WgControlPlane:
	"""ControlPlane backed by the `wg` command line tool."""

	def __init__(self, runner: Runner = run_command, logger: logging.Logger | None = None) -> None:
		self._run = runner
		self._log = logger or logging.getLogger(__name__)

	async def list_devices(self) -> list[LiveDevice]:
		result = await self._run("wg", "show", "all", "dump")
		if not result.ok:
			raise ControlPlaneError("cannot list devices", detail=result.output)
		return parse_wg_dump(result.stdout)

	async def get_device(self, name: str) -> LiveDevice:
		"""Live state of one device.

		Raises:
			DeviceNotFoundError: If the interface is not running.
		"""
		validate_device_name(name)
		result = await self._run("wg", "show", name, "dump")
		if not result.ok:
			if any(marker in result.output for marker in _NO_DEVICE_MARKERS):
				raise DeviceNotFoundError(name)
			raise ControlPlaneError(f"cannot read device {name}", detail=result.output)
		devices = parse_wg_dump(result.stdout, name)
		if not devices:
			raise DeviceNotFoundError(name)
		return devices[0]

	async def _is_running(self, name: str) -> bool:
		try:
			await self.get_device(name)
		except DeviceNotFoundError:
			return False
		return True

	async def create_device(self, req: DeviceCreateOrUpdate) -> LiveDevice:
		"""Prepare a new device definition.

		Kernel interfaces are brought into existence by `wg-quick up`, so the
		returned device is not running yet; the caller persists it.

		Raises:
			ConflictError: If a device with that name is already running.
		"""
		name = validate_device_name(req.name or "")
		if await self._is_running(name):
			raise ConflictError(f"device already exists: {name}")

		private_key = req.private_key or generate_private_key()
		device = Device(
			name=name,
			private_key=private_key,
			public_key=public_key_from_private(private_key),
			listen_port=req.listen_port or 0,
			firewall_mark=req.firewall_mark or 0,
			running=False,
		)
		self._log.info("DEVICE_PREPARED name=%s", name)
		return LiveDevice(device)

	async def update_device(self, name: str, req: DeviceCreateOrUpdate) -> LiveDevice:
		"""Apply key/port/fwmark changes that are present in ``req``."""
		fields = req.model_fields_set
		config = DeviceConfig(
			private_key=req.private_key if "private_key" in fields and req.private_key else None,
			listen_port=req.listen_port if "listen_port" in fields else None,
			firewall_mark=req.firewall_mark if "firewall_mark" in fields else None,
		)
		if config.private_key is not None:
			parse_key(config.private_key, "private_key")
		await self.configure_device(name, config)
		return await self.get_device(name)

	async def delete_device(self, name: str) -> None:
		"""Tear the link down. WireGuard itself has no delete primitive."""
		validate_device_name(name)
		result = await self._run("ip", "link", "delete", "dev", name)
		if not result.ok:
			if any(marker in result.output for marker in _NO_DEVICE_MARKERS):
				raise DeviceNotFoundError(name)
			raise ControlPlaneError(f"cannot delete device {name}", detail=result.output)
		self._log.info("DEVICE_DELETED name=%s", name)

	async def configure_device(self, name: str, config: DeviceConfig) -> None:
		"""Apply a partial configuration with `wg set`.

		Secrets are passed through 0600 temp files that are always removed.

		Raises:
			DeviceNotFoundError: If the device is not running.
			PeerNotFoundError: If an ``update_only`` peer does not exist.
			ControlPlaneError: If `wg set` fails otherwise.
		"""
		live = await self.get_device(name)
		existing = {peer.public_key: peer for peer in live.peers}

		tmp_paths: list[str] = []
		try:
			args = build_wg_set_args(name, config, existing, lambda secret: _secret_file(secret, tmp_paths))
			if len(args) <= 3:
				return
			result = await self._run(*args)
		finally:
			for path in tmp_paths:
				try:
					os.unlink(path)
				except FileNotFoundError:
					pass

		if not result.ok:
			if any(marker in result.output for marker in _NO_DEVICE_MARKERS):
				raise DeviceNotFoundError(name)
			raise ControlPlaneError(f"cannot configure device {name}", detail=result.output)
		self._log.info("DEVICE_CONFIGURED name=%s peers=%d", name, len(config.peers))


def _secret_file(secret: str, tmp_paths: list[str]) -> str:
	"""Write a key to a 0600 temp file for `wg set`, which only reads keys from files."""
	fd, path = tempfile.mkstemp(prefix="wg_key_", suffix=".key")
	tmp_paths.append(path)
	try:
		os.fchmod(fd, 0o600)
		os.write(fd, secret.encode("utf-8"))
	finally:
		os.close(fd)
	return path


def build_wg_set_args(
	name: str,
	config: DeviceConfig,
	existing: dict[str, Peer],
	secret_file,
) -> list[str]:
	"""Translate a DeviceConfig into `wg set` arguments.

	``secret_file`` turns a key into a file path for the private-key and
	preshared-key options.

	Raises:
		PeerNotFoundError: If an ``update_only`` peer is not in ``existing``.
	"""
	args = ["wg", "set", name]
	if config.private_key is not None:
		args += ["private-key", secret_file(config.private_key)]
	if config.listen_port is not None:
		args += ["listen-port", str(config.listen_port)]
	if config.firewall_mark is not None:
		args += ["fwmark", str(config.firewall_mark) if config.firewall_mark else "off"]

	for peer in config.peers:
		current = existing.get(peer.public_key)
		if peer.remove:
			if current is None:
				raise PeerNotFoundError(peer.public_key)
			args += ["peer", peer.public_key, "remove"]
			continue
		if peer.update_only and current is None:
			raise PeerNotFoundError(peer.public_key)

		args += ["peer", peer.public_key]
		if peer.preshared_key is not None:
			args += ["preshared-key", secret_file(peer.preshared_key) if peer.preshared_key else "/dev/null"]
		if peer.endpoint is not None and peer.endpoint:
			args += ["endpoint", peer.endpoint]
		if peer.persistent_keepalive is not None:
			args += ["persistent-keepalive", str(peer.persistent_keepalive) if peer.persistent_keepalive else "off"]
		if peer.allowed_ips is not None:
			allowed = list(peer.allowed_ips)
			if not peer.replace_allowed_ips and current is not None:
				allowed = list(dict.fromkeys([*current.allowed_ips, *allowed]))
			args += ["allowed-ips", ",".join(allowed)]

	return args
