#!/usr/bin/env python3
#
# tests/conftest.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Shared fakes: an in-memory control plane and a recording process runner."""

from __future__ import annotations

from pathlib import Path

import pytest

from wgrest.errors import ConflictError, DeviceNotFoundError, PeerNotFoundError
from wgrest.models import Device, DeviceCreateOrUpdate, Peer
from wgrest.services.devices import DeviceService
from wgrest.services.peers import PeerService
from wgrest.wireguard.codec import config_from_device, render_config
from wgrest.wireguard.control import DeviceConfig, LiveDevice
from wgrest.wireguard.dump import ConfigDumpService
from wgrest.wireguard.keys import generate_keypair, generate_private_key, public_key_from_private, url_safe_key
from wgrest.wireguard.process import CommandResult
from wgrest.wireguard.secrets import PeerSecretStore
from wgrest.wireguard.store import ConfigStore, MemoryBackend

CONF_DIR = Path("/etc/wireguard")
EXTRA_DIR = Path("/usr/local/etc/wireguard")
PEERS_DIR = Path("/var/lib/wgrest/peers")


class FakeControlPlane:
	"""ControlPlane kept entirely in memory."""

	def __init__(self) -> None:
		self.devices: dict[str, LiveDevice] = {}
		self.configure_calls: list[tuple[str, DeviceConfig]] = []
		self.deleted: list[str] = []

	def add_device(self, name: str, listen_port: int = 51820, peers: list[Peer] | None = None) -> LiveDevice:
		private_key = generate_private_key()
		live = LiveDevice(
			Device(
				name=name,
				private_key=private_key,
				public_key=public_key_from_private(private_key),
				listen_port=listen_port,
				running=True,
			),
			list(peers or []),
		)
		self.devices[name] = live
		self._recount(live)
		return live

	@staticmethod
	def _recount(live: LiveDevice) -> None:
		live.device.peers_count = len(live.peers)
		live.device.total_receive_bytes = sum(p.receive_bytes for p in live.peers)
		live.device.total_transmit_bytes = sum(p.transmit_bytes for p in live.peers)

	@staticmethod
	def _copy(live: LiveDevice) -> LiveDevice:
		return LiveDevice(live.device.model_copy(deep=True), [p.model_copy(deep=True) for p in live.peers])

	def showconf(self, name: str) -> str:
		live = self.devices[name]
		return render_config(config_from_device(live.device, live.peers))

	async def list_devices(self) -> list[LiveDevice]:
		return [self._copy(live) for live in self.devices.values()]

	async def get_device(self, name: str) -> LiveDevice:
		try:
			return self._copy(self.devices[name])
		except KeyError:
			raise DeviceNotFoundError(name) from None

	async def create_device(self, req: DeviceCreateOrUpdate) -> LiveDevice:
		if req.name in self.devices:
			raise ConflictError(f"device already exists: {req.name}")
		private_key = req.private_key or generate_private_key()
		return LiveDevice(Device(
			name=req.name,
			private_key=private_key,
			public_key=public_key_from_private(private_key),
			listen_port=req.listen_port or 0,
			firewall_mark=req.firewall_mark or 0,
		))

	async def update_device(self, name: str, req: DeviceCreateOrUpdate) -> LiveDevice:
		if name not in self.devices:
			raise DeviceNotFoundError(name)
		await self.configure_device(name, DeviceConfig(
			private_key=req.private_key,
			listen_port=req.listen_port,
			firewall_mark=req.firewall_mark,
		))
		return await self.get_device(name)

	async def delete_device(self, name: str) -> None:
		if self.devices.pop(name, None) is None:
			raise DeviceNotFoundError(name)
		self.deleted.append(name)

	async def configure_device(self, name: str, config: DeviceConfig) -> None:
		if name not in self.devices:
			raise DeviceNotFoundError(name)
		self.configure_calls.append((name, config))
		live = self.devices[name]
		if config.private_key is not None:
			live.device.private_key = config.private_key
			live.device.public_key = public_key_from_private(config.private_key)
		if config.listen_port is not None:
			live.device.listen_port = config.listen_port
		if config.firewall_mark is not None:
			live.device.firewall_mark = config.firewall_mark

		for change in config.peers:
			index = next((i for i, p in enumerate(live.peers) if p.public_key == change.public_key), None)
			if change.remove or change.update_only:
				if index is None:
					raise PeerNotFoundError(change.public_key)
			if change.remove:
				live.peers.pop(index)
				continue
			if index is None:
				live.peers.append(Peer(
					public_key=change.public_key,
					url_safe_public_key=url_safe_key(change.public_key),
				))
				index = len(live.peers) - 1
			peer = live.peers[index]
			if change.preshared_key is not None:
				peer.preshared_key = change.preshared_key or None
			if change.endpoint:
				peer.endpoint = change.endpoint
			if change.persistent_keepalive is not None:
				peer.persistent_keepalive_interval = change.persistent_keepalive
			if change.allowed_ips is not None:
				if change.replace_allowed_ips:
					peer.allowed_ips = list(change.allowed_ips)
				else:
					peer.allowed_ips = list(dict.fromkeys([*peer.allowed_ips, *change.allowed_ips]))
		self._recount(live)


class FakeRunner:
	"""Records every command and returns canned results.

	`wg showconf <name>` is answered from the attached control plane when no
	canned result is registered for it.
	"""

	def __init__(self, control: FakeControlPlane | None = None) -> None:
		self.control = control
		self.calls: list[tuple[str, ...]] = []
		self.options: list[dict] = []
		self.responses: dict[tuple[str, ...], CommandResult | Exception] = {}

	def respond(self, *args: str, result: CommandResult | Exception) -> None:
		self.responses[args] = result

	async def __call__(self, *args, timeout=30, input=None, env=None, stdin_devnull=False):
		self.calls.append(tuple(args))
		self.options.append({"timeout": timeout, "env": env, "stdin_devnull": stdin_devnull})
		result = self.responses.get(tuple(args))
		if isinstance(result, Exception):
			raise result
		if result is not None:
			return result
		if args[:2] == ("wg", "showconf") and self.control is not None:
			name = args[2]
			if name in self.control.devices:
				return CommandResult(0, self.control.showconf(name), "")
			return CommandResult(1, "", "Unable to access interface: No such device")
		return CommandResult(0, "", "")


def make_peer(**fields) -> Peer:
	"""Peer with a fresh public key unless one is given."""
	if "public_key" not in fields:
		fields["public_key"] = generate_keypair()[1]
	fields.setdefault("url_safe_public_key", url_safe_key(fields["public_key"]))
	return Peer(**fields)


@pytest.fixture
def control() -> FakeControlPlane:
	return FakeControlPlane()


@pytest.fixture
def runner(control) -> FakeRunner:
	return FakeRunner(control)


@pytest.fixture
def backend() -> MemoryBackend:
	return MemoryBackend([CONF_DIR])


@pytest.fixture
def store(backend) -> ConfigStore:
	return ConfigStore([CONF_DIR], backend=backend)


@pytest.fixture
def secrets(backend) -> PeerSecretStore:
	return PeerSecretStore(PEERS_DIR, backend=backend)


@pytest.fixture
def dump(control, store, runner) -> ConfigDumpService:
	return ConfigDumpService(control, store, runner=runner)


@pytest.fixture
def device_service(control, store, runner) -> DeviceService:
	return DeviceService(control, store, runner=runner)


@pytest.fixture
def peer_service(control, secrets, dump, store) -> PeerService:
	return PeerService(control, secrets, dump, store)
