#!/usr/bin/env python3
#
# wgrest/services/devices.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Device view: merges live control-plane state with persisted wg-quick intent.

Live state wins for what the kernel knows (keys, port, counters); the
config file supplies what only wg-quick knows (addresses, DNS, MTU, table,
hooks). A device may exist in either source or both.
"""

from __future__ import annotations

import logging
from typing import Iterable, Literal

from ..errors import ConfigNotFoundError, ConflictError, DeviceNotFoundError, ValidationError, WgRestError
from ..models import Device, DeviceCreateOrUpdate, Peer
from ..wireguard.codec import QuickConfig, peers_from_config
from ..wireguard.control import ControlPlane
from ..wireguard.keys import public_key_from_private
from ..wireguard.process import Runner, run_command, wg_quick
from ..wireguard.store import ConfigStore, validate_device_name
from .listing import paginate

__all__ = ["DeviceService", "QUICK_FIELDS"]

# Device fields that only live in the wg-quick file
QUICK_FIELDS = ("addresses", "dns", "mtu", "table", "pre_up", "post_up", "pre_down", "post_down")


def _quick_values(cfg: QuickConfig) -> dict[str, object]:
	return {
		"addresses": list(cfg.addresses),
		"dns": list(cfg.dns),
		"mtu": cfg.mtu,
		"table": cfg.table,
		"pre_up": list(cfg.pre_up),
		"post_up": list(cfg.post_up),
		"pre_down": list(cfg.pre_down),
		"post_down": list(cfg.post_down),
	}


def overlay_config(device: Device, cfg: QuickConfig | None) -> Device:
	"""Copy the persisted wg-quick fields onto a device."""
	if cfg is None:
		return device
	return device.model_copy(update=_quick_values(cfg))


def device_from_config(name: str, cfg: QuickConfig) -> Device:
	"""Build a not-running device from its config file."""
	public_key = ""
	if cfg.private_key:
		try:
			public_key = public_key_from_private(cfg.private_key)
		except ValidationError:
			public_key = ""
	return Device(
		name=name,
		private_key=cfg.private_key or None,
		public_key=public_key,
		listen_port=cfg.listen_port,
		firewall_mark=cfg.firewall_mark,
		running=False,
		peers_count=len([p for p in cfg.peers if p.public_key]),
		**_quick_values(cfg),
	)


def apply_request(device: Device, req: DeviceCreateOrUpdate, existing: QuickConfig | None) -> Device:
	"""Overlay wg-quick fields: request value if supplied, else the existing config's."""
	fields = req.model_fields_set
	base = _quick_values(existing) if existing is not None else {}
	update: dict[str, object] = {}
	for name in QUICK_FIELDS:
		value = getattr(req, name)
		if name in fields and value is not None:
			update[name] = value
		elif name in base:
			update[name] = base[name]
	return device.model_copy(update=update)


class DeviceService:
	"""Device list/get/create/update/delete/up/down."""

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

	def _load_optional(self, name: str) -> QuickConfig | None:
		try:
			return self._store.load(name)
		except ConfigNotFoundError:
			return None
		except WgRestError as exc:
			self._log.warning("CONFIG_LOAD_FAILED name=%s error=%s", name, exc)
			return None

	def _persist(self, name: str, device: Device, peers: Iterable[Peer]) -> None:
		"""Write the device config; failures are logged, never raised."""
		try:
			self._store.save(name, device, peers)
		except WgRestError as exc:
			self._log.warning("CONFIG_PERSIST_FAILED name=%s error=%s", name, exc)

	async def list(self, page: int = 0, per_page: int = 0) -> tuple[list[Device], int]:
		"""Running devices first, then config-only devices in store order."""
		devices: list[Device] = []
		running: set[str] = set()
		for live in await self._control.list_devices():
			running.add(live.device.name)
			devices.append(overlay_config(live.device, self._load_optional(live.device.name)))

		for name in self._store.list():
			if name in running:
				continue
			cfg = self._load_optional(name)
			devices.append(device_from_config(name, cfg) if cfg is not None else Device(name=name, running=False))

		return paginate(devices, page, per_page)

	async def get(self, name: str) -> Device:
		"""Live device if running, else config-only device.

		Raises:
			DeviceNotFoundError: If neither exists.
		"""
		validate_device_name(name)
		try:
			live = await self._control.get_device(name)
		except DeviceNotFoundError:
			try:
				cfg = self._store.load(name)
			except ConfigNotFoundError:
				raise DeviceNotFoundError(name) from None
			return device_from_config(name, cfg)
		return overlay_config(live.device, self._load_optional(name))

	async def create(self, req: DeviceCreateOrUpdate) -> Device:
		"""Create a device definition and persist it.

		Raises:
			ValidationError: If the name is missing or invalid.
			ConflictError: If the device is running or already has a config.
		"""
		if not req.name:
			raise ValidationError("name", "device name is required")
		name = validate_device_name(req.name)
		if self._store.exists(name):
			raise ConflictError(f"device already exists: {name}")

		live = await self._control.create_device(req)
		device = apply_request(live.device, req, None)
		self._persist(name, device, live.peers)
		self._log.info("DEVICE_CREATED name=%s running=%s", name, device.running)
		return device

	async def update(self, name: str, req: DeviceCreateOrUpdate) -> Device:
		"""Apply supplied fields to the live device (if running) and the config.

		Raises:
			DeviceNotFoundError: If the device neither runs nor has a config.
			ValidationError: On a rename attempt or an invalid key.
		"""
		validate_device_name(name)
		if req.name is not None and req.name != name:
			raise ValidationError("name", "devices cannot be renamed")

		existing = self._load_optional(name)
		try:
			live = await self._control.update_device(name, req)
			device, peers = live.device, live.peers
		except DeviceNotFoundError:
			if existing is None:
				raise
			device = device_from_config(name, existing)
			peers = peers_from_config(existing)
			device = self._apply_interface_fields(device, req)

		device = apply_request(device, req, existing)
		self._persist(name, device, peers)
		self._log.info("DEVICE_UPDATED name=%s running=%s", name, device.running)
		return device

	@staticmethod
	def _apply_interface_fields(device: Device, req: DeviceCreateOrUpdate) -> Device:
		"""Key/port/fwmark changes for a device that is not running."""
		fields = req.model_fields_set
		update: dict[str, object] = {}
		if "private_key" in fields and req.private_key:
			update["private_key"] = req.private_key
			update["public_key"] = public_key_from_private(req.private_key)
		if "listen_port" in fields and req.listen_port is not None:
			update["listen_port"] = req.listen_port
		if "firewall_mark" in fields and req.firewall_mark is not None:
			update["firewall_mark"] = req.firewall_mark
		return device.model_copy(update=update)

	async def delete(self, name: str) -> Device:
		"""Remove a device: tear down the link if running, then delete its config.

		Raises:
			DeviceNotFoundError: If neither a running device nor a config exists.
		"""
		device = await self.get(name)
		if device.running:
			await self._control.delete_device(name)
		self._store.delete(name)
		self._log.info("DEVICE_DELETED name=%s", name)
		return device

	async def _toggle(self, name: str, action: Literal["up", "down"]) -> Device | None:
		validate_device_name(name)
		target = self._store.resolve(name) if self._store.exists(name) else name
		await wg_quick(action, target, self._run)
		try:
			return await self.get(name)
		except DeviceNotFoundError:
			return None

	async def up(self, name: str) -> Device | None:
		"""`wg-quick up` using the resolved config path. Returns the device afterwards."""
		return await self._toggle(name, "up")

	async def down(self, name: str) -> Device | None:
		"""`wg-quick down`. Returns the device afterwards, None if it is gone entirely."""
		return await self._toggle(name, "down")
