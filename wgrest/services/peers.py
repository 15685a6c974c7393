#!/usr/bin/env python3
#
# wgrest/services/peers.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Peer view over a running device.

Every mutation is applied live first and then followed by a config
snapshot of the device, so the file reflects the new peer set without
waiting for the next scheduled dump.
"""

from __future__ import annotations

import logging

from ..errors import ConfigNotFoundError, ConflictError, PeerNotFoundError, StorageError, ValidationError, WgRestError
from ..models import Peer, PeerCreateOrUpdate
from ..utils.network import normalize_cidrs, normalize_endpoint, parse_duration
from ..wireguard.codec import QuickConfig, QuickPeerConfig, render_config
from ..wireguard.control import ControlPlane, DeviceConfig, LiveDevice, PeerConfig
from ..wireguard.dump import ConfigDumpService
from ..wireguard.keys import decode_key_ref, generate_keypair, parse_key, public_key_from_private
from ..wireguard.secrets import PeerSecretStore
from ..wireguard.store import ConfigStore
from .listing import filter_peers, paginate, sort_peers

__all__ = ["PeerService", "DEFAULT_CLIENT_ALLOWED_IPS"]

DEFAULT_CLIENT_ALLOWED_IPS = ["0.0.0.0/0", "::/0"]

_MAX_KEEPALIVE = 65535


def _find_peer(live: LiveDevice, public_key: str) -> Peer:
	for peer in live.peers:
		if peer.public_key == public_key:
			return peer
	raise PeerNotFoundError(public_key)


def build_peer_config(public_key: str, req: PeerCreateOrUpdate, *, update_only: bool) -> PeerConfig:
	"""Validate a peer request and translate it into a control-plane change.

	Supplied allowed IPs always replace the peer's list.

	Raises:
		ValidationError: Naming the first invalid field.
	"""
	fields = req.model_fields_set

	preshared_key = None
	if "preshared_key" in fields:
		if req.preshared_key:
			parse_key(req.preshared_key, "preshared_key")
		preshared_key = req.preshared_key or ""

	allowed_ips = None
	if req.allowed_ips is not None:
		try:
			allowed_ips = normalize_cidrs(req.allowed_ips)
		except ValueError as exc:
			raise ValidationError("allowed_ips", str(exc)) from exc

	endpoint = None
	if req.endpoint:
		try:
			endpoint = normalize_endpoint(req.endpoint)
		except ValueError as exc:
			raise ValidationError("endpoint", str(exc)) from exc

	keepalive = None
	if req.persistent_keepalive_interval is not None:
		try:
			keepalive = int(parse_duration(req.persistent_keepalive_interval))
		except ValueError as exc:
			raise ValidationError("persistent_keepalive_interval", str(exc)) from exc
		if keepalive > _MAX_KEEPALIVE:
			raise ValidationError("persistent_keepalive_interval", f"must be at most {_MAX_KEEPALIVE}s")

	return PeerConfig(
		public_key=public_key,
		update_only=update_only,
		preshared_key=preshared_key,
		endpoint=endpoint,
		persistent_keepalive=keepalive,
		replace_allowed_ips=allowed_ips is not None,
		allowed_ips=allowed_ips,
	)


class PeerService:
	"""Peer list/get/create/update/delete and client config rendering."""

	def __init__(
		self,
		control: ControlPlane,
		secrets: PeerSecretStore,
		dump: ConfigDumpService,
		store: ConfigStore,
		logger: logging.Logger | None = None,
	) -> None:
		self._control = control
		self._secrets = secrets
		self._dump = dump
		self._store = store
		self._log = logger or logging.getLogger(__name__)

	def _private_key(self, public_key: str) -> str | None:
		try:
			return self._secrets.get(public_key)
		except StorageError as exc:
			self._log.warning("PEER_SECRET_READ_FAILED public_key=%s error=%s", public_key[:16], exc)
			return None

	async def _snapshot(self, device: str) -> None:
		try:
			await self._dump.snapshot(device)
		except WgRestError as exc:
			self._log.warning("PEER_SNAPSHOT_FAILED device=%s error=%s", device, exc)

	async def list(
		self,
		device: str,
		page: int = 0,
		per_page: int = 0,
		query: str | None = None,
		sort: str | None = None,
	) -> tuple[list[Peer], int]:
		"""Filter, then sort, then paginate the live peers of a device."""
		live = await self._control.get_device(device)
		peers = sort_peers(filter_peers(live.peers, query), sort)
		return paginate(peers, page, per_page)

	async def get(self, device: str, ref: str) -> Peer:
		"""Look a peer up by (URL-safe) public key.

		Raises:
			ValidationError: If ``ref`` is not a valid key encoding.
			DeviceNotFoundError, PeerNotFoundError
		"""
		public_key = decode_key_ref(ref)
		live = await self._control.get_device(device)
		peer = _find_peer(live, public_key)
		return peer.model_copy(update={"private_key": self._private_key(public_key)})

	async def create(self, device: str, req: PeerCreateOrUpdate) -> Peer:
		"""Add a peer to a running device.

		Keys: both given (must match), private only (public derived), public
		only, or none (a fresh pair is generated).

		Raises:
			ValidationError, ConflictError, DeviceNotFoundError
		"""
		live = await self._control.get_device(device)

		private_key = req.private_key or None
		public_key = req.public_key or None
		if private_key:
			derived = public_key_from_private(private_key)
			if public_key and public_key != derived:
				raise ValidationError("public_key", "does not match private_key")
			public_key = derived
		elif public_key:
			parse_key(public_key, "public_key")
		else:
			private_key, public_key = generate_keypair()

		if any(peer.public_key == public_key for peer in live.peers):
			raise ConflictError(f"peer already exists: {public_key}", code="peer_exists")

		peer_config = build_peer_config(public_key, req, update_only=False)
		await self._control.configure_device(device, DeviceConfig(peers=[peer_config]))
		self._log.info("PEER_CREATED device=%s public_key=%s", device, public_key[:16])

		if private_key:
			try:
				self._secrets.put(public_key, private_key)
			except StorageError as exc:
				self._log.warning("PEER_SECRET_WRITE_FAILED public_key=%s error=%s", public_key[:16], exc)

		await self._snapshot(device)
		peer = _find_peer(await self._control.get_device(device), public_key)
		return peer.model_copy(update={"private_key": private_key})

	async def update(self, device: str, ref: str, req: PeerCreateOrUpdate) -> Peer:
		"""Change only the supplied fields of an existing peer.

		Raises:
			ValidationError, DeviceNotFoundError, PeerNotFoundError
		"""
		public_key = decode_key_ref(ref)
		_find_peer(await self._control.get_device(device), public_key)

		peer_config = build_peer_config(public_key, req, update_only=True)
		await self._control.configure_device(device, DeviceConfig(peers=[peer_config]))
		self._log.info("PEER_UPDATED device=%s public_key=%s", device, public_key[:16])

		await self._snapshot(device)
		return await self.get(device, ref)

	async def delete(self, device: str, ref: str) -> Peer:
		"""Remove a peer and forget its private key. Returns the removed peer."""
		peer = await self.get(device, ref)
		await self._control.configure_device(
			device,
			DeviceConfig(peers=[PeerConfig(public_key=peer.public_key, remove=True)]),
		)
		self._log.info("PEER_DELETED device=%s public_key=%s", device, peer.public_key[:16])

		try:
			self._secrets.delete(peer.public_key)
		except StorageError as exc:
			self._log.warning("PEER_SECRET_DELETE_FAILED public_key=%s error=%s", peer.public_key[:16], exc)

		await self._snapshot(device)
		return peer

	async def quick_config(
		self,
		device: str,
		ref: str,
		*,
		host: str | None = None,
		allowed_ips: list[str] | None = None,
	) -> str:
		"""Render the wg-quick file a peer needs to connect to this device."""
		public_key = decode_key_ref(ref)
		live = await self._control.get_device(device)
		peer = _find_peer(live, public_key)

		client_allowed = DEFAULT_CLIENT_ALLOWED_IPS
		if allowed_ips:
			try:
				client_allowed = normalize_cidrs(allowed_ips)
			except ValueError as exc:
				raise ValidationError("allowed_ips", str(exc)) from exc

		dns: list[str] = []
		try:
			dns = self._store.load(device).dns
		except ConfigNotFoundError:
			pass
		except WgRestError as exc:
			self._log.warning("CONFIG_LOAD_FAILED name=%s error=%s", device, exc)

		endpoint = ""
		if host and live.device.listen_port:
			host = host.strip()
			if host.startswith("[") and host.endswith("]"):
				host = host[1:-1]
			endpoint = f"[{host}]:{live.device.listen_port}" if ":" in host else f"{host}:{live.device.listen_port}"

		client = QuickConfig(
			private_key=self._private_key(public_key) or "",
			addresses=list(peer.allowed_ips),
			dns=list(dns),
			peers=[QuickPeerConfig(
				public_key=live.device.public_key,
				preshared_key=peer.preshared_key or "",
				endpoint=endpoint,
				allowed_ips=list(client_allowed),
			)],
		)
		return render_config(client)
