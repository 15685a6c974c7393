#!/usr/bin/env python3
#
# wgrest/wireguard/codec.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""wg-quick configuration file parsing and rendering.

Parsing is deliberately permissive: unknown keys are ignored and malformed
numbers leave the field at zero, so a hand-edited file never blocks the
service. Rendering omits empty/default fields and emits keys in a fixed
order, which makes the output deterministic but not byte-identical to the
input.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from ..models import Device, Peer
from .keys import url_safe_key

__all__ = [
	"QuickConfig",
	"QuickPeerConfig",
	"parse_config",
	"render_config",
	"config_from_device",
	"peers_from_config",
	"merge_interface_options",
]

# Interface keys that only wg-quick understands (absent from `wg showconf`)
_WG_QUICK_ONLY_KEYS = ("address", "dns", "mtu", "table", "preup", "postup", "predown", "postdown", "saveconfig")


@dataclass
class QuickPeerConfig:
	"""One [Peer] section."""
	public_key: str = ""
	preshared_key: str = ""
	allowed_ips: list[str] = field(default_factory=list)
	endpoint: str = ""
	persistent_keepalive: int = 0


@dataclass
class QuickConfig:
	"""Parsed representation of one wg-quick file."""
	private_key: str = ""
	listen_port: int = 0
	firewall_mark: int = 0
	addresses: list[str] = field(default_factory=list)
	dns: list[str] = field(default_factory=list)
	mtu: int = 0
	table: str = ""
	pre_up: list[str] = field(default_factory=list)
	post_up: list[str] = field(default_factory=list)
	pre_down: list[str] = field(default_factory=list)
	post_down: list[str] = field(default_factory=list)
	save_config: bool = False
	peers: list[QuickPeerConfig] = field(default_factory=list)


def _safe_int(value: str, base: int = 10) -> int:
	"""Parse an integer, returning 0 on malformed input."""
	try:
		return int(value, base) if value else 0
	except (ValueError, TypeError):
		return 0


def _split_list(value: str) -> list[str]:
	return [item.strip() for item in value.split(",") if item.strip()]


def parse_config(text: str) -> QuickConfig:
	"""Parse wg-quick text into a QuickConfig. Never fails on content."""
	cfg = QuickConfig()
	peer: QuickPeerConfig | None = None

	for raw_line in text.splitlines():
		line = raw_line.strip()
		if not line or line.startswith("#"):
			continue
		if line == "[Interface]":
			peer = None
			continue
		if line == "[Peer]":
			peer = QuickPeerConfig()
			cfg.peers.append(peer)
			continue
		if "=" not in line:
			continue

		key, value = line.split("=", 1)
		key = key.strip().lower()
		value = value.strip()

		if peer is not None:
			if key == "publickey":
				peer.public_key = value
			elif key == "presharedkey":
				peer.preshared_key = value
			elif key == "allowedips":
				peer.allowed_ips.extend(_split_list(value))
			elif key == "endpoint":
				peer.endpoint = value
			elif key == "persistentkeepalive":
				peer.persistent_keepalive = 0 if value.lower() == "off" else _safe_int(value)
			continue

		if key == "privatekey":
			cfg.private_key = value
		elif key == "listenport":
			cfg.listen_port = _safe_int(value)
		elif key == "fwmark":
			# `wg showconf` prints the mark as hex (0xca6c)
			cfg.firewall_mark = 0 if value.lower() == "off" else _safe_int(value, 0)
		elif key == "address":
			cfg.addresses.extend(_split_list(value))
		elif key == "dns":
			cfg.dns.extend(_split_list(value))
		elif key == "mtu":
			cfg.mtu = _safe_int(value)
		elif key == "table":
			cfg.table = value
		elif key == "preup":
			cfg.pre_up.append(value)
		elif key == "postup":
			cfg.post_up.append(value)
		elif key == "predown":
			cfg.pre_down.append(value)
		elif key == "postdown":
			cfg.post_down.append(value)
		elif key == "saveconfig":
			cfg.save_config = value.lower() == "true"

	return cfg


def render_config(cfg: QuickConfig) -> str:
	"""Render a QuickConfig as wg-quick text."""
	lines = ["[Interface]"]
	if cfg.private_key:
		lines.append(f"PrivateKey = {cfg.private_key}")
	if cfg.listen_port > 0:
		lines.append(f"ListenPort = {cfg.listen_port}")
	if cfg.firewall_mark > 0:
		lines.append(f"FwMark = {cfg.firewall_mark}")
	if cfg.addresses:
		lines.append(f"Address = {', '.join(cfg.addresses)}")
	if cfg.dns:
		lines.append(f"DNS = {', '.join(cfg.dns)}")
	if cfg.mtu > 0:
		lines.append(f"MTU = {cfg.mtu}")
	if cfg.table:
		lines.append(f"Table = {cfg.table}")
	lines.extend(f"PreUp = {cmd}" for cmd in cfg.pre_up)
	lines.extend(f"PostUp = {cmd}" for cmd in cfg.post_up)
	lines.extend(f"PreDown = {cmd}" for cmd in cfg.pre_down)
	lines.extend(f"PostDown = {cmd}" for cmd in cfg.post_down)
	if cfg.save_config:
		lines.append("SaveConfig = true")

	for peer in cfg.peers:
		lines.append("")
		lines.append("[Peer]")
		if peer.public_key:
			lines.append(f"PublicKey = {peer.public_key}")
		if peer.preshared_key:
			lines.append(f"PresharedKey = {peer.preshared_key}")
		if peer.allowed_ips:
			lines.append(f"AllowedIPs = {', '.join(peer.allowed_ips)}")
		if peer.endpoint:
			lines.append(f"Endpoint = {peer.endpoint}")
		if peer.persistent_keepalive > 0:
			lines.append(f"PersistentKeepalive = {peer.persistent_keepalive}")

	return "\n".join(lines) + "\n"


def config_from_device(device: Device, peers: Iterable[Peer]) -> QuickConfig:
	"""Build the persisted view of a device. Counters and peer private keys are dropped."""
	return QuickConfig(
		private_key=device.private_key or "",
		listen_port=device.listen_port,
		firewall_mark=device.firewall_mark,
		addresses=list(device.addresses),
		dns=list(device.dns),
		mtu=device.mtu,
		table=device.table,
		pre_up=list(device.pre_up),
		post_up=list(device.post_up),
		pre_down=list(device.pre_down),
		post_down=list(device.post_down),
		peers=[
			QuickPeerConfig(
				public_key=peer.public_key,
				preshared_key=peer.preshared_key or "",
				allowed_ips=list(peer.allowed_ips),
				endpoint=peer.endpoint or "",
				persistent_keepalive=peer.persistent_keepalive_interval,
			)
			for peer in peers
		],
	)


def peers_from_config(cfg: QuickConfig) -> list[Peer]:
	"""Peers as declared in a config file, without live counters."""
	return [
		Peer(
			public_key=peer.public_key,
			url_safe_public_key=url_safe_key(peer.public_key),
			preshared_key=peer.preshared_key or None,
			allowed_ips=list(peer.allowed_ips),
			endpoint=peer.endpoint or None,
			persistent_keepalive_interval=peer.persistent_keepalive,
		)
		for peer in cfg.peers
		if peer.public_key
	]


def _interface_option_lines(cfg: QuickConfig) -> list[str]:
	"""Render only the wg-quick specific interface lines of ``cfg``."""
	only = QuickConfig(
		addresses=cfg.addresses,
		dns=cfg.dns,
		mtu=cfg.mtu,
		table=cfg.table,
		pre_up=cfg.pre_up,
		post_up=cfg.post_up,
		pre_down=cfg.pre_down,
		post_down=cfg.post_down,
		save_config=cfg.save_config,
	)
	return render_config(only).splitlines()[1:]


def merge_interface_options(snapshot: str, existing: QuickConfig | None) -> str:
	"""Insert wg-quick options from ``existing`` into a `wg showconf` snapshot.

	The snapshot only carries kernel state. Options already present in the
	snapshot win; the rest are placed right after the ``[Interface]`` header,
	the same way `wg-quick save` preserves them.
	"""
	if existing is None:
		return snapshot

	present: set[str] = set()
	in_interface = False
	for raw_line in snapshot.splitlines():
		line = raw_line.strip()
		if line == "[Interface]":
			in_interface = True
			continue
		if line.startswith("["):
			in_interface = False
			continue
		if in_interface and "=" in line:
			present.add(line.split("=", 1)[0].strip().lower())

	extra = [
		line for line in _interface_option_lines(existing)
		if line.split("=", 1)[0].strip().lower() in _WG_QUICK_ONLY_KEYS
		and line.split("=", 1)[0].strip().lower() not in present
	]
	if not extra:
		return snapshot

	out: list[str] = []
	inserted = False
	for raw_line in snapshot.splitlines():
		out.append(raw_line)
		if not inserted and raw_line.strip() == "[Interface]":
			out.extend(extra)
			inserted = True
	if not inserted:
		out = ["[Interface]", *extra, *out]
	return "\n".join(out) + "\n"
