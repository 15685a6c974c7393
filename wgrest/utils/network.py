#!/usr/bin/env python3
#
# wgrest/utils/network.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Network and duration parsing helpers."""

from __future__ import annotations

import ipaddress
import re

__all__ = [
	"split_host_port",
	"normalize_endpoint",
	"normalize_cidrs",
	"parse_duration",
	"format_duration",
]

_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")

_DURATION_UNITS = {
	"ns": 1e-9,
	"us": 1e-6,
	"µs": 1e-6,
	"ms": 1e-3,
	"s": 1.0,
	"m": 60.0,
	"h": 3600.0,
}


def split_host_port(value: str) -> tuple[str, str]:
	"""Split ``host:port`` or ``[v6]:port`` into its parts.

	Returns an empty port when none is present. Bare IPv6 literals without
	brackets are returned whole as the host.
	"""
	raw = str(value or "").strip()
	if not raw:
		return "", ""
	if raw.startswith("["):
		end = raw.find("]")
		if end != -1:
			host = raw[1:end].strip()
			rest = raw[end + 1:]
			if rest.startswith(":"):
				return host, rest[1:].strip()
			return host, ""
	if raw.count(":") == 1:
		host, port = raw.rsplit(":", 1)
		return host.strip(), port.strip()
	return raw, ""


def normalize_endpoint(value: str) -> str:
	"""Validate a peer endpoint and return it in canonical ``host:port`` form.

	Raises:
		ValueError: If host or port are missing or the port is out of range.
	"""
	host, port = split_host_port(value)
	if not host:
		raise ValueError(f"missing host in endpoint {value!r}")
	if not port.isdigit() or not 1 <= int(port) <= 65535:
		raise ValueError(f"invalid port in endpoint {value!r}")
	if ":" in host:
		return f"[{host}]:{int(port)}"
	return f"{host}:{int(port)}"


def normalize_cidrs(values: list[str]) -> list[str]:
	"""Parse CIDR entries, returning them in canonical network form.

	A bare address becomes a host route (/32 or /128).

	Raises:
		ValueError: On the first entry that is not a valid network.
	"""
	result: list[str] = []
	for entry in values:
		entry = entry.strip()
		if not entry:
			continue
		try:
			network = ipaddress.ip_network(entry, strict=False)
		except ValueError as exc:
			raise ValueError(f"invalid CIDR {entry!r}") from exc
		result.append(str(network))
	return result


def parse_duration(value: str | int | float) -> float:
	"""Parse a Go-style duration (``25s``, ``1m30s``, ``10m``) into seconds.

	Plain numbers are taken as seconds. Negative durations are rejected.

	Raises:
		ValueError: If the value cannot be parsed.
	"""
	if isinstance(value, bool):
		raise ValueError(f"invalid duration {value!r}")
	if isinstance(value, (int, float)):
		if value < 0:
			raise ValueError(f"negative duration {value!r}")
		return float(value)

	raw = str(value).strip()
	if not raw:
		raise ValueError("empty duration")
	if raw in ("0", "off"):
		return 0.0
	try:
		seconds = float(raw)
	except ValueError:
		pass
	else:
		if seconds < 0:
			raise ValueError(f"negative duration {value!r}")
		return seconds

	pos = 0
	total = 0.0
	while pos < len(raw):
		match = _DURATION_PART_RE.match(raw, pos)
		if match is None:
			raise ValueError(f"invalid duration {value!r}")
		total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
		pos = match.end()
	return total


def format_duration(seconds: int) -> str:
	"""Render whole seconds the way Go prints a ``time.Duration`` (``1m30s``)."""
	if seconds <= 0:
		return "0s"
	hours, rest = divmod(int(seconds), 3600)
	minutes, secs = divmod(rest, 60)
	out = ""
	if hours:
		out += f"{hours}h"
	if hours or minutes:
		out += f"{minutes}m"
	return out + f"{secs}s"
