#!/usr/bin/env python3
#
# wgrest/services/listing.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Pagination, filtering and sorting for list endpoints."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Sequence, TypeVar

from ..models import Peer

__all__ = [
	"DEFAULT_PER_PAGE",
	"normalize_page",
	"paginate",
	"filter_peers",
	"sort_peers",
	"PEER_SORT_FIELDS",
]

T = TypeVar("T")

DEFAULT_PER_PAGE = 100

_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)

PEER_SORT_FIELDS: dict[str, Callable[[Peer], object]] = {
	"pub_key": lambda p: p.public_key,
	"receive_bytes": lambda p: p.receive_bytes,
	"transmit_bytes": lambda p: p.transmit_bytes,
	"total_bytes": lambda p: p.receive_bytes + p.transmit_bytes,
	"last_handshake_time": lambda p: p.last_handshake_time or _EPOCH,
}


def normalize_page(page: int, per_page: int) -> tuple[int, int]:
	"""Clamp paging input: negative page is 0, non-positive per_page is the default."""
	return max(page, 0), per_page if per_page > 0 else DEFAULT_PER_PAGE


def paginate(items: Sequence[T], page: int, per_page: int) -> tuple[list[T], int]:
	"""Return one page of ``items`` and the total count.

	A page past the end is empty, never an error.
	"""
	page, per_page = normalize_page(page, per_page)
	offset = page * per_page
	return list(items[offset:offset + per_page]), len(items)


def filter_peers(peers: Sequence[Peer], query: str | None) -> list[Peer]:
	"""Case-insensitive substring match on public key, endpoint and allowed IPs."""
	if not query:
		return list(peers)
	needle = query.lower()
	result: list[Peer] = []
	for peer in peers:
		terms = [peer.public_key, peer.endpoint or "", *peer.allowed_ips]
		if any(needle in term.lower() for term in terms):
			result.append(peer)
	return result


def sort_peers(peers: Sequence[Peer], field: str | None) -> list[Peer]:
	"""Sort by ``field`` (``-`` prefix for descending). Stable.

	An empty or unknown field leaves the order unchanged.
	"""
	if not field:
		return list(peers)
	descending = field.startswith("-")
	key = PEER_SORT_FIELDS.get(field[1:] if descending else field)
	if key is None:
		return list(peers)
	return sorted(peers, key=key, reverse=descending)
