#!/usr/bin/env python3
#
# wgrest/api/peers.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""WireGuard peer endpoints.

Peers are addressed by their URL-safe base64 public key.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ..models import Peer, PeerCreateOrUpdate
from ..services.listing import DEFAULT_PER_PAGE, normalize_page
from ..services.peers import PeerService
from ..utils.deps import get_peer_service
from .response import list_response, text_response

router = APIRouter(tags=["peers"])

__all__ = ["router"]


@router.get("/devices/{name}/peers/")
async def list_peers(
	name: str,
	request: Request,
	page: int = Query(0),
	per_page: int = Query(DEFAULT_PER_PAGE),
	q: Optional[str] = Query(None, max_length=256),
	sort: Optional[str] = Query(None, max_length=64),
	service: PeerService = Depends(get_peer_service),
):
	"""List live peers; ``q`` filters, ``sort`` orders (``-`` for descending)."""
	page, per_page = normalize_page(page, per_page)
	peers, total = await service.list(name, page, per_page, q, sort)
	return list_response(request, peers, page=page, per_page=per_page, total=total)


@router.post("/devices/{name}/peers/", response_model=Peer, status_code=201)
async def create_peer(
	name: str,
	payload: PeerCreateOrUpdate,
	service: PeerService = Depends(get_peer_service),
):
	"""Add a peer. Keys are generated when none are supplied."""
	return await service.create(name, payload)


@router.get("/devices/{name}/peers/{url_safe_public_key}/", response_model=Peer)
async def get_peer(
	name: str,
	url_safe_public_key: str,
	service: PeerService = Depends(get_peer_service),
):
	return await service.get(name, url_safe_public_key)


@router.patch("/devices/{name}/peers/{url_safe_public_key}/", response_model=Peer)
async def update_peer(
	name: str,
	url_safe_public_key: str,
	payload: PeerCreateOrUpdate,
	service: PeerService = Depends(get_peer_service),
):
	"""Update a peer. Supplied allowed IPs replace the existing list."""
	return await service.update(name, url_safe_public_key, payload)


@router.delete("/devices/{name}/peers/{url_safe_public_key}/", response_model=Peer)
async def delete_peer(
	name: str,
	url_safe_public_key: str,
	service: PeerService = Depends(get_peer_service),
):
	return await service.delete(name, url_safe_public_key)


@router.get("/devices/{name}/peers/{url_safe_public_key}/quick.conf")
async def peer_quick_config(
	name: str,
	url_safe_public_key: str,
	host: Optional[str] = Query(None, max_length=253),
	allowed_ips: Optional[list[str]] = Query(None),
	service: PeerService = Depends(get_peer_service),
):
	"""Client-side wg-quick file for a peer."""
	client_allowed = None
	if allowed_ips:
		client_allowed = [ip.strip() for item in allowed_ips for ip in item.split(",") if ip.strip()]
	body = await service.quick_config(name, url_safe_public_key, host=host, allowed_ips=client_allowed)
	return text_response(body, f"{name}.conf")
