#!/usr/bin/env python3
#
# wgrest/models/peers.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""WireGuard peer-related Pydantic models."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, Field, field_serializer, field_validator

from ..utils.network import format_duration


class Peer(BaseModel):
	"""Peer representation (live counters plus the secret-store private key)."""
	public_key: str
	url_safe_public_key: str
	private_key: Optional[str] = None
	preshared_key: Optional[str] = None
	allowed_ips: list[str] = Field(default_factory=list)
	last_handshake_time: Optional[datetime] = None
	persistent_keepalive_interval: int = 0  # seconds, 0 = off
	endpoint: Optional[str] = None
	receive_bytes: int = 0
	transmit_bytes: int = 0

	@property
	def total_bytes(self) -> int:
		return self.receive_bytes + self.transmit_bytes

	@field_serializer("persistent_keepalive_interval", when_used="json")
	def _keepalive_as_duration(self, value: int) -> str:
		return format_duration(value)


class PeerCreateOrUpdate(BaseModel):
	"""Peer create/update payload.

	Keys are optional on create: a fresh key pair is generated when neither
	is given. ``persistent_keepalive_interval`` accepts a duration string
	(``25s``, ``1m``) or plain seconds.
	"""
	private_key: Optional[str] = None
	public_key: Optional[str] = None
	preshared_key: Optional[str] = None
	allowed_ips: Optional[list[str]] = None
	persistent_keepalive_interval: Optional[Union[int, str]] = None
	endpoint: Optional[str] = Field(None, max_length=256)

	@field_validator("private_key", "public_key", "preshared_key", "endpoint")
	@classmethod
	def single_line(cls, v: Optional[str]) -> Optional[str]:
		if v is not None and ("\n" in v or "\r" in v):
			raise ValueError("value contains newline")
		return v
