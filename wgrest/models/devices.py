#!/usr/bin/env python3
#
# wgrest/models/devices.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""WireGuard device Pydantic models."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator


def _reject_newlines(values: Optional[list[str]]) -> Optional[list[str]]:
	"""Prevent newline injection into the rendered wg-quick file."""
	if values is None:
		return values
	for value in values:
		if "\n" in value or "\r" in value:
			raise ValueError(f"value contains newline: {value!r}")
	return [v.strip() for v in values if v.strip()]


class Device(BaseModel):
	"""A WireGuard interface as seen by callers: live state plus persisted intent."""
	name: str
	listen_port: int = 0
	public_key: str = ""
	private_key: Optional[str] = None
	firewall_mark: int = 0

	# wg-quick only options, never known to the kernel
	addresses: list[str] = Field(default_factory=list)
	dns: list[str] = Field(default_factory=list)
	mtu: int = 0
	table: str = ""
	pre_up: list[str] = Field(default_factory=list)
	post_up: list[str] = Field(default_factory=list)
	pre_down: list[str] = Field(default_factory=list)
	post_down: list[str] = Field(default_factory=list)

	# Derived, never persisted
	running: bool = False
	peers_count: int = 0
	total_receive_bytes: int = 0
	total_transmit_bytes: int = 0


class DeviceCreateOrUpdate(BaseModel):
	"""Device create/update payload. Only fields that are set are applied."""
	name: Optional[str] = Field(None, max_length=15)
	listen_port: Optional[int] = Field(None, ge=0, le=65535)
	private_key: Optional[str] = None
	firewall_mark: Optional[int] = Field(None, ge=0, le=0xFFFFFFFF)
	addresses: Optional[list[str]] = None
	dns: Optional[list[str]] = None
	mtu: Optional[int] = Field(None, ge=0, le=65535)
	table: Optional[str] = Field(None, max_length=64)
	pre_up: Optional[list[str]] = None
	post_up: Optional[list[str]] = None
	pre_down: Optional[list[str]] = None
	post_down: Optional[list[str]] = None

	@field_validator("addresses", "dns", "pre_up", "post_up", "pre_down", "post_down")
	@classmethod
	def no_newlines(cls, v: Optional[list[str]]) -> Optional[list[str]]:
		return _reject_newlines(v)

	@field_validator("table")
	@classmethod
	def table_single_line(cls, v: Optional[str]) -> Optional[str]:
		if v is not None and ("\n" in v or "\r" in v):
			raise ValueError("table contains newline")
		return v
