#!/usr/bin/env python3
#
# wgrest/models/__init__.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Pydantic models for wgrest."""

from .devices import (
	Device,
	DeviceCreateOrUpdate,
)
from .peers import (
	Peer,
	PeerCreateOrUpdate,
)

__all__ = [
	# Devices
	"Device",
	"DeviceCreateOrUpdate",
	# Peers
	"Peer",
	"PeerCreateOrUpdate",
]
