#!/usr/bin/env python3
#
# wgrest/wireguard/__init__.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""WireGuard state: config files, live control plane, external tools."""

from .codec import QuickConfig, QuickPeerConfig, parse_config, render_config
from .control import ControlPlane, DeviceConfig, LiveDevice, PeerConfig, WgControlPlane
from .dump import ConfigDumpService, DumpResult
from .secrets import PeerSecretStore
from .store import ConfigStore, DiskBackend, MemoryBackend

__all__ = [
	"QuickConfig",
	"QuickPeerConfig",
	"parse_config",
	"render_config",
	"ControlPlane",
	"DeviceConfig",
	"LiveDevice",
	"PeerConfig",
	"WgControlPlane",
	"ConfigDumpService",
	"DumpResult",
	"PeerSecretStore",
	"ConfigStore",
	"DiskBackend",
	"MemoryBackend",
]
