#!/usr/bin/env python3
#
# main.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

# wgrest - WireGuard configuration REST API
# Local development entry point
#

from wgrest.main import run

if __name__ == "__main__":
	run()
