#!/usr/bin/env python3
#
# tests/test_wg_control.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

import os
from datetime import datetime, timezone

import pytest

from wgrest.errors import ConflictError, ControlPlaneError, DeviceNotFoundError, PeerNotFoundError, ValidationError
from wgrest.models import DeviceCreateOrUpdate
from wgrest.wireguard.control import DeviceConfig, PeerConfig, WgControlPlane, build_wg_set_args, parse_wg_dump
from wgrest.wireguard.keys import generate_keypair
from wgrest.wireguard.process import CommandResult, wg_version

from conftest import FakeRunner, make_peer

ALL_DUMP = (
	"wg0\tPRIV0\tPUB0\t51820\toff\n"
	"wg0\tPEER1\t(none)\t1.2.3.4:51820\t10.0.0.2/32,fd00::2/128\t1700000000\t100\t200\t25\n"
	"wg0\tPEER2\tPSK2\t(none)\t(none)\t0\t1\t2\toff\n"
	"wg1\tPRIV1\tPUB1\t51821\t0xca6c\n"
)

DEVICE_DUMP = (
	"PRIV0\tPUB0\t51820\toff\n"
	"PEER1\t(none)\t(none)\t10.0.0.2/32\t0\t5\t6\toff\n"
)


def test_parse_all_dump() -> None:
	wg0, wg1 = parse_wg_dump(ALL_DUMP)

	assert wg0.device.name == "wg0"
	assert wg0.device.private_key == "PRIV0"
	assert wg0.device.listen_port == 51820
	assert wg0.device.firewall_mark == 0
	assert wg0.device.running is True
	assert wg0.device.peers_count == 2
	assert wg0.device.total_receive_bytes == 101
	assert wg0.device.total_transmit_bytes == 202

	peer1, peer2 = wg0.peers
	assert peer1.preshared_key is None
	assert peer1.endpoint == "1.2.3.4:51820"
	assert peer1.allowed_ips == ["10.0.0.2/32", "fd00::2/128"]
	assert peer1.last_handshake_time == datetime.fromtimestamp(1700000000, tz=timezone.utc)
	assert peer1.persistent_keepalive_interval == 25
	assert peer2.preshared_key == "PSK2"
	assert peer2.endpoint is None
	assert peer2.allowed_ips == []
	assert peer2.last_handshake_time is None
	assert peer2.persistent_keepalive_interval == 0

	assert wg1.device.firewall_mark == 0xCA6C
	assert wg1.peers == []


def test_parse_device_dump_prepends_name() -> None:
	(live,) = parse_wg_dump(DEVICE_DUMP, "wg0")

	assert live.device.name == "wg0"
	assert [p.public_key for p in live.peers] == ["PEER1"]
	assert live.device.total_transmit_bytes == 6


def test_parse_ignores_blank_and_odd_lines() -> None:
	assert parse_wg_dump("\n\nnot\ta\tdump\n") == []


def _secret_file(secret):
	return f"<file:{secret}>"


def test_build_wg_set_args_device_fields_and_new_peer() -> None:
	config = DeviceConfig(
		private_key="PRIV",
		listen_port=51820,
		firewall_mark=0,
		peers=[PeerConfig(
			public_key="NEW",
			preshared_key="PSK",
			endpoint="1.2.3.4:1",
			persistent_keepalive=25,
			allowed_ips=["10.0.0.2/32"],
		)],
	)

	args = build_wg_set_args("wg0", config, {}, _secret_file)

	assert args == [
		"wg", "set", "wg0",
		"private-key", "<file:PRIV>",
		"listen-port", "51820",
		"fwmark", "off",
		"peer", "NEW",
		"preshared-key", "<file:PSK>",
		"endpoint", "1.2.3.4:1",
		"persistent-keepalive", "25",
		"allowed-ips", "10.0.0.2/32",
	]


def test_build_wg_set_args_merges_or_replaces_allowed_ips() -> None:
	existing = {"P": make_peer(public_key="P", allowed_ips=["10.0.0.2/32"])}

	merged = build_wg_set_args(
		"wg0", DeviceConfig(peers=[PeerConfig(public_key="P", allowed_ips=["10.0.0.3/32"])]), existing, _secret_file,
	)
	replaced = build_wg_set_args(
		"wg0",
		DeviceConfig(peers=[PeerConfig(public_key="P", allowed_ips=["10.0.0.3/32"], replace_allowed_ips=True)]),
		existing,
		_secret_file,
	)

	assert merged[-1] == "10.0.0.2/32,10.0.0.3/32"
	assert replaced[-1] == "10.0.0.3/32"


def test_build_wg_set_args_clear_psk_and_keepalive_off() -> None:
	existing = {"P": make_peer(public_key="P")}
	config = DeviceConfig(peers=[PeerConfig(public_key="P", update_only=True, preshared_key="", persistent_keepalive=0)])

	args = build_wg_set_args("wg0", config, existing, _secret_file)

	assert args == ["wg", "set", "wg0", "peer", "P", "preshared-key", "/dev/null", "persistent-keepalive", "off"]


def test_build_wg_set_args_unknown_peer() -> None:
	with pytest.raises(PeerNotFoundError):
		build_wg_set_args("wg0", DeviceConfig(peers=[PeerConfig(public_key="X", remove=True)]), {}, _secret_file)
	with pytest.raises(PeerNotFoundError):
		build_wg_set_args("wg0", DeviceConfig(peers=[PeerConfig(public_key="X", update_only=True)]), {}, _secret_file)

	existing = {"X": make_peer(public_key="X")}
	args = build_wg_set_args("wg0", DeviceConfig(peers=[PeerConfig(public_key="X", remove=True)]), existing, _secret_file)
	assert args == ["wg", "set", "wg0", "peer", "X", "remove"]


@pytest.mark.asyncio
async def test_list_and_get_devices() -> None:
	runner = FakeRunner()
	runner.respond("wg", "show", "all", "dump", result=CommandResult(0, ALL_DUMP, ""))
	runner.respond("wg", "show", "wg0", "dump", result=CommandResult(0, DEVICE_DUMP, ""))
	runner.respond("wg", "show", "wg9", "dump", result=CommandResult(1, "", "Unable to access interface: No such device"))
	runner.respond("wg", "show", "wg8", "dump", result=CommandResult(1, "", "Permission denied"))
	control = WgControlPlane(runner=runner)

	assert [d.device.name for d in await control.list_devices()] == ["wg0", "wg1"]
	assert (await control.get_device("wg0")).device.peers_count == 1
	with pytest.raises(DeviceNotFoundError):
		await control.get_device("wg9")
	with pytest.raises(ControlPlaneError):
		await control.get_device("wg8")


@pytest.mark.asyncio
async def test_configure_device_passes_keys_through_removed_temp_files() -> None:
	runner = FakeRunner()
	runner.respond("wg", "show", "wg0", "dump", result=CommandResult(0, DEVICE_DUMP, ""))
	seen: dict[str, str] = {}
	control = WgControlPlane(runner=runner)
	private_key, _ = generate_keypair()

	original = runner.__call__

	async def _capture(*args, **kwargs):
		if args[:2] == ("wg", "set"):
			path = args[args.index("private-key") + 1]
			seen["path"] = path
			with open(path, encoding="utf-8") as fh:
				seen["content"] = fh.read()
			seen["mode"] = oct(os.stat(path).st_mode & 0o777)
		return await original(*args, **kwargs)

	control._run = _capture
	await control.configure_device("wg0", DeviceConfig(private_key=private_key))

	assert seen["content"] == private_key
	assert seen["mode"] == "0o600"
	assert not os.path.exists(seen["path"])


@pytest.mark.asyncio
async def test_configure_device_noop_skips_wg_set() -> None:
	runner = FakeRunner()
	runner.respond("wg", "show", "wg0", "dump", result=CommandResult(0, DEVICE_DUMP, ""))

	await WgControlPlane(runner=runner).configure_device("wg0", DeviceConfig())

	assert runner.calls == [("wg", "show", "wg0", "dump")]


@pytest.mark.asyncio
async def test_create_device_conflict_and_prepare() -> None:
	runner = FakeRunner()
	runner.respond("wg", "show", "wg0", "dump", result=CommandResult(0, DEVICE_DUMP, ""))
	runner.respond("wg", "show", "wg1", "dump", result=CommandResult(1, "", "No such device"))
	control = WgControlPlane(runner=runner)

	with pytest.raises(ConflictError):
		await control.create_device(DeviceCreateOrUpdate(name="wg0"))

	live = await control.create_device(DeviceCreateOrUpdate(name="wg1", listen_port=51821))
	assert live.device.running is False
	assert live.device.public_key
	assert live.device.listen_port == 51821

	with pytest.raises(ValidationError):
		await control.update_device("wg0", DeviceCreateOrUpdate(private_key="bad"))


@pytest.mark.asyncio
async def test_delete_device_uses_ip_link() -> None:
	runner = FakeRunner()
	await WgControlPlane(runner=runner).delete_device("wg0")

	assert runner.calls == [("ip", "link", "delete", "dev", "wg0")]


@pytest.mark.asyncio
async def test_wg_version() -> None:
	runner = FakeRunner()
	runner.respond("wg", "--version", result=CommandResult(0, "wireguard-tools v1.0.20210914 - https://git.zx2c4.com/wireguard-tools/\n", ""))
	assert await wg_version(runner) == "v1.0.20210914"

	runner.respond("wg", "--version", result=CommandResult(127, "", "wg: command not found"))
	assert await wg_version(runner) == "unknown"
