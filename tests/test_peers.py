#!/usr/bin/env python3
#
# tests/test_peers.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

from datetime import datetime, timezone

import pytest

from wgrest.errors import ConflictError, DeviceNotFoundError, PeerNotFoundError, ValidationError
from wgrest.models import PeerCreateOrUpdate
from wgrest.services.listing import filter_peers, sort_peers
from wgrest.services.peers import build_peer_config
from wgrest.wireguard.codec import parse_config
from wgrest.wireguard.keys import decode_key_ref, generate_keypair, generate_preshared_key, url_safe_key

from conftest import make_peer


def _keys(peers):
	return [p.public_key for p in peers]


def test_sort_by_pub_key_ascending_and_descending() -> None:
	peers = [make_peer(public_key=k) for k in ("b", "c", "a")]

	assert _keys(sort_peers(peers, "pub_key")) == ["a", "b", "c"]
	assert _keys(sort_peers(peers, "-pub_key")) == ["c", "b", "a"]


def test_sort_by_bytes_and_handshake() -> None:
	peers = [
		make_peer(public_key="a", receive_bytes=10, transmit_bytes=1),
		make_peer(public_key="b", receive_bytes=1, transmit_bytes=50),
		make_peer(public_key="c", receive_bytes=5, transmit_bytes=5,
			last_handshake_time=datetime(2024, 1, 1, tzinfo=timezone.utc)),
	]

	assert _keys(sort_peers(peers, "total_bytes")) == ["c", "a", "b"]
	assert _keys(sort_peers(peers, "receive_bytes")) == ["b", "c", "a"]
	assert _keys(sort_peers(peers, "-transmit_bytes")) == ["b", "c", "a"]
	assert _keys(sort_peers(peers, "-last_handshake_time")) == ["c", "a", "b"]


def test_sort_unknown_field_is_noop() -> None:
	peers = [make_peer(public_key=k) for k in ("b", "c", "a")]

	assert _keys(sort_peers(peers, "color")) == ["b", "c", "a"]
	assert _keys(sort_peers(peers, "--pub_key")) == ["b", "c", "a"]
	assert _keys(sort_peers(peers, "")) == ["b", "c", "a"]


def test_filter_matches_key_endpoint_and_allowed_ips() -> None:
	peers = [
		make_peer(public_key="AbC", allowed_ips=["10.0.0.2/32"]),
		make_peer(public_key="xyz", endpoint="vpn.example.com:51820"),
		make_peer(public_key="qqq", allowed_ips=["fd00::5/128"], preshared_key="abc"),
	]

	assert _keys(filter_peers(peers, "abc")) == ["AbC"]
	assert _keys(filter_peers(peers, "EXAMPLE")) == ["xyz"]
	assert _keys(filter_peers(peers, "fd00")) == ["qqq"]
	assert _keys(filter_peers(peers, None)) == ["AbC", "xyz", "qqq"]


def test_decode_key_ref_accepts_both_alphabets() -> None:
	standard = "AAECAwQFBgcICQoLDA0ODxAREhMUFRYXGBkaGxwdHh8="
	url_safe = "-_" + standard[2:]
	_, public_key = generate_keypair()

	assert decode_key_ref(standard) == standard
	assert decode_key_ref(standard.rstrip("=")) == standard
	assert decode_key_ref(url_safe_key(public_key)) == public_key
	assert decode_key_ref(url_safe).startswith("+/")


@pytest.mark.parametrize("ref", ["", "not-a-key", "AAAA", "A" * 60, "!!!!"])
def test_decode_key_ref_rejects_bad_input(ref) -> None:
	with pytest.raises(ValidationError) as exc:
		decode_key_ref(ref)
	assert exc.value.field == "public_key"


def test_build_peer_config_validation() -> None:
	with pytest.raises(ValidationError) as exc:
		build_peer_config("K", PeerCreateOrUpdate(allowed_ips=["10.0.0.300/32"]), update_only=False)
	assert exc.value.field == "allowed_ips"

	with pytest.raises(ValidationError) as exc:
		build_peer_config("K", PeerCreateOrUpdate(endpoint="host-without-port"), update_only=False)
	assert exc.value.field == "endpoint"

	with pytest.raises(ValidationError) as exc:
		build_peer_config("K", PeerCreateOrUpdate(persistent_keepalive_interval="forever"), update_only=False)
	assert exc.value.field == "persistent_keepalive_interval"

	with pytest.raises(ValidationError) as exc:
		build_peer_config("K", PeerCreateOrUpdate(preshared_key="short"), update_only=False)
	assert exc.value.field == "preshared_key"


def test_build_peer_config_normalizes() -> None:
	config = build_peer_config(
		"K",
		PeerCreateOrUpdate(
			allowed_ips=["10.0.0.2", "10.1.0.7/16"],
			endpoint="[fd00::1]:51820",
			persistent_keepalive_interval="1m",
			preshared_key="",
		),
		update_only=True,
	)

	assert config.allowed_ips == ["10.0.0.2/32", "10.1.0.0/16"]
	assert config.replace_allowed_ips is True
	assert config.endpoint == "[fd00::1]:51820"
	assert config.persistent_keepalive == 60
	assert config.preshared_key == ""
	assert config.update_only is True


@pytest.mark.asyncio
async def test_list_filters_sorts_and_paginates(control, peer_service) -> None:
	control.add_device("wg0", peers=[
		make_peer(public_key=k, allowed_ips=[f"10.0.0.{i}/32"]) for i, k in enumerate("dcba", start=2)
	])

	peers, total = await peer_service.list("wg0", 0, 2, None, "pub_key")
	assert total == 4
	assert _keys(peers) == ["a", "b"]

	peers, total = await peer_service.list("wg0", 0, 10, "10.0.0.3", None)
	assert (total, _keys(peers)) == (1, ["c"])

	with pytest.raises(DeviceNotFoundError):
		await peer_service.list("wg9")


@pytest.mark.asyncio
async def test_create_generates_keys_and_snapshots(control, store, secrets, peer_service) -> None:
	control.add_device("wg0")

	peer = await peer_service.create("wg0", PeerCreateOrUpdate(allowed_ips=["10.0.0.2/32"]))

	assert peer.private_key
	assert peer.allowed_ips == ["10.0.0.2/32"]
	assert secrets.get(peer.public_key) == peer.private_key
	cfg = store.load("wg0")
	assert [p.public_key for p in cfg.peers] == [peer.public_key]
	assert peer.private_key not in store.backend.read_bytes(store.resolve("wg0")).decode()


@pytest.mark.asyncio
async def test_create_with_private_key_derives_public(control, peer_service) -> None:
	control.add_device("wg0")
	private_key, public_key = generate_keypair()

	peer = await peer_service.create("wg0", PeerCreateOrUpdate(private_key=private_key))

	assert peer.public_key == public_key

	with pytest.raises(ConflictError) as exc:
		await peer_service.create("wg0", PeerCreateOrUpdate(public_key=public_key))
	assert exc.value.code == "peer_exists"


@pytest.mark.asyncio
async def test_create_rejects_mismatched_keys(control, peer_service) -> None:
	control.add_device("wg0")
	private_key, _ = generate_keypair()
	_, other_public = generate_keypair()

	with pytest.raises(ValidationError) as exc:
		await peer_service.create("wg0", PeerCreateOrUpdate(private_key=private_key, public_key=other_public))
	assert exc.value.field == "public_key"


@pytest.mark.asyncio
async def test_create_with_public_key_only_stores_no_secret(control, secrets, peer_service) -> None:
	control.add_device("wg0")
	_, public_key = generate_keypair()

	peer = await peer_service.create("wg0", PeerCreateOrUpdate(public_key=public_key))

	assert peer.private_key is None
	assert secrets.get(public_key) is None


@pytest.mark.asyncio
async def test_get_by_url_safe_key_attaches_private_key(control, secrets, peer_service) -> None:
	private_key, public_key = generate_keypair()
	control.add_device("wg0", peers=[make_peer(public_key=public_key)])
	secrets.put(public_key, private_key)

	peer = await peer_service.get("wg0", url_safe_key(public_key))

	assert peer.public_key == public_key
	assert peer.private_key == private_key

	with pytest.raises(PeerNotFoundError):
		await peer_service.get("wg0", url_safe_key(generate_keypair()[1]))
	with pytest.raises(ValidationError):
		await peer_service.get("wg0", "garbage")


@pytest.mark.asyncio
async def test_update_replaces_allowed_ips(control, store, peer_service) -> None:
	_, public_key = generate_keypair()
	control.add_device("wg0", peers=[make_peer(public_key=public_key, allowed_ips=["10.0.0.2/32"])])

	peer = await peer_service.update(
		"wg0",
		url_safe_key(public_key),
		PeerCreateOrUpdate(allowed_ips=["10.0.0.3/32"], persistent_keepalive_interval=25),
	)

	assert peer.allowed_ips == ["10.0.0.3/32"]
	assert peer.persistent_keepalive_interval == 25
	assert store.load("wg0").peers[0].allowed_ips == ["10.0.0.3/32"]
	(_, config), = control.configure_calls
	assert config.peers[0].update_only is True


@pytest.mark.asyncio
async def test_update_preshared_key_set_and_clear(control, peer_service) -> None:
	_, public_key = generate_keypair()
	control.add_device("wg0", peers=[make_peer(public_key=public_key)])
	psk = generate_preshared_key()

	peer = await peer_service.update("wg0", public_key, PeerCreateOrUpdate(preshared_key=psk))
	assert peer.preshared_key == psk

	peer = await peer_service.update("wg0", public_key, PeerCreateOrUpdate(preshared_key=""))
	assert peer.preshared_key is None


@pytest.mark.asyncio
async def test_update_missing_peer(control, peer_service) -> None:
	control.add_device("wg0")

	with pytest.raises(PeerNotFoundError):
		await peer_service.update("wg0", generate_keypair()[1], PeerCreateOrUpdate(endpoint="1.2.3.4:1"))
	assert control.configure_calls == []


@pytest.mark.asyncio
async def test_delete_removes_peer_secret_and_snapshots(control, store, secrets, peer_service) -> None:
	private_key, public_key = generate_keypair()
	control.add_device("wg0", peers=[make_peer(public_key=public_key)])
	secrets.put(public_key, private_key)
	store.save_raw("wg0", f"[Interface]\nAddress = 10.0.0.1/24\n\n[Peer]\nPublicKey = {public_key}\n".encode())

	peer = await peer_service.delete("wg0", url_safe_key(public_key))

	assert peer.public_key == public_key
	assert control.devices["wg0"].peers == []
	assert secrets.get(public_key) is None
	cfg = store.load("wg0")
	assert cfg.peers == []
	assert cfg.addresses == ["10.0.0.1/24"]


@pytest.mark.asyncio
async def test_quick_config_renders_client_file(control, store, secrets, peer_service) -> None:
	private_key, public_key = generate_keypair()
	live = control.add_device("wg0", listen_port=51820, peers=[
		make_peer(public_key=public_key, allowed_ips=["10.0.0.2/32"], preshared_key="PSK"),
	])
	secrets.put(public_key, private_key)
	store.save_raw("wg0", b"[Interface]\nDNS = 10.0.0.1\n")

	text = await peer_service.quick_config("wg0", url_safe_key(public_key), host="vpn.example.com")

	cfg = parse_config(text)
	assert cfg.private_key == private_key
	assert cfg.addresses == ["10.0.0.2/32"]
	assert cfg.dns == ["10.0.0.1"]
	(server,) = cfg.peers
	assert server.public_key == live.device.public_key
	assert server.preshared_key == "PSK"
	assert server.endpoint == "vpn.example.com:51820"
	assert server.allowed_ips == ["0.0.0.0/0", "::/0"]


@pytest.mark.asyncio
async def test_quick_config_custom_allowed_ips_and_ipv6_host(control, peer_service) -> None:
	_, public_key = generate_keypair()
	control.add_device("wg0", listen_port=51820, peers=[make_peer(public_key=public_key)])

	text = await peer_service.quick_config("wg0", public_key, host="fd00::1", allowed_ips=["10.0.0.0/24"])

	cfg = parse_config(text)
	assert cfg.peers[0].endpoint == "[fd00::1]:51820"
	assert cfg.peers[0].allowed_ips == ["10.0.0.0/24"]
	assert cfg.private_key == ""


@pytest.mark.asyncio
async def test_quick_config_bracketed_ipv6_host_is_not_wrapped_twice(control, peer_service) -> None:
	_, public_key = generate_keypair()
	control.add_device("wg0", listen_port=51820, peers=[make_peer(public_key=public_key)])

	text = await peer_service.quick_config("wg0", public_key, host="[fd00::1]")

	assert parse_config(text).peers[0].endpoint == "[fd00::1]:51820"
