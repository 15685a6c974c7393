#!/usr/bin/env python3
#
# wgrest/wireguard/keys.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Curve25519 key handling for WireGuard.

Keys are generated and derived in-process with ``cryptography`` so no
`wg genkey`/`wg pubkey` round-trips are needed.
"""

from __future__ import annotations

import base64
import binascii
import os
import re

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey

from ..errors import ValidationError

__all__ = [
	"KEY_LENGTH",
	"generate_private_key",
	"generate_keypair",
	"generate_preshared_key",
	"public_key_from_private",
	"is_valid_key",
	"parse_key",
	"decode_key_ref",
	"url_safe_key",
]

KEY_LENGTH = 32

# Standard base64 of 32 bytes is always 43 chars plus one '=' pad
_WG_KEY_RE = re.compile(r"^[A-Za-z0-9+/]{43}=$")


def _encode(raw: bytes) -> str:
	return base64.b64encode(raw).decode("ascii")


def generate_private_key() -> str:
	"""Generate a new private key (already clamped by X25519)."""
	key = X25519PrivateKey.generate()
	raw = key.private_bytes(
		encoding=serialization.Encoding.Raw,
		format=serialization.PrivateFormat.Raw,
		encryption_algorithm=serialization.NoEncryption(),
	)
	return _encode(raw)


def public_key_from_private(private_key: str) -> str:
	"""Derive the public key for a base64 private key.

	Raises:
		ValidationError: If the private key is not a valid key.
	"""
	raw = parse_key(private_key, "private_key")
	public = X25519PrivateKey.from_private_bytes(raw).public_key()
	return _encode(public.public_bytes(
		encoding=serialization.Encoding.Raw,
		format=serialization.PublicFormat.Raw,
	))


def generate_keypair() -> tuple[str, str]:
	"""Generate a ``(private_key, public_key)`` pair."""
	private_key = generate_private_key()
	return private_key, public_key_from_private(private_key)


def generate_preshared_key() -> str:
	return _encode(os.urandom(KEY_LENGTH))


def is_valid_key(key: str) -> bool:
	"""Check the standard base64 key format (44 chars, 32 bytes)."""
	key = (key or "").strip()
	if not _WG_KEY_RE.fullmatch(key):
		return False
	try:
		return len(base64.b64decode(key, validate=True)) == KEY_LENGTH
	except (binascii.Error, ValueError):
		return False


def parse_key(value: str, field: str) -> bytes:
	"""Decode a standard base64 key, raising a field-specific ValidationError."""
	if not is_valid_key(value):
		raise ValidationError(field, "invalid WireGuard key (must be 44-char base64)")
	return base64.b64decode(value.strip())


def decode_key_ref(ref: str) -> str:
	"""Decode a peer reference from a URL into the canonical standard base64 key.

	URL-safe base64 is tried first, then standard base64 with ``-``/``_``
	mapped back to ``+``/``/``. Padding may be omitted. Anything that does
	not decode to exactly 32 bytes is a validation error, never a not-found.
	"""
	raw_ref = (ref or "").strip()
	if not raw_ref:
		raise ValidationError("public_key", "empty peer key")
	padded = raw_ref + "=" * (-len(raw_ref) % 4)

	raw: bytes | None = None
	try:
		raw = base64.b64decode(padded, altchars=b"-_", validate=True)
	except (binascii.Error, ValueError):
		standard = padded.replace("-", "+").replace("_", "/")
		try:
			raw = base64.b64decode(standard, validate=True)
		except (binascii.Error, ValueError):
			raw = None

	if raw is None or len(raw) != KEY_LENGTH:
		raise ValidationError("public_key", f"invalid peer key {ref!r}")
	return _encode(raw)


def url_safe_key(key: str) -> str:
	"""Standard base64 key to its URL-safe form (padding kept)."""
	return key.replace("+", "-").replace("/", "_")
