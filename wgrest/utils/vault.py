#!/usr/bin/env python3
#
# wgrest/utils/vault.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""
Fernet-based encryption for peer private keys at rest.

Each value is encrypted with a unique Fernet key derived from:
  - A random 16-byte salt (stored alongside the ciphertext)
  - The secret key (pepper) from WGREST_SECRET_KEY

Storage format:  "vault:1:<salt_hex>:<fernet_token>"
  - "vault:1" = version tag for forward compatibility
  - salt_hex  = 32-char hex-encoded random salt
  - fernet_token = base64 Fernet ciphertext (contains its own IV + HMAC)
"""

from __future__ import annotations

import base64
import hashlib
import logging
import os

from cryptography.fernet import Fernet, InvalidToken

_log = logging.getLogger(__name__)

__all__ = ["encrypt", "decrypt", "is_encrypted"]

_VAULT_PREFIX = "vault:1:"
_KDF_ITERATIONS = 480_000


def _derive_key(pepper: str, salt: bytes) -> bytes:
	"""Derive a Fernet key from pepper + salt via PBKDF2-SHA256."""
	dk = hashlib.pbkdf2_hmac("sha256", pepper.encode("utf-8"), salt, iterations=_KDF_ITERATIONS)
	return base64.urlsafe_b64encode(dk)


def encrypt(plaintext: str, pepper: str) -> str:
	"""Encrypt a secret into the ``vault:1:`` format."""
	if not pepper:
		raise ValueError("WGREST_SECRET_KEY is not set")
	salt = os.urandom(16)
	token = Fernet(_derive_key(pepper, salt)).encrypt(plaintext.encode("utf-8"))
	return f"{_VAULT_PREFIX}{salt.hex()}:{token.decode('ascii')}"


def decrypt(stored: str, pepper: str) -> str:
	"""Decrypt a ``vault:1:`` value.

	Plaintext values are returned unchanged, so keys written before a secret
	was configured stay readable.

	Raises:
		ValueError: If the value is encrypted and cannot be decrypted.
	"""
	if not stored or not stored.startswith(_VAULT_PREFIX):
		return stored
	if not pepper:
		raise ValueError("encrypted secret found but WGREST_SECRET_KEY is not set")

	try:
		salt_hex, fernet_token = stored[len(_VAULT_PREFIX):].split(":", 1)
		salt = bytes.fromhex(salt_hex)
		if len(salt) != 16:
			raise ValueError("Invalid salt length")
		return Fernet(_derive_key(pepper, salt)).decrypt(fernet_token.encode("ascii")).decode("utf-8")
	except (InvalidToken, ValueError) as exc:
		_log.error("VAULT_DECRYPT_FAILED")
		raise ValueError("Cannot decrypt secret, wrong WGREST_SECRET_KEY?") from exc


def is_encrypted(value: str | None) -> bool:
	return bool(value and value.startswith(_VAULT_PREFIX))
