#!/usr/bin/env python3
#
# wgrest/wireguard/secrets.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""Peer private-key store.

The control plane never knows a peer's private key, so keys generated or
supplied on peer creation are kept here, one file per peer named after
the URL-safe public key. With a secret configured the value is encrypted
with the vault.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from ..errors import StorageError
from ..utils import vault
from .keys import url_safe_key
from .store import DiskBackend, StorageBackend

__all__ = ["PeerSecretStore"]

_SUFFIX = ".conf"


class PeerSecretStore:
	"""Key-value store: peer public key -> private key."""

	def __init__(
		self,
		directory: Path | str,
		backend: StorageBackend | None = None,
		*,
		pepper: str = "",
		logger: logging.Logger | None = None,
	) -> None:
		self._dir = Path(directory)
		self._backend: StorageBackend = backend if backend is not None else DiskBackend()
		self._pepper = pepper
		self._log = logger or logging.getLogger(__name__)
		self._lock = threading.Lock()

	def _path(self, public_key: str) -> Path:
		# URL-safe base64 never contains '/' so the name cannot escape the directory
		return self._dir / (url_safe_key(public_key) + _SUFFIX)

	def get(self, public_key: str) -> str | None:
		"""Private key for ``public_key``, or None if none was stored.

		Raises:
			StorageError: On I/O errors other than absence, or undecryptable content.
		"""
		path = self._path(public_key)
		try:
			data = self._backend.read_bytes(path)
		except FileNotFoundError:
			return None
		except OSError as exc:
			raise StorageError(f"cannot read peer secret {path}: {exc}") from exc

		for line in data.decode("utf-8", errors="replace").splitlines():
			key, sep, value = line.partition("=")
			if sep and key.strip().lower() == "privatekey":
				value = value.strip()
				if not vault.is_encrypted(value):
					if self._pepper:
						self._log.debug("PEER_SECRET_PLAINTEXT public_key=%s", public_key[:16])
					return value
				try:
					return vault.decrypt(value, self._pepper)
				except ValueError as exc:
					raise StorageError(f"cannot decrypt peer secret {path}") from exc
		return None

	def put(self, public_key: str, private_key: str) -> None:
		"""Store a private key atomically.

		Raises:
			StorageError: If the key cannot be written.
		"""
		value = vault.encrypt(private_key, self._pepper) if self._pepper else private_key
		data = f"PrivateKey = {value}\n".encode("utf-8")
		path = self._path(public_key)
		with self._lock:
			try:
				self._backend.make_dirs(self._dir)
				tmp = self._backend.write_temp(self._dir, ".peer.", data)
			except OSError as exc:
				raise StorageError(f"cannot write peer secret in {self._dir}: {exc}") from exc
			try:
				self._backend.replace(tmp, path)
			except OSError as exc:
				try:
					self._backend.remove(tmp)
				except OSError:
					self._log.warning("PEER_SECRET_TMP_CLEANUP_FAILED path=%s", tmp)
				raise StorageError(f"cannot write peer secret {path}: {exc}") from exc
		self._log.debug("PEER_SECRET_SAVED public_key=%s", public_key[:16])

	def delete(self, public_key: str) -> bool:
		"""Forget a peer's private key. Returns False if none was stored."""
		path = self._path(public_key)
		with self._lock:
			try:
				self._backend.remove(path)
			except FileNotFoundError:
				return False
			except OSError as exc:
				raise StorageError(f"cannot remove peer secret {path}: {exc}") from exc
		self._log.debug("PEER_SECRET_DELETED public_key=%s", public_key[:16])
		return True
