#!/usr/bin/env python3
#
# wgrest/wireguard/store.py
# Copyright (C) 2025-2026 Gill-Bates http://github.com/Gill-Bates
#

"""wg-quick config file store over an ordered directory search path.

Reads scan the directories in order and the first existing ``<name>.conf``
wins. New files land in the first directory. Every write is a temp file in
the owning directory renamed over the target, serialized by one lock per
store, so readers only ever see a complete old or complete new file.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Iterable, Protocol

from ..errors import ConfigNotFoundError, StorageError, ValidationError
from ..models import Device, Peer
from ..utils.config import ConfigValidationError
from .codec import QuickConfig, config_from_device, parse_config, render_config

__all__ = [
	"StorageBackend",
	"DiskBackend",
	"MemoryBackend",
	"ConfigStore",
	"validate_device_name",
]

# Linux IFNAMSIZ is 16 including NUL; wg-quick accepts this character set
_DEVICE_NAME_RE = re.compile(r"^[a-zA-Z0-9_=+.-]{1,15}$")

_CONF_SUFFIX = ".conf"
_FILE_MODE = 0o600
_DIR_MODE = 0o700


def _is_valid_name(name: str) -> bool:
	return isinstance(name, str) and bool(_DEVICE_NAME_RE.fullmatch(name)) and not name.startswith(".")


def validate_device_name(name: str) -> str:
	"""Validate a device name before it is joined onto a directory.

	Raises:
		ValidationError: If the name could escape the directory or is not a valid interface name.
	"""
	if not _is_valid_name(name):
		raise ValidationError("name", f"invalid device name {name!r}")
	return name


class StorageBackend(Protocol):
	"""Filesystem capability used by the stores."""

	def is_file(self, path: Path) -> bool: ...

	def read_bytes(self, path: Path) -> bytes: ...

	def list_dir(self, directory: Path) -> list[str]: ...

	def make_dirs(self, directory: Path) -> None: ...

	def write_temp(self, directory: Path, prefix: str, data: bytes) -> Path: ...

	def replace(self, source: Path, target: Path) -> None: ...

	def remove(self, path: Path) -> None: ...


class DiskBackend:
	"""Backend over the real filesystem."""

	def is_file(self, path: Path) -> bool:
		return path.is_file()

	def read_bytes(self, path: Path) -> bytes:
		return path.read_bytes()

	def list_dir(self, directory: Path) -> list[str]:
		return sorted(os.listdir(directory))

	def make_dirs(self, directory: Path) -> None:
		directory.mkdir(mode=_DIR_MODE, parents=True, exist_ok=True)

	def write_temp(self, directory: Path, prefix: str, data: bytes) -> Path:
		fd, tmp_path = tempfile.mkstemp(prefix=prefix, suffix=".tmp", dir=directory)
		try:
			os.fchmod(fd, _FILE_MODE)
			view = memoryview(data)
			while view:
				written = os.write(fd, view)
				view = view[written:]
			os.fsync(fd)
		except OSError:
			os.close(fd)
			os.unlink(tmp_path)
			raise
		os.close(fd)
		return Path(tmp_path)

	def replace(self, source: Path, target: Path) -> None:
		os.replace(source, target)

	def remove(self, path: Path) -> None:
		os.unlink(path)


class MemoryBackend:
	"""Dict-backed backend for tests and dry runs.

	Directories are tracked explicitly so a missing directory behaves like
	on disk (``list_dir`` raises FileNotFoundError).
	"""

	def __init__(self, directories: Iterable[Path | str] = ()) -> None:
		self.files: dict[Path, bytes] = {}
		self.directories: set[Path] = {Path(d) for d in directories}
		self._counter = 0

	def is_file(self, path: Path) -> bool:
		return Path(path) in self.files

	def read_bytes(self, path: Path) -> bytes:
		try:
			return self.files[Path(path)]
		except KeyError:
			raise FileNotFoundError(str(path)) from None

	def list_dir(self, directory: Path) -> list[str]:
		directory = Path(directory)
		if directory not in self.directories:
			raise FileNotFoundError(str(directory))
		return sorted(p.name for p in self.files if p.parent == directory)

	def make_dirs(self, directory: Path) -> None:
		directory = Path(directory)
		self.directories.add(directory)
		self.directories.update(directory.parents)

	def write_temp(self, directory: Path, prefix: str, data: bytes) -> Path:
		directory = Path(directory)
		if directory not in self.directories:
			raise FileNotFoundError(str(directory))
		self._counter += 1
		path = directory / f"{prefix}{self._counter}.tmp"
		self.files[path] = bytes(data)
		return path

	def replace(self, source: Path, target: Path) -> None:
		try:
			data = self.files.pop(Path(source))
		except KeyError:
			raise FileNotFoundError(str(source)) from None
		self.files[Path(target)] = data

	def remove(self, path: Path) -> None:
		try:
			del self.files[Path(path)]
		except KeyError:
			raise FileNotFoundError(str(path)) from None


class ConfigStore:
	"""Ordered multi-directory store of ``<name>.conf`` files."""

	def __init__(
		self,
		config_dirs: Iterable[Path | str],
		backend: StorageBackend | None = None,
		logger: logging.Logger | None = None,
	) -> None:
		self._dirs = [Path(d) for d in config_dirs]
		if not self._dirs:
			raise ConfigValidationError("at least one config directory is required")
		self._backend: StorageBackend = backend if backend is not None else DiskBackend()
		self._log = logger or logging.getLogger(__name__)
		self._lock = threading.Lock()

	@property
	def config_dirs(self) -> list[Path]:
		return list(self._dirs)

	@property
	def backend(self) -> StorageBackend:
		return self._backend

	def _find(self, name: str) -> Path | None:
		filename = validate_device_name(name) + _CONF_SUFFIX
		for directory in self._dirs:
			path = directory / filename
			if self._backend.is_file(path):
				return path
		return None

	def resolve(self, name: str) -> Path:
		"""Path of the first existing config, else the path in the first directory."""
		found = self._find(name)
		if found is not None:
			return found
		return self._dirs[0] / (name + _CONF_SUFFIX)

	def owning_directory(self, name: str) -> Path:
		found = self._find(name)
		return found.parent if found is not None else self._dirs[0]

	def exists(self, name: str) -> bool:
		return self._find(name) is not None

	def list(self) -> list[str]:
		"""Device names across all directories, de-duplicated in first-seen order."""
		seen: dict[str, None] = {}
		for directory in self._dirs:
			try:
				entries = self._backend.list_dir(directory)
			except OSError as exc:
				self._log.debug("CONFIG_DIR_SKIPPED path=%s error=%s", directory, exc)
				continue
			for entry in entries:
				if not entry.endswith(_CONF_SUFFIX):
					continue
				name = entry[: -len(_CONF_SUFFIX)]
				if not _is_valid_name(name):
					continue
				if not self._backend.is_file(directory / entry):
					continue
				seen.setdefault(name, None)
		return list(seen)

	def load(self, name: str) -> QuickConfig:
		"""Load and parse a device config.

		Raises:
			ConfigNotFoundError: If no directory holds ``<name>.conf``.
			StorageError: On any other read failure.
		"""
		path = self._find(name)
		if path is None:
			raise ConfigNotFoundError(name)
		try:
			data = self._backend.read_bytes(path)
		except FileNotFoundError:
			raise ConfigNotFoundError(name) from None
		except OSError as exc:
			raise StorageError(f"cannot read {path}: {exc}") from exc
		return parse_config(data.decode("utf-8", errors="replace"))

	def save(self, name: str, device: Device, peers: Iterable[Peer]) -> Path:
		"""Render a device and its peers and write them atomically."""
		text = render_config(config_from_device(device, peers))
		return self.save_raw(name, text.encode("utf-8"))

	def save_raw(self, name: str, data: bytes) -> Path:
		"""Atomically write already-rendered config bytes.

		Raises:
			StorageError: If the temp file cannot be written or renamed.
		"""
		validate_device_name(name)
		with self._lock:
			directory = self.owning_directory(name)
			target = directory / (name + _CONF_SUFFIX)
			try:
				self._backend.make_dirs(directory)
				tmp = self._backend.write_temp(directory, f".{name}.", data)
			except OSError as exc:
				raise StorageError(f"cannot write temp file in {directory}: {exc}") from exc
			try:
				self._backend.replace(tmp, target)
			except OSError as exc:
				try:
					self._backend.remove(tmp)
				except OSError:
					self._log.warning("CONFIG_TMP_CLEANUP_FAILED path=%s", tmp)
				raise StorageError(f"cannot replace {target}: {exc}") from exc
		self._log.info("CONFIG_SAVED name=%s path=%s", name, target)
		return target

	def delete(self, name: str) -> bool:
		"""Remove the resolved config file. Returns False if none existed."""
		with self._lock:
			path = self._find(name)
			if path is None:
				return False
			try:
				self._backend.remove(path)
			except FileNotFoundError:
				return False
			except OSError as exc:
				raise StorageError(f"cannot remove {path}: {exc}") from exc
		self._log.info("CONFIG_DELETED name=%s path=%s", name, path)
		return True
