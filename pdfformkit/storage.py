"""Key-value stores backing templates, profiles, categories and sessions.

The extractor and filler never touch a store; only :mod:`pdfformkit.library`
does, through whichever :class:`KeyValueStore` the caller injects.
"""

from __future__ import annotations

import base64
import hashlib
import json
import secrets
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from . import config
from .utils import configure_logger

logger = configure_logger(__name__)

SALT_FILENAME = "salt.key"
KDF_ITERATIONS = 480000


class StorageError(Exception):
    """Base exception for storage-related errors."""
    pass


class KeyValueStore(Protocol):
    """Minimal persistence contract: bytes in, bytes out, by string key."""

    def get(self, key: str) -> Optional[bytes]:
        ...

    def set(self, key: str, value: bytes) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class MemoryStore:
    """Process-local store; contents vanish with the object."""

    def __init__(self, initial: Optional[Dict[str, bytes]] = None) -> None:
        self._data: Dict[str, bytes] = dict(initial or {})

    def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self):
        return list(self._data)


class EncryptedFileStore:
    """Handles encrypted local storage, one Fernet token per key."""

    def __init__(self, password: str, directory: Union[str, Path, None] = None) -> None:
        """Initialize storage, creating the directory and salt if needed.

        Args:
            password: Secret the encryption key is derived from.
            directory: Where entries live; defaults to ``config.STORAGE_DIR``.
        """
        self.directory = Path(directory) if directory is not None else config.STORAGE_DIR
        self.directory.mkdir(parents=True, exist_ok=True)
        self._fernet = Fernet(base64.urlsafe_b64encode(self._derive_key(password)))

    @property
    def salt_file(self) -> Path:
        return self.directory / SALT_FILENAME

    def _ensure_salt(self) -> bytes:
        """Return the directory's salt, creating one on first use."""
        if not self.salt_file.exists():
            self.salt_file.write_bytes(secrets.token_bytes(32))
            logger.info("Created new salt file in %s", self.directory)
        return self.salt_file.read_bytes()

    def _derive_key(self, password: str) -> bytes:
        """Derive a 32-byte encryption key from password using PBKDF2."""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=self._ensure_salt(),
            iterations=KDF_ITERATIONS,
        )
        return kdf.derive(password.encode())

    def _path_for(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.directory / f"{digest}.enc"

    def get(self, key: str) -> Optional[bytes]:
        """Decrypt and return the value stored under ``key``.

        Raises:
            StorageError: If the password is wrong or the entry is corrupted.
        """
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            return self._fernet.decrypt(path.read_bytes())
        except InvalidToken:
            raise StorageError("Invalid password or corrupted data")
        except OSError as e:
            logger.error("Failed to read '%s': %s", key, e)
            raise StorageError(f"Failed to load data: {e}") from e

    def set(self, key: str, value: bytes) -> None:
        try:
            self._path_for(key).write_bytes(self._fernet.encrypt(bytes(value)))
        except OSError as e:
            logger.error("Failed to save '%s': %s", key, e)
            raise StorageError(f"Failed to save data: {e}") from e
        logger.debug("Saved %d bytes under '%s'", len(value), key)

    def remove(self, key: str) -> None:
        path = self._path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.error("Failed to delete '%s': %s", key, e)
            raise StorageError(f"Failed to delete data: {e}") from e

    def delete_all_data(self) -> None:
        """Delete every entry and the salt. WARNING: This is irreversible!"""
        for path in self.directory.glob("*.enc"):
            path.unlink(missing_ok=True)
        self.salt_file.unlink(missing_ok=True)
        logger.info("Deleted encrypted store in %s", self.directory)


def read_json(store: KeyValueStore, key: str, default: Any = None) -> Any:
    """Decode the JSON document under ``key``; unreadable entries yield ``default``."""

    raw = store.get(key)
    if raw is None:
        return default
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable entry '%s': %s", key, e)
        return default


def write_json(store: KeyValueStore, key: str, value: Any) -> None:
    store.set(key, json.dumps(value, ensure_ascii=False).encode("utf-8"))


__all__ = [
    "EncryptedFileStore",
    "KeyValueStore",
    "MemoryStore",
    "StorageError",
    "read_json",
    "write_json",
]
