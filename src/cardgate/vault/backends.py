"""Key backends for the credential vault.

- ``KeyBackend`` — runtime-checkable protocol (``get`` / ``put``).
- ``KeyringBackend`` — platform secret manager via :mod:`keyring`.
- ``FileKeyBackend`` — hex key in ``<home>/.key`` with 0600 permissions.
- ``EnvKeyBackend`` — read-only, hex key taken from ``CARDGATE_KEY``.

:func:`select_backend` picks one of these once per vault, degrading from
the platform keyring to the file backend when the keyring is unreachable.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal, Protocol, runtime_checkable

import keyring
from keyring.errors import KeyringError

from cardgate.errors import KeyBackendUnavailable
from cardgate.utils.fileio import atomic_write, file_lock

logger = logging.getLogger(__name__)

KeyStorage = Literal["keyring", "file", "env"]

KEY_SERVICE = "cardgate"
KEY_ACCOUNT = "vault-key"
KEY_ENV_VAR = "CARDGATE_KEY"
KEY_FILE_NAME = ".key"


def _decode_hex(value: str, source: str) -> bytes:
    try:
        return bytes.fromhex(value.strip())
    except ValueError as exc:
        raise KeyBackendUnavailable(source, "stored key is not valid hex") from exc


@runtime_checkable
class KeyBackend(Protocol):
    """Stores and retrieves the vault's symmetric key."""

    name: str

    def get(self) -> bytes | None:
        """Return the key, or ``None`` if none has been stored."""
        ...

    def put(self, key: bytes) -> None:
        """Persist *key*."""
        ...


class KeyringBackend:
    """Platform secret manager (macOS Keychain, Secret Service, Windows Credential Locker)."""

    name = "keyring"

    def __init__(self, *, service: str = KEY_SERVICE, account: str = KEY_ACCOUNT) -> None:
        self._service = service
        self._account = account

    def get(self) -> bytes | None:
        try:
            value = keyring.get_password(self._service, self._account)
        except KeyringError as exc:
            raise KeyBackendUnavailable(self.name, str(exc)) from exc
        return _decode_hex(value, self.name) if value else None

    def put(self, key: bytes) -> None:
        try:
            keyring.set_password(self._service, self._account, key.hex())
        except KeyringError as exc:
            raise KeyBackendUnavailable(self.name, str(exc)) from exc


class FileKeyBackend:
    """Hex-encoded key file next to the vault, owner read/write only."""

    name = "file"

    def __init__(self, home: Path) -> None:
        self._path = home / KEY_FILE_NAME

    @property
    def path(self) -> Path:
        return self._path

    def get(self) -> bytes | None:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise KeyBackendUnavailable(self.name, str(exc)) from exc
        return _decode_hex(raw, self.name)

    def put(self, key: bytes) -> None:
        try:
            with file_lock(self._path):
                atomic_write(self._path, key.hex().encode("ascii"))
        except OSError as exc:
            raise KeyBackendUnavailable(self.name, str(exc)) from exc


class EnvKeyBackend:
    """Key supplied through the process environment; never persisted."""

    name = "env"

    def __init__(self, var: str = KEY_ENV_VAR) -> None:
        self._var = var

    def get(self) -> bytes | None:
        value = os.environ.get(self._var)
        return _decode_hex(value, self.name) if value else None

    def put(self, key: bytes) -> None:
        raise KeyBackendUnavailable(
            self.name,
            f"environment backend is read-only; export {self._var}=<64 hex characters>",
        )


def select_backend(storage: KeyStorage | str, home: Path) -> KeyBackend:
    """Build the backend for *storage*, probing the keyring before committing to it.

    An unreachable keyring degrades to :class:`FileKeyBackend` with a
    warning.  The returned backend is meant to be kept for the lifetime of
    the vault so that every call uses the same key source.
    """
    if storage == "file":
        return FileKeyBackend(home)
    if storage == "env":
        return EnvKeyBackend()
    if storage != "keyring":
        msg = f"unknown key storage '{storage}'"
        raise KeyBackendUnavailable(str(storage), msg)

    backend = KeyringBackend()
    try:
        backend.get()
    except KeyBackendUnavailable as exc:
        logger.warning(
            "System keychain not available (%s), falling back to file-based key storage.",
            exc.detail or exc,
        )
        return FileKeyBackend(home)
    return backend
