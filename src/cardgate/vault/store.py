"""SecretStore — encrypted-at-rest storage for a single payment credential.

The store owns the symmetric key and the on-disk :class:`EncryptedBlob`.
The key backend is chosen once (on first use) and reused for the lifetime
of the instance, so a keyring that becomes unreachable mid-session can
never cause a different key to be used for ``store`` and ``reveal``.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from pydantic import ValidationError

from cardgate.errors import (
    DecryptionFailure,
    KeyBackendUnavailable,
    NoSecretStored,
    NotInitialized,
)
from cardgate.utils.fileio import atomic_write, ensure_private_dir, file_lock, shred
from cardgate.vault.backends import (
    FileKeyBackend,
    KeyBackend,
    KeyringBackend,
    KeyStorage,
    select_backend,
)
from cardgate.vault.crypto import KEY_LENGTH, decrypt, encrypt, generate_key
from cardgate.vault.models import Credential, EncryptedBlob

logger = logging.getLogger(__name__)

VAULT_FILE_NAME = "vault.enc"


class SecretStore:
    """Encrypt, persist, and reveal the stored credential.

    Usage::

        store = SecretStore(home, key_storage="file")
        store.initialize()
        store.store(credential)
        card = store.reveal()
    """

    def __init__(
        self,
        home: Path,
        *,
        key_storage: KeyStorage = "keyring",
        backend: KeyBackend | None = None,
    ) -> None:
        self._home = home
        self._path = home / VAULT_FILE_NAME
        self._key_storage = key_storage
        self._backend = backend
        self._key: bytes | None = None
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def backend(self) -> KeyBackend:
        """The committed key backend (selected on first access)."""
        if self._backend is None:
            self._backend = select_backend(self._key_storage, self._home)
            logger.debug("Vault key backend selected: %s", self._backend.name)
        return self._backend

    # -- Lifecycle ----------------------------------------------------------

    def initialize(self) -> None:
        """Create the home directory and make sure a key exists.

        Idempotent: an existing key is never replaced.
        """
        ensure_private_dir(self._home)
        with self._lock:
            existing = self.backend.get()
            if existing is not None:
                self._key = self._validated(existing)
                return

            key = generate_key()
            try:
                self.backend.put(key)
            except KeyBackendUnavailable:
                if not isinstance(self._backend, KeyringBackend):
                    raise
                # Nothing has been encrypted under the keyring yet, so
                # switching here cannot orphan a blob.
                logger.warning(
                    "System keychain rejected the new key, falling back to file-based key storage."
                )
                self._backend = FileKeyBackend(self._home)
                fallback_key = self._backend.get()
                if fallback_key is not None:
                    self._key = self._validated(fallback_key)
                    return
                self._backend.put(key)
            self._key = key
            logger.info("Vault initialized with %s key backend", self.backend.name)

    # -- Credential operations ---------------------------------------------

    def store(self, credential: Credential) -> None:
        """Encrypt and persist *credential*, replacing any stored one."""
        key = self._require_key()
        blob = encrypt(credential.model_dump_json().encode("utf-8"), key)
        with self._lock, file_lock(self._path):
            atomic_write(self._path, blob.to_json())
        logger.info("Credential stored (card ending %s)", credential.last4)

    def reveal(self) -> Credential:
        """Decrypt and return the stored credential.

        Raises:
            NoSecretStored: Nothing has been stored.
            NotInitialized: No key is available.
            DecryptionFailure: The blob is malformed, tampered with, or was
                encrypted under a different key.
        """
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError:
            raise NoSecretStored() from None
        key = self._require_key()

        try:
            blob = EncryptedBlob.from_json(raw)
        except (ValidationError, ValueError) as exc:
            raise DecryptionFailure("malformed vault file") from exc

        plaintext = decrypt(blob, key)
        try:
            return Credential.model_validate_json(plaintext)
        except ValidationError as exc:
            raise DecryptionFailure("decrypted payload is not a credential") from exc

    def exists(self) -> bool:
        """Return ``True`` if a blob is persisted (no decryption performed)."""
        return self._path.is_file()

    def purge(self) -> None:
        """Overwrite the blob with random bytes and delete it."""
        with self._lock, file_lock(self._path):
            if shred(self._path):
                logger.info("Stored credential purged")

    # -- Internals ----------------------------------------------------------

    def _require_key(self) -> bytes:
        if self._key is not None:
            return self._key
        with self._lock:
            if self._key is None:
                loaded = self.backend.get()
                if loaded is None:
                    raise NotInitialized(f"no key in {self.backend.name} backend")
                self._key = self._validated(loaded)
            return self._key

    def _validated(self, key: bytes) -> bytes:
        if len(key) != KEY_LENGTH:
            msg = f"expected a {KEY_LENGTH}-byte key, got {len(key)} bytes"
            raise NotInitialized(msg)
        return key
