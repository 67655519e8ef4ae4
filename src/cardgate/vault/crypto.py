"""AES-256-GCM primitives for the credential vault.

The key is 32 bytes of opaque random material, never derived from a
password.  Each encryption uses a fresh 16-byte IV; the 16-byte GCM tag is
split off the ``AESGCM`` output so IV, tag, and ciphertext are stored as
separate fields of an :class:`~cardgate.vault.models.EncryptedBlob`.
"""

from __future__ import annotations

import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from cardgate.errors import DecryptionFailure
from cardgate.vault.models import EncryptedBlob

KEY_LENGTH = 32
IV_LENGTH = 16
TAG_LENGTH = 16


def generate_key() -> bytes:
    """Return a fresh 256-bit key."""
    return secrets.token_bytes(KEY_LENGTH)


def _check_key(key: bytes) -> None:
    if len(key) != KEY_LENGTH:
        raise DecryptionFailure(f"key must be {KEY_LENGTH} bytes, got {len(key)}")


def encrypt(plaintext: bytes, key: bytes) -> EncryptedBlob:
    """Encrypt *plaintext* under *key* with a random IV."""
    _check_key(key)
    iv = secrets.token_bytes(IV_LENGTH)
    sealed = AESGCM(key).encrypt(iv, plaintext, None)
    return EncryptedBlob(iv=iv, auth_tag=sealed[-TAG_LENGTH:], data=sealed[:-TAG_LENGTH])


def decrypt(blob: EncryptedBlob, key: bytes) -> bytes:
    """Authenticate and decrypt *blob*.

    Raises :class:`DecryptionFailure` on any mismatch; no plaintext is
    returned unless the tag verifies.
    """
    _check_key(key)
    if len(blob.iv) != IV_LENGTH or len(blob.auth_tag) != TAG_LENGTH:
        raise DecryptionFailure("malformed blob")
    try:
        return AESGCM(key).decrypt(blob.iv, blob.data + blob.auth_tag, None)
    except InvalidTag as exc:
        raise DecryptionFailure("authentication tag mismatch") from exc
