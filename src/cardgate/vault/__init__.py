"""Credential vault — AES-256-GCM storage with pluggable key backends."""

from cardgate.vault.backends import (
    EnvKeyBackend,
    FileKeyBackend,
    KeyBackend,
    KeyringBackend,
    select_backend,
)
from cardgate.vault.models import BillingAddress, Credential, EncryptedBlob
from cardgate.vault.store import SecretStore

__all__ = [
    "BillingAddress",
    "Credential",
    "EncryptedBlob",
    "EnvKeyBackend",
    "FileKeyBackend",
    "KeyBackend",
    "KeyringBackend",
    "SecretStore",
    "select_backend",
]
