"""Tests for vault key backends."""

from __future__ import annotations

import stat
from typing import TYPE_CHECKING
from unittest.mock import patch

import pytest
from keyring.errors import KeyringError, NoKeyringError

from cardgate.errors import KeyBackendUnavailable
from cardgate.vault.backends import (
    EnvKeyBackend,
    FileKeyBackend,
    KeyBackend,
    KeyringBackend,
    select_backend,
)

if TYPE_CHECKING:
    from pathlib import Path


class TestProtocol:
    def test_all_backends_satisfy_protocol(self, tmp_path: Path) -> None:
        assert isinstance(KeyringBackend(), KeyBackend)
        assert isinstance(FileKeyBackend(tmp_path), KeyBackend)
        assert isinstance(EnvKeyBackend(), KeyBackend)


class TestFileKeyBackend:
    def test_missing_returns_none(self, tmp_path: Path) -> None:
        assert FileKeyBackend(tmp_path).get() is None

    def test_put_then_get(self, tmp_path: Path) -> None:
        backend = FileKeyBackend(tmp_path)
        backend.put(b"\x01" * 32)
        assert backend.get() == b"\x01" * 32
        assert backend.path.read_text() == "01" * 32

    def test_owner_only_permissions(self, tmp_path: Path) -> None:
        backend = FileKeyBackend(tmp_path)
        backend.put(b"\x02" * 32)
        assert stat.S_IMODE(backend.path.stat().st_mode) == 0o600

    def test_garbage_file(self, tmp_path: Path) -> None:
        backend = FileKeyBackend(tmp_path)
        backend.path.write_text("not hex")
        with pytest.raises(KeyBackendUnavailable, match="hex"):
            backend.get()


class TestEnvKeyBackend:
    def test_reads_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CARDGATE_KEY", "ab" * 32)
        assert EnvKeyBackend().get() == b"\xab" * 32

    def test_unset(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("CARDGATE_KEY", raising=False)
        assert EnvKeyBackend().get() is None

    def test_read_only(self) -> None:
        with pytest.raises(KeyBackendUnavailable, match="read-only"):
            EnvKeyBackend().put(b"\x00" * 32)


class TestKeyringBackend:
    def test_get(self) -> None:
        with patch("cardgate.vault.backends.keyring.get_password", return_value="cd" * 32) as get:
            assert KeyringBackend().get() == b"\xcd" * 32
        get.assert_called_once_with("cardgate", "vault-key")

    def test_get_missing(self) -> None:
        with patch("cardgate.vault.backends.keyring.get_password", return_value=None):
            assert KeyringBackend().get() is None

    def test_put(self) -> None:
        with patch("cardgate.vault.backends.keyring.set_password") as put:
            KeyringBackend().put(b"\x0f" * 32)
        put.assert_called_once_with("cardgate", "vault-key", "0f" * 32)

    def test_errors_wrapped(self) -> None:
        with patch(
            "cardgate.vault.backends.keyring.get_password", side_effect=KeyringError("locked")
        ):
            with pytest.raises(KeyBackendUnavailable) as exc_info:
                KeyringBackend().get()
        assert exc_info.value.backend == "keyring"


class TestSelectBackend:
    def test_file(self, tmp_path: Path) -> None:
        assert isinstance(select_backend("file", tmp_path), FileKeyBackend)

    def test_env(self, tmp_path: Path) -> None:
        assert isinstance(select_backend("env", tmp_path), EnvKeyBackend)

    def test_keyring_available(self, tmp_path: Path) -> None:
        with patch("cardgate.vault.backends.keyring.get_password", return_value=None):
            assert isinstance(select_backend("keyring", tmp_path), KeyringBackend)

    def test_keyring_unavailable_falls_back_to_file(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        with patch(
            "cardgate.vault.backends.keyring.get_password", side_effect=NoKeyringError("none")
        ):
            backend = select_backend("keyring", tmp_path)
        assert isinstance(backend, FileKeyBackend)
        assert "falling back" in caplog.text

    def test_unknown(self, tmp_path: Path) -> None:
        with pytest.raises(KeyBackendUnavailable, match="unknown key storage"):
            select_backend("floppy", tmp_path)
