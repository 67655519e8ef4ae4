"""Shared fixtures for the cardgate test suite."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from cardgate.vault.models import BillingAddress, Credential
from cardgate.vault.store import SecretStore

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """An isolated cardgate home directory (``$CARDGATE_HOME``)."""
    path = tmp_path / "cardgate"
    monkeypatch.setenv("CARDGATE_HOME", str(path))
    monkeypatch.delenv("CARDGATE_KEY", raising=False)
    return path


@pytest.fixture
def card() -> Credential:
    return Credential(
        cardholder_name="Ada Lovelace",
        number="4242 4242 4242 4242",
        exp_month="12",
        exp_year="2030",
        cvv="123",
        billing_address=BillingAddress(
            line1="1 Analytical Way",
            city="London",
            state="LDN",
            postal_code="N1 9GU",
            country="GB",
        ),
    )


@pytest.fixture
def store(home: Path) -> SecretStore:
    """An initialized file-backed vault with no card stored."""
    vault = SecretStore(home, key_storage="file")
    vault.initialize()
    return vault
