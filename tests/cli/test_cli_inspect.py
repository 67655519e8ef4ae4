"""Tests for ``cardgate status`` / ``policy`` / ``history``."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from click.testing import CliRunner

from cardgate.cli import main
from cardgate.config import CardgateSettings, save_settings
from cardgate.gatekeeper.ledger import JsonFileLedger
from cardgate.gatekeeper.models import LedgerEntry, PaymentRequest, PolicyAction, PolicyResult

if TYPE_CHECKING:
    from pathlib import Path


def _write_history(home: Path) -> None:
    ledger = JsonFileLedger(home / "transactions.json")
    for amount, approved in ((12.0, True), (80.0, False)):
        ledger.append(
            LedgerEntry(
                payment=PaymentRequest(amount=amount, merchant="shop.io", description="misc"),
                policy_result=PolicyResult(action=PolicyAction.AUTO_APPROVE, reason="ok"),
                approved=approved,
                approved_by="auto" if approved else "human",
            )
        )


class TestStatusCommand:
    def test_fresh_home(self, home: Path) -> None:
        result = CliRunner().invoke(main, ["status"])
        assert result.exit_code == 0
        assert "no card stored" in result.output
        assert "not found" in result.output

    def test_after_setup(self, home: Path) -> None:
        runner = CliRunner()
        runner.invoke(main, ["init", "--key-storage", "file"])
        runner.invoke(
            main, ["add-card"], input="Ada Lovelace\n4242424242424242\n12\n2030\n123\n\n"
        )

        result = runner.invoke(main, ["status"])

        assert result.exit_code == 0
        assert "card stored" in result.output
        assert "found" in result.output
        assert "file" in result.output


class TestPolicyCommand:
    def test_table(self, home: Path) -> None:
        result = CliRunner().invoke(main, ["policy"])
        assert result.exit_code == 0
        assert "Payment Policy" in result.output
        assert "USD 25.00" in result.output

    def test_json(self, home: Path) -> None:
        save_settings(
            CardgateSettings.model_validate({"policies": {"blocked_keywords": ["gambling"]}}),
            home,
        )
        result = CliRunner().invoke(main, ["policy", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["blocked_keywords"] == ["gambling"]
        assert data["daily_limit"] == 200

    def test_bad_config(self, home: Path) -> None:
        home.mkdir(parents=True)
        (home / "config.yaml").write_text("approval:\n  timeout: -1\n")
        result = CliRunner().invoke(main, ["policy"])
        assert result.exit_code == 1
        assert "Config error" in result.output


class TestHistoryCommand:
    def test_empty(self, home: Path) -> None:
        result = CliRunner().invoke(main, ["history"])
        assert result.exit_code == 0
        assert "No transactions recorded" in result.output

    def test_lists_entries(self, home: Path) -> None:
        _write_history(home)
        result = CliRunner().invoke(main, ["history"])
        assert result.exit_code == 0
        assert "Transaction Log" in result.output
        assert "approved" in result.output
        assert "denied" in result.output

    def test_limit(self, home: Path) -> None:
        _write_history(home)
        result = CliRunner().invoke(main, ["history", "-n", "1"])
        assert result.exit_code == 0
        assert "denied" in result.output
        assert "12.00" not in result.output

    def test_corrupt_log(self, home: Path) -> None:
        home.mkdir(parents=True)
        (home / "transactions.json").write_text("{oops")
        result = CliRunner().invoke(main, ["history"])
        assert result.exit_code == 1
        assert "corrupt" in result.output

    def test_logging_disabled(self, home: Path) -> None:
        save_settings(CardgateSettings.model_validate({"logging": {"enabled": False}}), home)
        result = CliRunner().invoke(main, ["history"])
        assert result.exit_code == 0
        assert "disabled" in result.output
