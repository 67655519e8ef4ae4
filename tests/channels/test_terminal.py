"""Tests for TerminalChannel."""

import asyncio
import threading
from unittest.mock import patch

import pytest

from cardgate.channels import terminal
from cardgate.channels.base import ReplyChannel
from cardgate.channels.terminal import TerminalChannel
from cardgate.errors import ChannelError
from cardgate.gatekeeper.approval import ApprovalOrchestrator, PendingApprovals
from cardgate.gatekeeper.models import (
    ApprovalRequest,
    ApprovalState,
    PaymentRequest,
    PolicyAction,
    PolicyResult,
)

PAYMENT = PaymentRequest(amount=50, merchant="store.com", description="headphones")
RESULT = PolicyResult(action=PolicyAction.REQUIRE_APPROVAL, reason="needs a human")


@pytest.fixture(autouse=True)
def _fresh_reader(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(terminal, "_pending_read", None)


class TestTerminalChannel:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(TerminalChannel(), ReplyChannel)

    async def test_reads_reply(self) -> None:
        request = ApprovalRequest(payment=PAYMENT, policy_result=RESULT)
        with patch.object(TerminalChannel, "_read_input", return_value="yes"):
            assert await TerminalChannel().await_reply(request, 1) == "yes"

    async def test_stdin_closed(self) -> None:
        request = ApprovalRequest(payment=PAYMENT, policy_result=RESULT)
        with patch.object(TerminalChannel, "_read_input", side_effect=EOFError):
            with pytest.raises(ChannelError, match="stdin closed"):
                await TerminalChannel().await_reply(request, 1)

    async def test_summary_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        request = ApprovalRequest(payment=PAYMENT, policy_result=RESULT)
        await TerminalChannel(default_currency="EUR").notify(request, "ignored")
        out = capsys.readouterr().out
        assert "CARDGATE APPROVAL REQUEST" in out
        assert "50.00" in out
        assert "EUR" in out
        assert "store.com" in out
        assert "needs a human" in out


class TestTerminalWithOrchestrator:
    @pytest.mark.parametrize(
        ("reply", "expected"),
        [("y", True), ("YES", True), ("approve", True), ("n", False), ("", False), ("hmm", False)],
    )
    async def test_replies(self, reply: str, expected: bool) -> None:
        orch = ApprovalOrchestrator(TerminalChannel(), timeout=1, registry=PendingApprovals())
        with patch.object(TerminalChannel, "_read_input", return_value=reply):
            with patch.object(TerminalChannel, "_print_summary"):
                assert await orch.resolve(PAYMENT, RESULT) is expected

    async def test_eof_denies(self) -> None:
        orch = ApprovalOrchestrator(TerminalChannel(), timeout=1, registry=PendingApprovals())
        with patch.object(TerminalChannel, "_read_input", side_effect=EOFError):
            with patch.object(TerminalChannel, "_print_summary"):
                outcome = await orch.request_decision(PAYMENT, RESULT)
        assert outcome.state is ApprovalState.DENIED

    async def test_expired_read_carries_over_to_next_prompt(self) -> None:
        release = threading.Event()

        def _blocking_read() -> str:
            release.wait(5)
            return "yes"

        first = ApprovalOrchestrator(TerminalChannel(), timeout=0.05, registry=PendingApprovals())
        second = ApprovalOrchestrator(TerminalChannel(), timeout=5, registry=PendingApprovals())
        with patch.object(TerminalChannel, "_read_input", side_effect=_blocking_read) as read:
            with patch.object(TerminalChannel, "_print_summary"):
                expired = await first.request_decision(PAYMENT, RESULT)
                task = asyncio.create_task(second.request_decision(PAYMENT, RESULT))
                await asyncio.sleep(0.05)
                release.set()
                outcome = await task

        assert expired.state is ApprovalState.TIMED_OUT
        assert outcome.approved is True
        assert read.call_count == 1

    async def test_line_after_expiry_is_discarded(self) -> None:
        release = threading.Event()
        replies = iter(["yes", "no"])

        def _read() -> str:
            reply = next(replies)
            if reply == "yes":
                release.wait(5)
            return reply

        first = ApprovalOrchestrator(TerminalChannel(), timeout=0.05, registry=PendingApprovals())
        second = ApprovalOrchestrator(TerminalChannel(), timeout=5, registry=PendingApprovals())
        with patch.object(TerminalChannel, "_read_input", side_effect=_read) as read:
            with patch.object(TerminalChannel, "_print_summary"):
                expired = await first.request_decision(PAYMENT, RESULT)
                stale = terminal._pending_read
                assert stale is not None
                release.set()
                for _ in range(200):
                    if stale.done():
                        break
                    await asyncio.sleep(0.005)
                outcome = await second.request_decision(PAYMENT, RESULT)

        assert expired.state is ApprovalState.TIMED_OUT
        assert outcome.state is ApprovalState.DENIED
        assert read.call_count == 2
        assert terminal._pending_read is None
