"""Tests for host-bridged channels and the channel factory."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from cardgate.channels import (
    CHANNEL_METHODS,
    CallbackChannel,
    MessagingChannel,
    PushChannel,
    ReplyChannel,
    TelegramChannel,
    TerminalChannel,
    WebhookChannel,
    build_channel,
)
from cardgate.config import ApprovalSettings
from cardgate.errors import ChannelError, ChannelMisconfigured, UnknownChannel
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


class TestMessagingChannel:
    def test_protocol(self) -> None:
        assert isinstance(MessagingChannel(AsyncMock(), AsyncMock()), ReplyChannel)

    def test_requires_callables(self) -> None:
        with pytest.raises(ChannelMisconfigured):
            MessagingChannel(AsyncMock(), None).validate()
        with pytest.raises(ChannelMisconfigured):
            MessagingChannel(None, AsyncMock()).validate()

    async def test_reply_flow(self) -> None:
        send = AsyncMock()
        wait_for_reply = AsyncMock(return_value="Approve")
        orch = ApprovalOrchestrator(
            MessagingChannel(send, wait_for_reply), timeout=5, registry=PendingApprovals()
        )

        assert await orch.resolve(PAYMENT, RESULT) is True

        prompt = send.await_args_list[0].args[0]
        assert "store.com" in prompt
        assert send.await_args_list[-1].args[0] == "Payment approved."
        wait_for_reply.assert_awaited_once_with(5)

    async def test_unrecognized_reply(self) -> None:
        send = AsyncMock()
        orch = ApprovalOrchestrator(
            MessagingChannel(send, AsyncMock(return_value="sure thing")),
            timeout=5,
            registry=PendingApprovals(),
        )
        assert await orch.resolve(PAYMENT, RESULT) is False
        assert send.await_args_list[-1].args[0] == (
            'Unrecognized reply "sure thing". Payment denied for safety.'
        )

    async def test_send_failure_is_channel_error(self) -> None:
        send = AsyncMock(side_effect=ConnectionError("bridge down"))
        channel = MessagingChannel(send, AsyncMock())
        request = ApprovalRequest(payment=PAYMENT, policy_result=RESULT)

        with pytest.raises(ChannelError, match="ConnectionError: bridge down") as exc_info:
            await channel.notify(request, "prompt")
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    async def test_send_failure_denies(self, caplog: pytest.LogCaptureFixture) -> None:
        wait_for_reply = AsyncMock()
        orch = ApprovalOrchestrator(
            MessagingChannel(AsyncMock(side_effect=ConnectionError("bridge down")), wait_for_reply),
            timeout=5,
            registry=PendingApprovals(),
        )

        outcome = await orch.request_decision(PAYMENT, RESULT)

        assert outcome.state is ApprovalState.DENIED
        assert "bridge down" in outcome.detail
        wait_for_reply.assert_not_awaited()
        assert "bridge down" in caplog.text

    async def test_wait_failure_denies_without_waiting(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        orch = ApprovalOrchestrator(
            MessagingChannel(AsyncMock(), AsyncMock(side_effect=OSError("socket closed"))),
            timeout=30,
            registry=PendingApprovals(),
        )

        outcome = await asyncio.wait_for(orch.request_decision(PAYMENT, RESULT), timeout=5)

        assert outcome.state is ApprovalState.DENIED
        assert "socket closed" in outcome.detail
        assert "socket closed" in caplog.text

    async def test_missing_callable_at_call_time(self) -> None:
        channel = MessagingChannel(None, None)
        request = ApprovalRequest(payment=PAYMENT, policy_result=RESULT)
        with pytest.raises(ChannelMisconfigured):
            await channel.notify(request, "prompt")


class TestCallbackChannel:
    def test_protocol(self) -> None:
        channel = CallbackChannel(AsyncMock())
        assert isinstance(channel, PushChannel)
        assert not isinstance(channel, ReplyChannel)

    def test_requires_send(self) -> None:
        with pytest.raises(ChannelMisconfigured):
            CallbackChannel(None).validate()

    async def test_resolved_by_command(self) -> None:
        send = AsyncMock()
        registry = PendingApprovals()
        orch = ApprovalOrchestrator(CallbackChannel(send), timeout=5, registry=registry)

        task = asyncio.create_task(orch.request_decision(PAYMENT, RESULT))
        for _ in range(200):
            if send.await_count:
                break
            await asyncio.sleep(0.005)

        prompt = send.await_args_list[0].args[0]
        [request_id] = registry.ids()
        assert f"/cardgate_deny {request_id}" in prompt
        registry.resolve(request_id, False)

        outcome = await task
        assert outcome.state is ApprovalState.EXTERNALLY_RESOLVED
        assert outcome.approved is False
        assert send.await_args_list[-1].args[0] == "Payment denied."

    async def test_send_failure_denies(self) -> None:
        registry = PendingApprovals()
        orch = ApprovalOrchestrator(
            CallbackChannel(AsyncMock(side_effect=RuntimeError("bot offline"))),
            timeout=5,
            registry=registry,
        )

        outcome = await orch.request_decision(PAYMENT, RESULT)

        assert outcome.state is ApprovalState.DENIED
        assert "bot offline" in outcome.detail
        assert registry.ids() == []


class TestBuildChannel:
    def test_known_methods(self) -> None:
        expected = {
            "terminal": TerminalChannel,
            "webhook": WebhookChannel,
            "slack": WebhookChannel,
            "telegram": TelegramChannel,
            "messaging": MessagingChannel,
            "callback": CallbackChannel,
        }
        assert set(expected) == set(CHANNEL_METHODS)
        for method, cls in expected.items():
            channel = build_channel(ApprovalSettings(method=method))
            assert isinstance(channel, cls)

    def test_slack_uses_slack_url(self) -> None:
        settings = ApprovalSettings(
            method="slack", webhook_url=None, slack_webhook_url="https://hooks.slack.test/x"
        )
        channel = build_channel(settings)
        assert channel is not None
        assert channel.name == "slack"
        channel.validate()

    def test_method_case_insensitive(self) -> None:
        assert isinstance(build_channel(ApprovalSettings(method=" Terminal ")), TerminalChannel)

    def test_missing_settings_detected_at_validate(self) -> None:
        channel = build_channel(ApprovalSettings(method="telegram"))
        assert channel is not None
        with pytest.raises(ChannelMisconfigured):
            channel.validate()

    def test_unknown_returns_none(self, caplog: pytest.LogCaptureFixture) -> None:
        assert build_channel(ApprovalSettings(method="fax")) is None
        assert "Unknown approval method: fax" in caplog.text

    def test_unknown_strict(self) -> None:
        with pytest.raises(UnknownChannel):
            build_channel(ApprovalSettings(method="fax"), strict=True)

    async def test_unknown_denies_everything(self) -> None:
        orch = ApprovalOrchestrator(build_channel(ApprovalSettings(method="fax")))
        outcome = await orch.request_decision(PAYMENT, RESULT)
        assert outcome.state is ApprovalState.DENIED
