"""Human approval channels and the factory that picks one from configuration."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cardgate.channels.base import PushChannel, ReplyChannel, format_prompt
from cardgate.channels.messaging import CallbackChannel, MessagingChannel, SendFn, WaitForReplyFn
from cardgate.channels.telegram import TelegramChannel
from cardgate.channels.terminal import TerminalChannel
from cardgate.channels.webhook import WebhookChannel
from cardgate.errors import UnknownChannel

if TYPE_CHECKING:
    from cardgate.config import ApprovalSettings

logger = logging.getLogger(__name__)

CHANNEL_METHODS = ("terminal", "webhook", "slack", "telegram", "messaging", "callback")


def build_channel(
    settings: ApprovalSettings,
    *,
    send: SendFn | None = None,
    wait_for_reply: WaitForReplyFn | None = None,
    default_currency: str = "USD",
    strict: bool = False,
) -> PushChannel | None:
    """Build the channel named by ``settings.method``.

    Called once when the gatekeeper is constructed.  Missing settings are
    not checked here; each channel's ``validate`` raises
    :class:`~cardgate.errors.ChannelMisconfigured` before dispatch.

    An unknown method returns ``None`` (every approval is then denied) and
    logs an error; with ``strict=True`` it raises :class:`UnknownChannel`.
    """
    method = settings.method.strip().lower()

    if method == "terminal":
        return TerminalChannel(default_currency=default_currency)
    if method == "webhook":
        return WebhookChannel(
            settings.webhook_url,
            poll_interval=settings.poll_interval,
            default_currency=default_currency,
        )
    if method == "slack":
        return WebhookChannel(
            settings.slack_webhook_url,
            name="slack",
            poll_interval=settings.poll_interval,
            default_currency=default_currency,
        )
    if method == "telegram":
        return TelegramChannel(settings.telegram_bot_token, settings.telegram_chat_id)
    if method == "messaging":
        return MessagingChannel(send, wait_for_reply)
    if method == "callback":
        return CallbackChannel(send)

    if strict:
        raise UnknownChannel(settings.method)
    logger.error("Unknown approval method: %s. Denying all approvals.", settings.method)
    return None


__all__ = [
    "CHANNEL_METHODS",
    "CallbackChannel",
    "MessagingChannel",
    "PushChannel",
    "ReplyChannel",
    "SendFn",
    "TelegramChannel",
    "TerminalChannel",
    "WaitForReplyFn",
    "WebhookChannel",
    "build_channel",
    "format_prompt",
]
