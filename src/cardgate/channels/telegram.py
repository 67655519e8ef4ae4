"""Telegram approval channel — Bot API over httpx.

Sends a message with an inline keyboard whose buttons carry the callback
data ``approve_<request id>`` / ``deny_<request id>``, then long-polls
``getUpdates`` for the matching callback query.  The request id acts as the
correlation token, so button presses for other requests are skipped.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

import httpx

from cardgate.errors import ChannelError, ChannelMisconfigured

if TYPE_CHECKING:
    from cardgate.gatekeeper.models import ApprovalRequest

logger = logging.getLogger(__name__)

API_BASE = "https://api.telegram.org"
_MAX_LONG_POLL = 30


class TelegramChannel:
    """Inline-keyboard approval through a Telegram bot.

    Satisfies the :class:`~cardgate.channels.base.ReplyChannel` protocol.
    """

    name = "telegram"

    def __init__(
        self,
        bot_token: str | None,
        chat_id: str | None,
        *,
        api_base: str = API_BASE,
    ) -> None:
        self._token = bot_token
        self._chat_id = chat_id
        self._api_base = api_base.rstrip("/")
        self._offset = 0
        self._messages: dict[str, int] = {}

    def validate(self) -> None:
        if not self._token:
            raise ChannelMisconfigured(self.name, "telegram_bot_token not configured")
        if not self._chat_id:
            raise ChannelMisconfigured(self.name, "telegram_chat_id not configured")

    async def notify(self, request: ApprovalRequest, text: str) -> None:
        result = await self._call(
            "sendMessage",
            {
                "chat_id": self._chat_id,
                "text": text,
                "reply_markup": {
                    "inline_keyboard": [
                        [
                            {"text": "Approve", "callback_data": f"approve_{request.id}"},
                            {"text": "Deny", "callback_data": f"deny_{request.id}"},
                        ]
                    ]
                },
            },
        )
        if not isinstance(result, dict) or not isinstance(result.get("message_id"), int):
            raise ChannelError(self.name, "sendMessage: unexpected result")
        self._messages[request.id] = result["message_id"]

    async def await_reply(self, request: ApprovalRequest, timeout: float) -> str | None:
        approve_token = f"approve_{request.id}"
        deny_token = f"deny_{request.id}"
        deadline = time.monotonic() + timeout

        while True:
            remaining = min(_MAX_LONG_POLL, int(deadline - time.monotonic()))
            if remaining <= 0:
                return None

            updates = await self._call(
                "getUpdates",
                {
                    "offset": self._offset,
                    "timeout": remaining,
                    "allowed_updates": ["callback_query"],
                },
                read_timeout=remaining + 5,
            )
            if not isinstance(updates, list):
                raise ChannelError(self.name, "getUpdates: unexpected result")
            for update in updates:
                if not isinstance(update, dict) or not isinstance(update.get("update_id"), int):
                    raise ChannelError(self.name, "getUpdates: unexpected result")
                self._offset = update["update_id"] + 1
                callback = update.get("callback_query")
                if not isinstance(callback, dict):
                    continue
                data = callback.get("data")
                if data not in (approve_token, deny_token):
                    continue
                if not isinstance(callback.get("id"), str):
                    raise ChannelError(self.name, "getUpdates: unexpected result")
                approved = data == approve_token
                logger.debug("Telegram callback for approval %s: %s", request.id, data)
                await self._call(
                    "answerCallbackQuery",
                    {
                        "callback_query_id": callback["id"],
                        "text": "Payment approved" if approved else "Payment denied",
                    },
                )
                return "approve" if approved else "deny"

    async def acknowledge(self, request: ApprovalRequest, text: str) -> None:
        await self._edit(request, text)

    async def expire(self, request: ApprovalRequest, text: str) -> None:
        await self._edit(request, text)

    async def close(self, request: ApprovalRequest) -> None:
        self._messages.pop(request.id, None)

    async def _edit(self, request: ApprovalRequest, text: str) -> None:
        message_id = self._messages.get(request.id)
        if message_id is None:
            return
        await self._call(
            "editMessageText",
            {"chat_id": self._chat_id, "message_id": message_id, "text": text},
        )

    async def _call(
        self,
        method: str,
        payload: dict[str, Any],
        *,
        read_timeout: float = 10.0,
    ) -> Any:
        url = f"{self._api_base}/bot{self._token}/{method}"
        try:
            async with httpx.AsyncClient(timeout=read_timeout) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            # The URL embeds the bot token; report the method only.
            raise ChannelError(self.name, f"{method} failed: {type(exc).__name__}") from None

        try:
            body = response.json()
        except ValueError:
            raise ChannelError(self.name, f"{method}: response is not JSON") from None
        if not isinstance(body, dict):
            raise ChannelError(self.name, f"{method}: response is not a JSON object")
        if not body.get("ok"):
            raise ChannelError(self.name, f"{method}: {body.get('description', 'unknown error')}")
        return body.get("result")
