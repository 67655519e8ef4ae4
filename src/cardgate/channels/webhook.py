"""Webhook approval channel — POSTs the request, then reads or polls for a decision.

The receiving endpoint answers the POST with either::

    {"approved": true | false}        # immediate decision
    {"pollUrl": "https://..."}        # decision to be polled for

Poll responses carry ``{"approved": bool}`` once decided; any other body
means "still pending".  Slack incoming webhooks use the same envelope.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from typing import TYPE_CHECKING, Any

import httpx

from cardgate.errors import ChannelError, ChannelMisconfigured

if TYPE_CHECKING:
    from cardgate.gatekeeper.models import ApprovalRequest

logger = logging.getLogger(__name__)

ENVELOPE_TYPE = "cardgate_approval_request"


def _epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def build_envelope(request: ApprovalRequest, *, default_currency: str = "USD") -> dict[str, Any]:
    """Build the JSON body POSTed to the webhook."""
    payment = request.payment
    created = _epoch_ms(request.created_at)
    expires = _epoch_ms(request.expires_at) if request.expires_at else None
    return {
        "type": ENVELOPE_TYPE,
        "id": request.id,
        "payment": {
            "amount": payment.amount,
            "merchant": payment.merchant,
            "description": payment.description,
            "currency": payment.currency or default_currency,
        },
        "policy": {
            "action": request.policy_result.action.value,
            "reason": request.policy_result.reason,
        },
        "timestamp": created,
        "expiresAt": expires,
    }


class WebhookChannel:
    """Generic HTTP webhook (also used for Slack).

    Satisfies the :class:`~cardgate.channels.base.ReplyChannel` protocol.
    Transport failures and malformed responses raise :class:`ChannelError`,
    which the orchestrator turns into a denial.
    """

    def __init__(
        self,
        url: str | None,
        *,
        name: str = "webhook",
        poll_interval: float = 3.0,
        request_timeout: float = 10.0,
        default_currency: str = "USD",
    ) -> None:
        self.name = name
        self._url = url
        self._poll_interval = poll_interval
        self._request_timeout = request_timeout
        self._default_currency = default_currency
        self._decisions: dict[str, bool] = {}
        self._poll_urls: dict[str, str] = {}

    def validate(self) -> None:
        if not self._url:
            raise ChannelMisconfigured(self.name, "webhook URL not configured")

    async def notify(self, request: ApprovalRequest, text: str) -> None:
        if not self._url:
            raise ChannelMisconfigured(self.name, "webhook URL not configured")
        payload = build_envelope(request, default_currency=self._default_currency)
        try:
            async with httpx.AsyncClient(timeout=self._request_timeout) as client:
                response = await client.post(self._url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ChannelError(self.name, str(exc)) from exc

        result = self._parse(response)
        approved = result.get("approved")
        if isinstance(approved, bool):
            self._decisions[request.id] = approved
            return
        poll_url = result.get("pollUrl")
        if isinstance(poll_url, str) and poll_url:
            self._poll_urls[request.id] = poll_url
            return
        raise ChannelError(self.name, "response missing 'approved' or 'pollUrl'")

    async def await_reply(self, request: ApprovalRequest, timeout: float) -> str | None:
        decision = self._decisions.get(request.id)
        if decision is not None:
            return "approve" if decision else "deny"

        poll_url = self._poll_urls.get(request.id)
        if poll_url is None:
            raise ChannelError(self.name, "no decision and no poll URL")
        return await self._poll(poll_url, timeout)

    async def acknowledge(self, request: ApprovalRequest, text: str) -> None:
        logger.debug("Webhook approval %s: %s", request.id, text)

    async def expire(self, request: ApprovalRequest, text: str) -> None:
        logger.info("Webhook approval %s expired", request.id)

    async def close(self, request: ApprovalRequest) -> None:
        self._decisions.pop(request.id, None)
        self._poll_urls.pop(request.id, None)

    async def _poll(self, poll_url: str, timeout: float) -> str | None:
        deadline = time.monotonic() + timeout
        async with httpx.AsyncClient(timeout=self._request_timeout) as client:
            while time.monotonic() < deadline:
                try:
                    response = await client.get(poll_url)
                except httpx.HTTPError as exc:
                    raise ChannelError(self.name, f"poll failed: {exc}") from exc
                if response.is_success:
                    approved = self._parse(response).get("approved")
                    if isinstance(approved, bool):
                        return "approve" if approved else "deny"
                # Still pending.
                await asyncio.sleep(min(self._poll_interval, max(deadline - time.monotonic(), 0)))
        return None

    def _parse(self, response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            raise ChannelError(self.name, "response is not JSON") from exc
        if not isinstance(body, dict):
            raise ChannelError(self.name, "response is not a JSON object")
        return body
