"""Approval channel protocols and shared prompt formatting.

Channels come in two shapes:

- ``ReplyChannel`` — sends the prompt and then waits for the human's reply
  on the same channel (terminal, webhook, Telegram, host messaging).
- ``PushChannel`` — only sends the prompt; the decision arrives later
  through :data:`cardgate.gatekeeper.approval.pending_approvals`, e.g. from
  a slash command handled by the host.

Both shapes share ``validate`` (synchronous configuration check),
``notify``, ``acknowledge``, ``expire``, and ``close``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from cardgate.gatekeeper.models import ApprovalRequest


@runtime_checkable
class PushChannel(Protocol):
    """Dispatches a prompt; resolution arrives out of band."""

    name: str

    def validate(self) -> None:
        """Raise :class:`~cardgate.errors.ChannelMisconfigured` if unusable."""
        ...

    async def notify(self, request: ApprovalRequest, text: str) -> None:
        """Deliver the approval prompt."""
        ...

    async def acknowledge(self, request: ApprovalRequest, text: str) -> None:
        """Tell the human what happened to their request."""
        ...

    async def expire(self, request: ApprovalRequest, text: str) -> None:
        """Mark the prompt as expired (edit it where the channel allows)."""
        ...

    async def close(self, request: ApprovalRequest) -> None:
        """Release any per-request state; runs on every exit path."""
        ...


@runtime_checkable
class ReplyChannel(PushChannel, Protocol):
    """Dispatches a prompt and collects the reply on the same channel."""

    async def await_reply(self, request: ApprovalRequest, timeout: float) -> str | None:
        """Return the human's raw reply, or ``None`` if none arrived in time."""
        ...


def format_prompt(request: ApprovalRequest, *, default_currency: str = "USD") -> str:
    """Human-readable approval prompt shared by the text-based channels."""
    payment = request.payment
    currency = payment.currency or default_currency
    return "\n".join(
        [
            "Cardgate approval request",
            "",
            f"Amount:      {currency} {payment.amount:.2f}",
            f"Merchant:    {payment.merchant}",
            f"Description: {payment.description}",
            f"Reason:      {request.policy_result.reason}",
            f"Request ID:  {request.id}",
            "",
            "Reply yes to approve or no to deny.",
        ]
    )
