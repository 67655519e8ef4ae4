"""Data models for the gatekeeper subsystem."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from cardgate.vault.models import Credential


def _new_id() -> str:
    return uuid4().hex


def _local_now() -> datetime:
    return datetime.now().astimezone()


class PolicyAction(str, Enum):
    """Decision the policy evaluator prescribes for a payment request."""

    AUTO_APPROVE = "auto_approve"
    REQUIRE_APPROVAL = "require_approval"
    DENY = "deny"


class PolicyConfig(BaseModel):
    """Spending rules.

    ``block_above >= require_approval_above`` is expected but deliberately
    not validated; the evaluator's fixed rule order decides the outcome.
    """

    model_config = ConfigDict(frozen=True)

    auto_approve_under: float = Field(
        default=25.0, description="Requests at or below this amount are approved without a human."
    )
    require_approval_above: float = Field(
        default=25.0, description="Requests above this amount need a human decision."
    )
    block_above: float = Field(default=1000.0, description="Requests above this amount are denied.")
    daily_limit: float = Field(default=200.0, description="Approved spend ceiling per local day.")
    monthly_limit: float | None = Field(
        default=2000.0, description="Approved spend ceiling per calendar month (None disables)."
    )
    blocked_keywords: tuple[str, ...] = Field(
        default=(), description="Case-insensitive substrings denied in merchant or description."
    )
    allowed_merchants: tuple[str, ...] = Field(
        default=(), description="If non-empty, only merchants matching one of these pass."
    )
    blocked_merchants: tuple[str, ...] = Field(
        default=(), description="Merchants matching any of these are denied."
    )
    currency: str = Field(default="USD", description="Currency the thresholds are expressed in.")


class PaymentRequest(BaseModel):
    """A caller's request for the credential to complete one payment."""

    model_config = ConfigDict(frozen=True)

    amount: float = Field(..., gt=0)
    merchant: str
    description: str
    currency: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)


class PolicyResult(BaseModel):
    """Outcome of policy evaluation; ``reason`` is shown to callers verbatim."""

    model_config = ConfigDict(frozen=True)

    action: PolicyAction
    reason: str


class LedgerEntry(BaseModel):
    """One immutable record in the transaction log."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    timestamp: datetime = Field(default_factory=_local_now)
    payment: PaymentRequest
    policy_result: PolicyResult
    approved: bool
    approved_by: Literal["auto", "human"]


class ApprovalState(str, Enum):
    """Lifecycle of a pending human decision; every state but CREATED is terminal."""

    CREATED = "created"
    APPROVED = "approved"
    DENIED = "denied"
    TIMED_OUT = "timed_out"
    EXTERNALLY_RESOLVED = "externally_resolved"


class ApprovalRequest(BaseModel):
    """A payment awaiting a human decision."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex[:12])
    payment: PaymentRequest
    policy_result: PolicyResult
    created_at: datetime = Field(default_factory=_local_now)
    expires_at: datetime | None = None


class ApprovalOutcome(BaseModel):
    """The single terminal transition of an :class:`ApprovalRequest`."""

    model_config = ConfigDict(frozen=True)

    state: ApprovalState
    approved: bool = False
    detail: str = ""
    request_id: str = ""


class CredentialResponse(BaseModel):
    """What the gatekeeper hands back to the caller."""

    approved: bool
    credential: Credential | None = None
    reason: str = Field(default="")
