"""Gatekeeper subsystem — policy evaluation, spend ledger, and human approval."""

from cardgate.gatekeeper.approval import (
    ApprovalOrchestrator,
    PendingApprovals,
    ResolutionHandle,
    approve,
    deny,
    pending_approvals,
)
from cardgate.gatekeeper.gatekeeper import Gatekeeper
from cardgate.gatekeeper.ledger import InMemoryLedger, JsonFileLedger, NullLedger, SpendLedger
from cardgate.gatekeeper.models import (
    ApprovalOutcome,
    ApprovalRequest,
    ApprovalState,
    CredentialResponse,
    LedgerEntry,
    PaymentRequest,
    PolicyAction,
    PolicyConfig,
    PolicyResult,
)
from cardgate.gatekeeper.policy import PolicyEvaluator

__all__ = [
    "ApprovalOrchestrator",
    "ApprovalOutcome",
    "ApprovalRequest",
    "ApprovalState",
    "CredentialResponse",
    "Gatekeeper",
    "InMemoryLedger",
    "JsonFileLedger",
    "LedgerEntry",
    "NullLedger",
    "PaymentRequest",
    "PendingApprovals",
    "PolicyAction",
    "PolicyConfig",
    "PolicyEvaluator",
    "PolicyResult",
    "ResolutionHandle",
    "SpendLedger",
    "approve",
    "deny",
    "pending_approvals",
]
