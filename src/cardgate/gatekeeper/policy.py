"""PolicyEvaluator — evaluates payment requests against spending rules.

Pure logic over a ledger snapshot.  Rules are checked in a fixed order and
the first one that matches decides:

1. hard ceiling (``block_above``)
2. blocked merchants
3. merchant allow-list
4. blocked keywords (description or merchant)
5. daily limit
6. monthly limit (if configured)
7. auto-approve ceiling
8. otherwise, human approval

Amounts are compared as raw numbers; no currency conversion is performed.
"""

from __future__ import annotations

from datetime import datetime

from cardgate.gatekeeper.ledger import (
    NullLedger,
    SpendLedger,
    approved_since,
    start_of_day,
    start_of_month,
)
from cardgate.gatekeeper.models import PaymentRequest, PolicyAction, PolicyConfig, PolicyResult


def format_amount(value: float) -> str:
    """Render an amount without a spurious ``.0`` (``1000.0`` -> ``1000``)."""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


class PolicyEvaluator:
    """Evaluate a :class:`PaymentRequest` against a :class:`PolicyConfig`."""

    def __init__(self, config: PolicyConfig, ledger: SpendLedger | None = None) -> None:
        self._config = config
        self._ledger = ledger if ledger is not None else NullLedger()

    @property
    def config(self) -> PolicyConfig:
        return self._config

    def get_policy(self) -> PolicyConfig:
        """Return a read-only snapshot of the active policy."""
        return self._config.model_copy(deep=True)

    def evaluate(self, request: PaymentRequest, *, now: datetime | None = None) -> PolicyResult:
        """Return the decision for *request*.

        *now* pins the clock used for the daily and monthly windows; it
        defaults to the current local time.
        """
        cfg = self._config
        amount = request.amount
        merchant = request.merchant.lower()
        description = request.description.lower()

        if amount > cfg.block_above:
            return _deny(
                f"Amount ${format_amount(amount)} exceeds maximum allowed "
                f"(${format_amount(cfg.block_above)})"
            )

        if _first_match(merchant, cfg.blocked_merchants) is not None:
            return _deny(f'Merchant "{request.merchant}" is blocked by policy')

        if cfg.allowed_merchants and _first_match(merchant, cfg.allowed_merchants) is None:
            return _deny(f'Merchant "{request.merchant}" is not in the allowed list')

        for keyword in cfg.blocked_keywords:
            needle = keyword.lower()
            if needle in description or needle in merchant:
                return _deny(f'Blocked keyword "{keyword}" found in request')

        now = now or datetime.now().astimezone()

        spent_today = self._ledger.aggregate(approved_since(start_of_day(now)))
        if spent_today + amount > cfg.daily_limit:
            return _deny(
                f"Daily limit exceeded. Spent today: ${spent_today:.2f}, "
                f"limit: ${format_amount(cfg.daily_limit)}"
            )

        if cfg.monthly_limit is not None:
            spent_month = self._ledger.aggregate(approved_since(start_of_month(now)))
            if spent_month + amount > cfg.monthly_limit:
                return _deny(
                    f"Monthly limit exceeded. Spent this month: ${spent_month:.2f}, "
                    f"limit: ${format_amount(cfg.monthly_limit)}"
                )

        if amount <= cfg.auto_approve_under:
            return PolicyResult(
                action=PolicyAction.AUTO_APPROVE,
                reason=(
                    f"Amount ${format_amount(amount)} is under auto-approve threshold "
                    f"(${format_amount(cfg.auto_approve_under)})"
                ),
            )

        return PolicyResult(
            action=PolicyAction.REQUIRE_APPROVAL,
            reason=(
                f"Amount ${format_amount(amount)} requires human approval "
                f"(threshold: ${format_amount(cfg.require_approval_above)})"
            ),
        )


def _deny(reason: str) -> PolicyResult:
    return PolicyResult(action=PolicyAction.DENY, reason=reason)


def _first_match(haystack: str, needles: tuple[str, ...]) -> str | None:
    """Return the first entry of *needles* contained in *haystack* (case-insensitive)."""
    for needle in needles:
        if needle.lower() in haystack:
            return needle
    return None
