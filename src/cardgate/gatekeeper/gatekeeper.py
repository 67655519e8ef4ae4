"""Gatekeeper — the single entry point agents use to obtain the card.

The façade evaluates policy, optionally asks a human, and only then
touches the vault.  Every decision is appended to the spend ledger.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Awaitable, Callable, Literal

from cardgate.channels import build_channel
from cardgate.errors import PolicyDenied
from cardgate.gatekeeper.approval import ApprovalOrchestrator
from cardgate.gatekeeper.ledger import JsonFileLedger, NullLedger, SpendLedger
from cardgate.gatekeeper.models import (
    CredentialResponse,
    LedgerEntry,
    PaymentRequest,
    PolicyAction,
    PolicyConfig,
    PolicyResult,
)
from cardgate.gatekeeper.policy import PolicyEvaluator
from cardgate.utils.telemetry import (
    ATTR_AMOUNT,
    ATTR_APPROVED,
    ATTR_APPROVED_BY,
    ATTR_CURRENCY,
    ATTR_MERCHANT,
    ATTR_POLICY_ACTION,
    configure_telemetry,
    get_tracer,
)
from cardgate.vault.store import SecretStore

if TYPE_CHECKING:
    from cardgate.channels import SendFn, WaitForReplyFn
    from cardgate.config import CardgateSettings
    from cardgate.vault.models import Credential

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

ApprovalCallback = Callable[[PaymentRequest, PolicyResult, float], Awaitable[bool]]

NO_CREDENTIAL_REASON = "no credential available"
HUMAN_DENIED_REASON = "Payment denied by user."


class Gatekeeper:
    """Policy- and human-gated access to the stored credential.

    Usage::

        gatekeeper = Gatekeeper.load()
        gatekeeper.initialize()
        response = await gatekeeper.request_credential(
            PaymentRequest(amount=12.5, merchant="store.com", description="cables")
        )

    *approval_callback*, when given, replaces the channel-based
    orchestrator for ``require_approval`` decisions (programmatic hosts).
    """

    def __init__(
        self,
        store: SecretStore,
        policy: PolicyEvaluator,
        orchestrator: ApprovalOrchestrator,
        *,
        ledger: SpendLedger | None = None,
        approval_callback: ApprovalCallback | None = None,
    ) -> None:
        self._store = store
        self._policy = policy
        self._orchestrator = orchestrator
        self._ledger = ledger if ledger is not None else NullLedger()
        self._approval_callback = approval_callback

    @classmethod
    def from_settings(
        cls,
        settings: CardgateSettings,
        *,
        home: Path | None = None,
        send: SendFn | None = None,
        wait_for_reply: WaitForReplyFn | None = None,
        approval_callback: ApprovalCallback | None = None,
    ) -> Gatekeeper:
        """Wire the vault, ledger, policy, and approval channel from *settings*."""
        from cardgate.config import default_home

        home = home or default_home()
        if settings.telemetry.enabled:
            configure_telemetry(
                export_to_console=settings.telemetry.otlp_endpoint is None,
                otlp_endpoint=settings.telemetry.otlp_endpoint,
            )
        ledger: SpendLedger = (
            JsonFileLedger(settings.ledger_path(home)) if settings.logging.enabled else NullLedger()
        )
        if not settings.logging.enabled:
            logger.warning("Transaction logging disabled: daily and monthly limits will not apply.")

        channel = build_channel(
            settings.approval,
            send=send,
            wait_for_reply=wait_for_reply,
            default_currency=settings.policies.currency,
        )
        return cls(
            SecretStore(home, key_storage=settings.vault.key_storage),
            PolicyEvaluator(settings.policies, ledger),
            ApprovalOrchestrator(
                channel,
                timeout=settings.approval.timeout,
                default_currency=settings.policies.currency,
            ),
            ledger=ledger,
            approval_callback=approval_callback,
        )

    @classmethod
    def load(
        cls,
        home: Path | None = None,
        *,
        send: SendFn | None = None,
        wait_for_reply: WaitForReplyFn | None = None,
        approval_callback: ApprovalCallback | None = None,
    ) -> Gatekeeper:
        """Load ``config.yaml`` from *home* and build a gatekeeper from it."""
        from cardgate.config import default_home, load_settings

        home = home or default_home()
        return cls.from_settings(
            load_settings(home),
            home=home,
            send=send,
            wait_for_reply=wait_for_reply,
            approval_callback=approval_callback,
        )

    @property
    def store(self) -> SecretStore:
        return self._store

    @property
    def ledger(self) -> SpendLedger:
        return self._ledger

    # -- Vault management ---------------------------------------------------

    def initialize(self) -> None:
        """Create the vault directory and encryption key if needed."""
        self._store.initialize()

    def store_credential(self, credential: Credential) -> None:
        self._store.store(credential)

    def purge_credential(self) -> None:
        self._store.purge()

    # -- Caller-facing operations ------------------------------------------

    def get_policy(self) -> PolicyConfig:
        """Return the active spending rules (read-only)."""
        return self._policy.get_policy()

    def has_credential(self) -> bool:
        return self._store.exists()

    async def request_credential(self, request: PaymentRequest) -> CredentialResponse:
        """Return the card if *request* passes policy and, where needed, a human.

        Storage and key errors propagate to the caller; they never turn
        into an approval.
        """
        with _tracer.start_as_current_span("cardgate.request_credential") as span:
            span.set_attribute(ATTR_AMOUNT, request.amount)
            span.set_attribute(ATTR_MERCHANT, request.merchant)
            span.set_attribute(ATTR_CURRENCY, request.currency or self._policy.config.currency)

            if not self._store.exists():
                logger.info("Credential requested but none is stored")
                span.set_attribute(ATTR_APPROVED, False)
                return CredentialResponse(approved=False, reason=NO_CREDENTIAL_REASON)

            result = self._policy.evaluate(request)
            span.set_attribute(ATTR_POLICY_ACTION, result.action.value)

            if result.action is PolicyAction.DENY:
                logger.info("Payment to %s denied by policy: %s", request.merchant, result.reason)
                self._record(request, result, approved=False, approved_by="auto")
                span.set_attribute(ATTR_APPROVED, False)
                return CredentialResponse(approved=False, reason=result.reason)

            if result.action is PolicyAction.AUTO_APPROVE:
                response = self._release(request, result, approved_by="auto")
                span.set_attribute(ATTR_APPROVED, True)
                span.set_attribute(ATTR_APPROVED_BY, "auto")
                return response

            approved = await self._ask_human(request, result)
            span.set_attribute(ATTR_APPROVED_BY, "human")
            span.set_attribute(ATTR_APPROVED, approved)
            if not approved:
                logger.info("Payment to %s denied by user", request.merchant)
                self._record(request, result, approved=False, approved_by="human")
                return CredentialResponse(approved=False, reason=HUMAN_DENIED_REASON)

            return self._release(request, result, approved_by="human")

    async def require_credential(self, request: PaymentRequest) -> Credential:
        """Like :meth:`request_credential` but raise :class:`PolicyDenied` on refusal."""
        response = await self.request_credential(request)
        if not response.approved or response.credential is None:
            raise PolicyDenied(response.reason)
        return response.credential

    # -- Internals ----------------------------------------------------------

    async def _ask_human(self, request: PaymentRequest, result: PolicyResult) -> bool:
        if self._approval_callback is None:
            return await self._orchestrator.resolve(request, result)
        try:
            return await self._approval_callback(request, result, self._orchestrator.timeout)
        except Exception:
            logger.exception("Approval callback failed; denying payment.")
            return False

    def _release(
        self,
        request: PaymentRequest,
        result: PolicyResult,
        *,
        approved_by: Literal["auto", "human"],
    ) -> CredentialResponse:
        credential = self._store.reveal()
        self._record(request, result, approved=True, approved_by=approved_by)
        logger.info(
            "Credential released for %.2f at %s (%s-approved)",
            request.amount,
            request.merchant,
            approved_by,
        )
        return CredentialResponse(approved=True, credential=credential, reason=result.reason)

    def _record(
        self,
        request: PaymentRequest,
        result: PolicyResult,
        *,
        approved: bool,
        approved_by: Literal["auto", "human"],
    ) -> None:
        self._ledger.append(
            LedgerEntry(
                payment=request,
                policy_result=result,
                approved=approved,
                approved_by=approved_by,
            )
        )
