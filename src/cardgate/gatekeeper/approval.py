"""ApprovalOrchestrator — exactly-once, time-bounded human decisions.

Each :class:`ApprovalRequest` moves from ``CREATED`` to exactly one terminal
state (``APPROVED``, ``DENIED``, ``TIMED_OUT``, ``EXTERNALLY_RESOLVED``).
The channel reply and a deadline timer race as two tasks; the first to call
:meth:`ResolutionHandle.resolve` wins and every later call is a no-op.

Pending requests live in the process-wide :data:`pending_approvals`
registry for the duration of the wait, so a host command handler can
resolve them by id (``approve(id)`` / ``deny(id)``) from any thread.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import timedelta
from typing import TYPE_CHECKING

from cardgate.channels.base import PushChannel, ReplyChannel, format_prompt
from cardgate.errors import ApprovalTimedOut, ChannelError, PolicyDenied
from cardgate.gatekeeper.models import (
    ApprovalOutcome,
    ApprovalRequest,
    ApprovalState,
    PaymentRequest,
    PolicyResult,
)
from cardgate.utils.telemetry import ATTR_APPROVAL_ID, ATTR_APPROVAL_STATE, ATTR_CHANNEL, get_tracer

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

AFFIRMATIVE_REPLIES = frozenset({"yes", "y", "approve", "approved"})
NEGATIVE_REPLIES = frozenset({"no", "n", "deny", "denied", "reject"})

APPROVED_TEXT = "Payment approved."
DENIED_TEXT = "Payment denied."
EXPIRED_TEXT = "Approval timed out. Payment denied."
UNRECOGNIZED_TEXT = 'Unrecognized reply "{reply}". Payment denied for safety.'


def normalize_reply(reply: str) -> bool | None:
    """Map a free-text reply to ``True`` / ``False``; ``None`` if unrecognised."""
    token = reply.strip().lower()
    if token in AFFIRMATIVE_REPLIES:
        return True
    if token in NEGATIVE_REPLIES:
        return False
    return None


class ResolutionHandle:
    """Single-resolution completion handle for one :class:`ApprovalRequest`.

    :meth:`resolve` may be called from any thread; the first call commits
    the outcome and wakes the waiter, later calls return ``False``.
    """

    def __init__(self, request: ApprovalRequest, loop: asyncio.AbstractEventLoop) -> None:
        self.request = request
        self._loop = loop
        self._future: asyncio.Future[ApprovalOutcome] = loop.create_future()
        self._lock = threading.Lock()
        self._outcome: ApprovalOutcome | None = None

    @property
    def state(self) -> ApprovalState:
        return self._outcome.state if self._outcome else ApprovalState.CREATED

    @property
    def outcome(self) -> ApprovalOutcome | None:
        return self._outcome

    def resolve(self, outcome: ApprovalOutcome) -> bool:
        """Commit *outcome* if the request is still pending."""
        if outcome.state is ApprovalState.CREATED:
            msg = "CREATED is not a terminal state"
            raise ValueError(msg)
        with self._lock:
            if self._outcome is not None:
                logger.debug(
                    "Approval %s already %s; ignoring %s",
                    self.request.id,
                    self._outcome.state.value,
                    outcome.state.value,
                )
                return False
            self._outcome = outcome
        if self._loop.is_closed():
            return True
        self._loop.call_soon_threadsafe(self._wake, outcome)
        return True

    async def wait(self) -> ApprovalOutcome:
        return await asyncio.shield(self._future)

    def _wake(self, outcome: ApprovalOutcome) -> None:
        if not self._future.done():
            self._future.set_result(outcome)


class PendingApprovals:
    """Thread-safe registry of in-flight approvals keyed by request id.

    Entries are inserted on dispatch and removed on any terminal
    transition; a removed id can no longer be resolved.
    """

    def __init__(self) -> None:
        self._handles: dict[str, ResolutionHandle] = {}
        self._lock = threading.Lock()

    def register(self, handle: ResolutionHandle) -> None:
        with self._lock:
            self._handles[handle.request.id] = handle

    def discard(self, request_id: str) -> None:
        with self._lock:
            self._handles.pop(request_id, None)

    def get(self, request_id: str) -> ApprovalRequest | None:
        with self._lock:
            handle = self._handles.get(request_id)
        return handle.request if handle else None

    def resolve(self, request_id: str, approved: bool, *, detail: str = "") -> bool:
        """Resolve a pending request from outside the waiting call.

        Returns ``False`` if the id is unknown or already resolved.
        """
        with self._lock:
            handle = self._handles.pop(request_id, None)
        if handle is None:
            logger.info("No pending approval with id %s", request_id)
            return False
        return handle.resolve(
            ApprovalOutcome(
                state=ApprovalState.EXTERNALLY_RESOLVED,
                approved=approved,
                detail=detail or ("approved externally" if approved else "denied externally"),
            )
        )

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._handles)

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def __iter__(self) -> Iterator[ApprovalRequest]:
        with self._lock:
            handles = list(self._handles.values())
        return iter([h.request for h in handles])


pending_approvals = PendingApprovals()


def approve(request_id: str) -> bool:
    """Approve a pending request (for host slash-command handlers)."""
    return pending_approvals.resolve(request_id, True)


def deny(request_id: str) -> bool:
    """Deny a pending request (for host slash-command handlers)."""
    return pending_approvals.resolve(request_id, False)


class ApprovalOrchestrator:
    """Dispatch an approval prompt and race the reply against a deadline.

    Usage::

        orchestrator = ApprovalOrchestrator(TerminalChannel(), timeout=300)
        approved = await orchestrator.resolve(payment, policy_result)

    A ``None`` channel (unknown approval method) denies every request.
    """

    def __init__(
        self,
        channel: PushChannel | None,
        *,
        timeout: float = 300.0,
        registry: PendingApprovals | None = None,
        default_currency: str = "USD",
    ) -> None:
        self._channel = channel
        self._timeout = timeout
        self._registry = registry if registry is not None else pending_approvals
        self._default_currency = default_currency

    @property
    def channel(self) -> PushChannel | None:
        return self._channel

    @property
    def timeout(self) -> float:
        return self._timeout

    def validate(self) -> None:
        """Raise :class:`~cardgate.errors.ChannelMisconfigured` if the channel is unusable."""
        if self._channel is not None:
            self._channel.validate()

    async def resolve(
        self,
        payment: PaymentRequest,
        policy_result: PolicyResult,
        timeout: float | None = None,
    ) -> bool:
        """Ask a human about *payment*; return ``True`` only on explicit approval."""
        outcome = await self.request_decision(payment, policy_result, timeout)
        return outcome.approved

    async def require_approval(
        self,
        payment: PaymentRequest,
        policy_result: PolicyResult,
        timeout: float | None = None,
    ) -> ApprovalOutcome:
        """Like :meth:`resolve` but raise unless the human approved.

        Raises:
            ApprovalTimedOut: No decision arrived before the deadline.
            PolicyDenied: The request was denied (by the human, a channel
                failure, or an external resolver).
        """
        outcome = await self.request_decision(payment, policy_result, timeout)
        if outcome.state is ApprovalState.TIMED_OUT:
            waited = self._timeout if timeout is None else timeout
            raise ApprovalTimedOut(outcome.request_id, waited)
        if not outcome.approved:
            raise PolicyDenied(outcome.detail or DENIED_TEXT)
        return outcome

    async def request_decision(
        self,
        payment: PaymentRequest,
        policy_result: PolicyResult,
        timeout: float | None = None,
    ) -> ApprovalOutcome:
        """Like :meth:`resolve` but return the full :class:`ApprovalOutcome`."""
        channel = self._channel
        if channel is None:
            logger.error("No approval channel configured; denying payment.")
            return ApprovalOutcome(state=ApprovalState.DENIED, detail="no approval channel")

        # Synchronous, before anything is dispatched.
        channel.validate()

        timeout = self._timeout if timeout is None else timeout
        request = ApprovalRequest(payment=payment, policy_result=policy_result)
        request = request.model_copy(
            update={"expires_at": request.created_at + timedelta(seconds=timeout)}
        )

        with _tracer.start_as_current_span("cardgate.approval") as span:
            span.set_attribute(ATTR_APPROVAL_ID, request.id)
            span.set_attribute(ATTR_CHANNEL, channel.name)
            outcome = await self._run(channel, request, timeout)
            outcome = outcome.model_copy(update={"request_id": request.id})
            span.set_attribute(ATTR_APPROVAL_STATE, outcome.state.value)

        logger.info(
            "Approval %s via %s resolved: %s (approved=%s)",
            request.id,
            channel.name,
            outcome.state.value,
            outcome.approved,
        )
        return outcome

    async def _run(
        self, channel: PushChannel, request: ApprovalRequest, timeout: float
    ) -> ApprovalOutcome:
        handle = ResolutionHandle(request, asyncio.get_running_loop())
        self._registry.register(handle)
        tasks: list[asyncio.Task[None]] = []
        try:
            try:
                await channel.notify(
                    request, format_prompt(request, default_currency=self._default_currency)
                )
            except ChannelError as exc:
                logger.error("Approval dispatch failed: %s. Denying payment.", exc)
                handle.resolve(ApprovalOutcome(state=ApprovalState.DENIED, detail=str(exc)))
            except Exception as exc:
                logger.exception("Approval dispatch via %s crashed. Denying payment.", channel.name)
                handle.resolve(ApprovalOutcome(state=ApprovalState.DENIED, detail=repr(exc)))
            else:
                tasks.append(asyncio.create_task(self._deadline(handle, timeout)))
                if isinstance(channel, ReplyChannel):
                    tasks.append(asyncio.create_task(self._await_reply(channel, handle, timeout)))
            try:
                outcome = await handle.wait()
            except asyncio.CancelledError:
                handle.resolve(
                    ApprovalOutcome(
                        state=ApprovalState.EXTERNALLY_RESOLVED, detail="caller cancelled"
                    )
                )
                raise
            await self._report(channel, request, outcome)
            return outcome
        finally:
            for task in tasks:
                task.cancel()
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            self._registry.discard(request.id)
            await self._close(channel, request)

    @staticmethod
    async def _deadline(handle: ResolutionHandle, timeout: float) -> None:
        await asyncio.sleep(timeout)
        handle.resolve(
            ApprovalOutcome(state=ApprovalState.TIMED_OUT, detail=f"no reply within {timeout}s")
        )

    @staticmethod
    async def _await_reply(channel: ReplyChannel, handle: ResolutionHandle, timeout: float) -> None:
        try:
            reply = await channel.await_reply(handle.request, timeout)
        except ChannelError as exc:
            logger.error("Approval reply failed: %s. Denying payment.", exc)
            handle.resolve(ApprovalOutcome(state=ApprovalState.DENIED, detail=str(exc)))
            return
        except Exception as exc:
            logger.exception("Approval reply via %s crashed. Denying payment.", channel.name)
            handle.resolve(ApprovalOutcome(state=ApprovalState.DENIED, detail=repr(exc)))
            return

        if reply is None:
            handle.resolve(
                ApprovalOutcome(state=ApprovalState.TIMED_OUT, detail="channel reported no reply")
            )
            return

        decision = normalize_reply(reply)
        if decision is True:
            handle.resolve(ApprovalOutcome(state=ApprovalState.APPROVED, approved=True))
        elif decision is False:
            handle.resolve(ApprovalOutcome(state=ApprovalState.DENIED, detail="denied by user"))
        else:
            handle.resolve(
                ApprovalOutcome(
                    state=ApprovalState.DENIED,
                    detail=UNRECOGNIZED_TEXT.format(reply=reply.strip()),
                )
            )

    @staticmethod
    async def _report(
        channel: PushChannel, request: ApprovalRequest, outcome: ApprovalOutcome
    ) -> None:
        """Tell the human how the request ended; failures here never change the outcome."""
        try:
            if outcome.state is ApprovalState.TIMED_OUT:
                await channel.expire(request, EXPIRED_TEXT)
            elif outcome.approved:
                await channel.acknowledge(request, APPROVED_TEXT)
            elif outcome.detail.startswith("Unrecognized reply"):
                await channel.acknowledge(request, outcome.detail)
            else:
                await channel.acknowledge(request, DENIED_TEXT)
        except ChannelError as exc:
            logger.warning("Could not update approval prompt %s: %s", request.id, exc)
        except Exception:
            logger.exception("Could not update approval prompt %s", request.id)

    @staticmethod
    async def _close(channel: PushChannel, request: ApprovalRequest) -> None:
        try:
            await channel.close(request)
        except ChannelError as exc:
            logger.warning("Approval channel cleanup failed for %s: %s", request.id, exc)
        except Exception:
            logger.exception("Approval channel cleanup failed for %s", request.id)
