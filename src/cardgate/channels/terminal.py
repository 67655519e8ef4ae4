"""Terminal approval channel — prompts the user via stdin/stdout."""

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from concurrent.futures import Future
from typing import TYPE_CHECKING, Callable

from cardgate.errors import ChannelError

if TYPE_CHECKING:
    from cardgate.gatekeeper.models import ApprovalRequest

logger = logging.getLogger(__name__)

# One outstanding stdin read per process, shared by every TerminalChannel.
_reader_lock = threading.Lock()
_pending_read: Future[str] | None = None


def _start_read(read: Callable[[], str]) -> Future[str]:
    future: Future[str] = Future()
    future.set_running_or_notify_cancel()

    def _run() -> None:
        try:
            future.set_result(read())
        except Exception as exc:
            future.set_exception(exc)

    threading.Thread(target=_run, name="cardgate-stdin", daemon=True).start()
    return future


class TerminalChannel:
    """Prints the request and reads one line of input.

    Satisfies the :class:`~cardgate.channels.base.ReplyChannel` protocol.

    The blocking ``input()`` call runs on a daemon thread so the event loop
    stays free.  ``input()`` cannot be interrupted, so when a prompt expires
    the read stays outstanding and is handed to the next prompt rather than
    starting a second reader that would race it for stdin.  A line that
    arrives while no prompt is waiting belongs to an expired request and
    is discarded.
    """

    name = "terminal"

    def __init__(self, *, default_currency: str = "USD") -> None:
        self._default_currency = default_currency

    def validate(self) -> None:
        return None

    async def notify(self, request: ApprovalRequest, text: str) -> None:
        self._print_summary(request, self._default_currency)

    async def await_reply(self, request: ApprovalRequest, timeout: float) -> str | None:
        read = self._claim_read()
        try:
            line = await asyncio.wrap_future(read)
        except EOFError as exc:
            _release_read(read)
            raise ChannelError(self.name, "stdin closed") from exc
        _release_read(read)
        return line

    async def acknowledge(self, request: ApprovalRequest, text: str) -> None:
        self._write(f"\n{text}\n")

    async def expire(self, request: ApprovalRequest, text: str) -> None:
        self._write(f"\n{text}\n")

    async def close(self, request: ApprovalRequest) -> None:
        return None

    def _claim_read(self) -> Future[str]:
        global _pending_read
        with _reader_lock:
            stale = _pending_read
            if stale is not None and stale.done():
                logger.info("Discarding terminal input received after its prompt expired")
                stale = None
            if stale is None:
                _pending_read = _start_read(self._read_input)
            return _pending_read

    @staticmethod
    def _print_summary(request: ApprovalRequest, default_currency: str) -> None:
        """Print a human-readable payment summary to stdout."""
        payment = request.payment
        sep = "-" * 60
        sys.stdout.write(f"\n{sep}\n")
        sys.stdout.write("  CARDGATE APPROVAL REQUEST\n")
        sys.stdout.write(f"{sep}\n")
        sys.stdout.write(f"  Amount:    {payment.amount:.2f}\n")
        sys.stdout.write(f"  Currency:  {payment.currency or default_currency}\n")
        sys.stdout.write(f"  Merchant:  {payment.merchant}\n")
        sys.stdout.write(f"  Reason:    {payment.description}\n")
        sys.stdout.write(f"  Policy:    {request.policy_result.reason}\n")
        sys.stdout.write(f"{sep}\n")
        sys.stdout.write("  Approve this payment? (yes/no): ")
        sys.stdout.flush()

    @staticmethod
    def _read_input() -> str:
        """Blocking read from stdin (run on the reader thread)."""
        return input()

    @staticmethod
    def _write(text: str) -> None:
        sys.stdout.write(text)
        sys.stdout.flush()


def _release_read(read: Future[str]) -> None:
    global _pending_read
    with _reader_lock:
        if _pending_read is read:
            _pending_read = None
