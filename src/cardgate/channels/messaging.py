"""Host-bridged channels — the embedding application provides the transport.

- ``MessagingChannel`` — the host supplies ``send(text)`` and
  ``wait_for_reply(timeout)`` (e.g. a WhatsApp bridge); replies are free
  text normalised by the orchestrator.
- ``CallbackChannel`` — the host supplies ``send(text)`` only; the human
  answers later through a host command that calls
  :func:`cardgate.gatekeeper.approval.approve` / ``deny`` with the
  request id shown in the prompt.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Awaitable, Callable

from cardgate.errors import ChannelError, ChannelMisconfigured

if TYPE_CHECKING:
    from cardgate.gatekeeper.models import ApprovalRequest

SendFn = Callable[[str], Awaitable[None]]
WaitForReplyFn = Callable[[float], Awaitable["str | None"]]


async def _call_host(channel: str, fn: Callable[..., Awaitable[Any]] | None, *args: Any) -> Any:
    """Await a host-supplied callable, re-raising any failure as :class:`ChannelError`."""
    if fn is None:
        raise ChannelMisconfigured(channel, "host callable not provided")
    try:
        return await fn(*args)
    except Exception as exc:
        raise ChannelError(channel, f"{type(exc).__name__}: {exc}") from exc


class MessagingChannel:
    """Free-text approval over a host-provided chat transport.

    Satisfies the :class:`~cardgate.channels.base.ReplyChannel` protocol.
    Anything the host callables raise surfaces as :class:`ChannelError`.
    """

    def __init__(
        self,
        send: SendFn | None,
        wait_for_reply: WaitForReplyFn | None,
        *,
        name: str = "messaging",
    ) -> None:
        self.name = name
        self._send = send
        self._wait_for_reply = wait_for_reply

    def validate(self) -> None:
        if self._send is None or self._wait_for_reply is None:
            raise ChannelMisconfigured(
                self.name, "host must provide send and wait_for_reply callables"
            )

    async def notify(self, request: ApprovalRequest, text: str) -> None:
        await _call_host(self.name, self._send, text)

    async def await_reply(self, request: ApprovalRequest, timeout: float) -> str | None:
        return await _call_host(self.name, self._wait_for_reply, timeout)

    async def acknowledge(self, request: ApprovalRequest, text: str) -> None:
        await _call_host(self.name, self._send, text)

    async def expire(self, request: ApprovalRequest, text: str) -> None:
        await _call_host(self.name, self._send, text)

    async def close(self, request: ApprovalRequest) -> None:
        return None


class CallbackChannel:
    """Push-based approval resolved by a later host command.

    Satisfies the :class:`~cardgate.channels.base.PushChannel` protocol.
    """

    name = "callback"

    def __init__(self, send: SendFn | None) -> None:
        self._send = send

    def validate(self) -> None:
        if self._send is None:
            raise ChannelMisconfigured(self.name, "host must provide a send callable")

    async def notify(self, request: ApprovalRequest, text: str) -> None:
        await _call_host(
            self.name,
            self._send,
            f"{text}\n\nUse /cardgate_approve {request.id} or /cardgate_deny {request.id}.",
        )

    async def acknowledge(self, request: ApprovalRequest, text: str) -> None:
        await _call_host(self.name, self._send, text)

    async def expire(self, request: ApprovalRequest, text: str) -> None:
        await _call_host(self.name, self._send, text)

    async def close(self, request: ApprovalRequest) -> None:
        return None
