"""Shared error types for the vault, policy, and approval layers."""


class CardgateError(Exception):
    """Base error for all cardgate failures."""


# ---------------------------------------------------------------------------
# Vault
# ---------------------------------------------------------------------------


class VaultError(CardgateError):
    """Base error for secret storage and key management."""


class NotInitialized(VaultError):
    """No encryption key is available; the vault was never initialised."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        msg = "Vault not initialized. Run `cardgate init` first."
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)


class NoSecretStored(VaultError):
    """The vault holds no credential."""

    def __init__(self) -> None:
        super().__init__("No card stored. Run `cardgate add-card` first.")


class DecryptionFailure(VaultError):
    """The stored blob failed authentication (tampered data or wrong key)."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__("Vault decryption failed" + (f": {detail}" if detail else ""))


class KeyBackendUnavailable(VaultError):
    """A key backend could not be reached or cannot perform the operation."""

    def __init__(self, backend: str, detail: str = "") -> None:
        self.backend = backend
        self.detail = detail
        super().__init__(
            f"Key backend unavailable: {backend}" + (f" ({detail})" if detail else "")
        )


# ---------------------------------------------------------------------------
# Policy and ledger
# ---------------------------------------------------------------------------


class PolicyDenied(CardgateError):
    """A payment request was denied by policy.

    A normal negative result; raised only by callers that prefer exceptions
    over inspecting :class:`~cardgate.gatekeeper.models.CredentialResponse`.
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Payment denied: {reason}")


class LedgerError(CardgateError):
    """The transaction log could not be read or written."""


# ---------------------------------------------------------------------------
# Approval
# ---------------------------------------------------------------------------


class ApprovalError(CardgateError):
    """Base error for the human approval layer."""


class ApprovalTimedOut(ApprovalError):
    """No human decision arrived before the deadline."""

    def __init__(self, request_id: str, timeout: float) -> None:
        self.request_id = request_id
        self.timeout = timeout
        super().__init__(f"Approval timed out for request {request_id} after {timeout}s")


class ChannelMisconfigured(ApprovalError):
    """The selected approval channel lacks required configuration."""

    def __init__(self, channel: str, detail: str = "") -> None:
        self.channel = channel
        self.detail = detail
        super().__init__(
            f"Approval channel '{channel}' is misconfigured" + (f": {detail}" if detail else "")
        )


class UnknownChannel(ApprovalError):
    """The configured approval method names no known channel."""

    def __init__(self, method: str) -> None:
        self.method = method
        super().__init__(f"Unknown approval method: {method}")


class ChannelError(ApprovalError):
    """A channel failed to dispatch a prompt or collect a reply."""

    def __init__(self, channel: str, detail: str = "") -> None:
        self.channel = channel
        self.detail = detail
        super().__init__(f"Channel error: {channel}" + (f": {detail}" if detail else ""))


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigError(CardgateError):
    """The configuration document failed parsing or validation."""
