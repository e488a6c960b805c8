"""
Error taxonomy for the balance oracle and tier reconciliation engine.

Every failure raised by the engine derives from TierBotError and carries a
`retryable` flag so the driver can decide between "try again next cycle" and
"somebody needs to look at this".

Propagation rules:
- Encoder / RPC client / decoder raise the narrow errors below
- BalanceOracle wraps them as BalanceQueryError naming the sub-call
- RoleReconciler wraps collaborator failures as RoleSyncError naming the step
- ReconciliationDriver is the only place errors are handled terminally
"""

from typing import Optional


class TierBotError(Exception):
    """Base class for all engine errors."""
    retryable: bool = False


class ConfigError(TierBotError):
    """Invalid or missing configuration at startup."""


class EncodingError(TierBotError):
    """A call argument cannot be represented in its declared ABI type."""


class InvalidAddressError(EncodingError):
    """Value is not a 0x-prefixed 40 hex digit address."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"invalid address: {value!r}")


class TransportError(TierBotError):
    """Connection, HTTP or client-side timeout failure talking to the node."""
    retryable = True

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class NodeError(TierBotError):
    """The node answered with an explicit JSON-RPC error object."""
    retryable = True

    def __init__(self, message: str, code: Optional[int] = None):
        self.code = code
        self.node_message = message
        text = f"node error {code}: {message}" if code is not None else f"node error: {message}"
        super().__init__(text)


class ProtocolError(TierBotError):
    """Response is not a well-formed JSON-RPC envelope."""


class DecodeError(TierBotError):
    """Malformed hex or text in a node result."""


class BalanceQueryError(TierBotError):
    """One of the balance / decimals / symbol sub-calls failed."""

    def __init__(self, sub_call: str, cause: Exception):
        self.sub_call = sub_call
        self.cause = cause
        super().__init__(f"{sub_call} query failed: {cause}")

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return getattr(self.cause, "retryable", False)


class RoleSyncError(TierBotError):
    """A role collaborator call failed partway through reconciliation.

    No rollback is attempted: roles removed before the failure stay removed.
    """
    retryable = True

    def __init__(self, step: str, role_name: str, cause: Exception):
        self.step = step
        self.role_name = role_name
        self.cause = cause
        super().__init__(f"role {step} failed for {role_name!r}: {cause}")


class HolderNotRegisteredError(TierBotError):
    """No wallet address is registered for the identity."""

    def __init__(self, identity: str):
        self.identity = identity
        super().__init__(f"no wallet address registered for {identity}")


class PipelineTimeoutError(TierBotError):
    """Caller-imposed deadline for one reconciliation pipeline was exceeded."""
    retryable = True

    def __init__(self, identity: str, timeout_seconds: float):
        self.identity = identity
        self.timeout_seconds = timeout_seconds
        super().__init__(f"reconciliation for {identity} exceeded {timeout_seconds:g}s")


class GuildApiError(TierBotError):
    """Non-success response from the guild (chat platform) REST API."""
    retryable = True

    def __init__(self, status: int, body: str = ""):
        self.status = status
        self.body = body
        super().__init__(f"guild API error HTTP {status}: {body[:200]}")
