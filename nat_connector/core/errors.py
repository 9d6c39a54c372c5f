"""
Error taxonomy for the NAT connector.

Every failure that reaches the dispatcher is one of these; the dispatcher
turns it into exactly one `.error` reply.
"""
from __future__ import annotations

from typing import Optional


class NatConnectorError(Exception):
    """Base class for all connector errors."""


# ── Decode ────────────────────────────────────────────────────────────────────

class EventDecodeError(NatConnectorError):
    """Inbound payload is not valid JSON or does not match the envelope schema."""

    def __init__(self, message: str, body: bytes = b"") -> None:
        super().__init__(message)
        self.body = body


# ── Validation ────────────────────────────────────────────────────────────────

class EventValidationError(NatConnectorError):
    message = "Event invalid"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.message)


class VpcIdInvalidError(EventValidationError):
    message = "Datacenter VPC ID invalid"


class RegionInvalidError(EventValidationError):
    message = "Datacenter Region invalid"


class CredentialsInvalidError(EventValidationError):
    message = "Datacenter credentials invalid"


class NetworkIdInvalidError(EventValidationError):
    message = "Network id invalid"


class RoutedNetworksEmptyError(EventValidationError):
    message = "Routed networks are empty"


class NatGatewayIdInvalidError(EventValidationError):
    message = "Nat Gateway aws id invalid"


# ── Provider ──────────────────────────────────────────────────────────────────

class ProviderError(NatConnectorError):
    """A remote EC2 call failed, or a wait on one did not converge."""

    def __init__(self, message: str, code: str = "", operation: str = "") -> None:
        super().__init__(message)
        self.code = code
        self.operation = operation


class WaitTimeoutError(ProviderError):
    """A state poll exceeded its wait budget."""


class WaitCancelledError(ProviderError):
    """A state poll was cancelled by the surrounding request handler."""


# ── Operation ─────────────────────────────────────────────────────────────────

class OperationNotSupportedError(NatConnectorError):
    pass


class CapacityExceededError(NatConnectorError):
    """The worker already has its maximum number of requests in flight."""
