from __future__ import annotations


class GatewayError(Exception):
    """Base class for every failure raised by the exchange gateway."""


class CredentialMissing(GatewayError):
    """A signed call was attempted without an API key or secret."""


class TransportError(GatewayError):
    """The request never produced a usable response (network, relay, HTTP status)."""


class ForwarderActivationRequired(TransportError):
    """The forwarding relay answered with its activation page instead of proxying the call."""


class ExchangeRejected(GatewayError):
    """The exchange answered with an application-level error code."""

    def __init__(self, message: str, *, code: int | str | None = None, status: int | None = None):
        super().__init__(message)
        self.code = code
        self.status = status


class MalformedResponse(GatewayError):
    """The response body could not be decoded into the expected payload."""
