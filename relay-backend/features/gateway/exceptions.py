"""Exception classes for the OpenClaw gateway client.

This module defines the exception hierarchy for gateway errors:
- GatewayError: Base exception for all gateway errors
- HandshakeFailure: The challenge/connect exchange did not reach Ready
- SigningFailure: The device identity could not sign the challenge
- RequestRejected: A response frame came back with ok=false
- ConnectionLost: The socket closed while requests were still pending
- MalformedFrame: An inbound frame matched no known shape
- NotConnected: A request was submitted outside the Ready state
- RequestTimeout: A caller-side deadline expired before the response
"""

from __future__ import annotations

from typing import Optional

from core.exceptions import ServiceError


class GatewayError(ServiceError):
    """Base exception for gateway client errors."""


class HandshakeFailure(GatewayError):
    """Challenge never arrived, or the connect request was rejected."""


class SigningFailure(HandshakeFailure):
    """Device identity is unusable for signing the challenge."""


class RequestRejected(GatewayError):
    """Request failed with an ok=false response from the gateway.

    Attributes:
        code: Error code from gateway (e.g., "UNAVAILABLE", "INVALID_REQUEST")
        message: Human-readable error message
        retryable: Whether the request can be retried
    """

    def __init__(self, code: str, message: str, retryable: bool = False):
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message
        self.retryable = retryable


class ConnectionLost(GatewayError):
    """Socket closed or errored; every pending request is rejected with this."""

    def __init__(self, reason: str, code: Optional[int] = None):
        detail = f"gateway closed ({code}): {reason}" if code is not None else f"gateway closed: {reason}"
        super().__init__(detail)
        self.reason = reason
        self.code = code


class MalformedFrame(GatewayError):
    """Inbound frame is not valid JSON or matches neither frame shape."""

    def __init__(self, reason: str, raw: object = None):
        super().__init__(reason)
        self.reason = reason
        self.raw = raw


class NotConnected(GatewayError):
    """Raised when submitting while the connection is not Ready."""

    def __init__(self, message: str = "Gateway not connected"):
        super().__init__(message)


class RequestTimeout(GatewayError):
    """No response arrived within the caller's deadline."""

    def __init__(self, method: str, timeout: float):
        super().__init__(f"Request {method} timed out after {timeout}s")
        self.method = method
        self.timeout = timeout


class DuplicateRequestId(GatewayError):
    """A request id was registered while an earlier one is still pending."""


class IllegalTransition(GatewayError):
    """Connection state change not allowed from the current state."""


__all__ = [
    "ConnectionLost",
    "DuplicateRequestId",
    "GatewayError",
    "HandshakeFailure",
    "IllegalTransition",
    "MalformedFrame",
    "NotConnected",
    "RequestRejected",
    "RequestTimeout",
    "SigningFailure",
]
