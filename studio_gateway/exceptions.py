"""
Gateway Exception Hierarchy
===========================

Exceptions raised by route handlers and the backend request helper. The
handlers registered in main.py render them as JSON bodies that always carry
an ``error`` field, which is the envelope the booking front-end expects.

Exception Hierarchy:
    GatewayError (base)
    ├── BadRequestError              → 400
    ├── UnauthorizedError            → 401
    ├── ProviderConfigurationError   → 500
    ├── UpstreamError                → backend status, backend body
    └── BackendTransportError        → 503 (never reached the backend)
        ├── BackendUnreachableError  → 503 (DNS, connection refused, TLS)
        └── BackendTimeoutError      → 408 (request aborted)
"""

from typing import Any, Dict, Optional


class GatewayError(Exception):
    """
    Base exception for all gateway errors.

    Attributes:
        message: Client-safe error description
        status_code: HTTP status returned to the client
        payload: Optional body returned verbatim instead of ``{"error": message}``
    """

    status_code = 500

    def __init__(
        self,
        message: str = "Internal server error",
        status_code: Optional[int] = None,
        payload: Optional[Any] = None,
    ):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload
        super().__init__(self.message)

    def to_content(self) -> Any:
        if self.payload is not None:
            return self.payload
        return {"error": self.message}


class BadRequestError(GatewayError):
    """Raised when the inbound request is missing a required field."""

    status_code = 400


class UnauthorizedError(GatewayError):
    """Raised by protected routes when no valid session is present."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class ProviderConfigurationError(GatewayError):
    """Raised when the auth provider URL or keys are not configured."""

    status_code = 500

    def __init__(self, message: str = "Supabase configuration missing"):
        super().__init__(message)


class UpstreamError(GatewayError):
    """
    Backend answered with a non-2xx status that is relayed to the client.

    The backend's own error body is passed through unchanged when it has one.
    """

    def __init__(self, status_code: int, body: Optional[Dict[str, Any]] = None,
                 message: str = "Request failed"):
        super().__init__(message, status_code=status_code, payload=body)


class BackendTransportError(GatewayError):
    """The outbound call failed before an HTTP response was received."""

    status_code = 503

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Network error: {reason}")


class BackendUnreachableError(BackendTransportError):
    """DNS failure, connection refused or TLS handshake error."""


class BackendTimeoutError(BackendTransportError):
    """The outbound call exceeded its timeout and was aborted."""

    status_code = 408
