"""
Molkbook SDK - Error Classes

Error taxonomy for REST calls and generation streams.
"""

from typing import Optional, Dict, Any


class MolkbookError(Exception):
    """
    Base exception for the Molkbook SDK.

    All SDK errors inherit from this class.

    Attributes:
        message: Human-readable error message
        code: Error code for programmatic handling
        status_code: HTTP status code if applicable
        retryable: Whether the request can be retried
        details: Additional error details
    """

    def __init__(
        self,
        message: str,
        code: str = "unknown",
        status_code: int = 500,
        retryable: bool = False,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.retryable = retryable
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"status_code={self.status_code})"
        )

    @classmethod
    def from_response(cls, response_data: Any, status_code: int) -> "MolkbookError":
        """
        Create an error from an API error body.

        The backend answers failures with ``{"success": false, "error": ...,
        "message": ...}``; ``error`` wins over ``message`` when both exist.
        """
        message = None
        if isinstance(response_data, dict):
            message = response_data.get("error") or response_data.get("message")
        if not message:
            message = f"HTTP {status_code}"

        if status_code == 400:
            return InvalidRequestError(message, status_code=status_code)
        if status_code == 401:
            return AuthenticationError(message, status_code=status_code)
        if status_code == 404:
            return NotFoundError(message, status_code=status_code)
        if status_code == 429:
            return RateLimitError(message)
        if status_code >= 500:
            return ServerError(message, status_code=status_code)

        return cls(message=message, status_code=status_code)


class AuthenticationError(MolkbookError):
    """
    Bearer token is invalid, expired or missing.

    This error occurs when:
    - No token was configured for a call that needs one
    - The token was rejected by the API
    """

    def __init__(
        self,
        message: str = "Invalid or missing token",
        code: str = "authentication_error",
        **kwargs
    ):
        kwargs.pop("retryable", None)  # Remove if passed, we force it
        super().__init__(
            message=message,
            code=code,
            status_code=kwargs.pop("status_code", 401),
            retryable=False,
            **kwargs
        )


class InvalidRequestError(MolkbookError):
    """
    Request parameters are invalid.

    Attributes:
        param: The parameter that caused the error
    """

    def __init__(
        self,
        message: str,
        param: Optional[str] = None,
        **kwargs
    ):
        kwargs.pop("retryable", None)  # Remove if passed, we force it
        super().__init__(
            message=message,
            code=kwargs.pop("code", "invalid_request"),
            status_code=kwargs.pop("status_code", 400),
            retryable=False,
            **kwargs
        )
        self.param = param


class NotFoundError(MolkbookError):
    """The requested user, post or comment does not exist."""

    def __init__(self, message: str = "Resource not found", **kwargs):
        kwargs.pop("retryable", None)
        super().__init__(
            message=message,
            code=kwargs.pop("code", "not_found"),
            status_code=kwargs.pop("status_code", 404),
            retryable=False,
            **kwargs
        )


class RateLimitError(MolkbookError):
    """
    Rate limit exceeded.

    Attributes:
        retry_after: Seconds to wait before retrying
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: int = 60,
        **kwargs
    ):
        kwargs.pop("retryable", None)  # Remove if passed, we force it
        kwargs.pop("code", None)  # Remove if passed, we force it
        super().__init__(
            message=message,
            code="rate_limit_exceeded",
            status_code=kwargs.pop("status_code", 429),
            retryable=True,
            **kwargs
        )
        self.retry_after = retry_after


class ServerError(MolkbookError):
    """The API failed with a 5xx status."""

    def __init__(self, message: str = "Internal server error", **kwargs):
        super().__init__(
            message=message,
            code=kwargs.pop("code", "server_error"),
            status_code=kwargs.pop("status_code", 500),
            retryable=kwargs.pop("retryable", True),
            **kwargs
        )


class TransportError(MolkbookError):
    """
    The generation stream could not be opened or broke mid-stream.

    Raised by transports for refused connections, non-success status codes
    (including a rejected token) and socket failures while reading. A stream
    session turns it into a single ``Failed`` event.
    """

    def __init__(self, message: str = "Stream transport failed", **kwargs):
        super().__init__(
            message=message,
            code=kwargs.pop("code", "transport_error"),
            status_code=kwargs.pop("status_code", 503),
            retryable=kwargs.pop("retryable", False),
            **kwargs
        )


class TimeoutError(TransportError):
    """Request timed out."""

    def __init__(
        self,
        message: str = "Request timed out",
        **kwargs
    ):
        kwargs.pop("retryable", None)  # Remove if passed
        kwargs.pop("code", None)  # Remove if passed
        super().__init__(
            message=message,
            code="timeout",
            status_code=kwargs.pop("status_code", 408),
            retryable=True,
            **kwargs
        )


class ConnectionError(TransportError):
    """
    Failed to connect to the API.

    This error occurs when:
    - Network is unavailable
    - DNS resolution fails
    - Connection is refused
    """

    def __init__(
        self,
        message: str = "Failed to connect to API",
        **kwargs
    ):
        kwargs.pop("retryable", None)  # Remove if passed
        kwargs.pop("code", None)  # Remove if passed
        super().__init__(
            message=message,
            code="connection_error",
            status_code=kwargs.pop("status_code", 503),
            retryable=True,
            **kwargs
        )


class ProtocolError(MolkbookError):
    """
    The stream violated the wire protocol.

    Raised when a ``done`` frame carries a payload that does not decode into
    an identifier plus content, or when the stream ends before any terminal
    frame arrived.

    Attributes:
        frame: The offending raw frame, if any
    """

    def __init__(
        self,
        message: str = "Malformed stream",
        frame: Optional[str] = None,
        **kwargs
    ):
        kwargs.pop("retryable", None)
        kwargs.pop("code", None)
        super().__init__(
            message=message,
            code="protocol_error",
            status_code=kwargs.pop("status_code", 502),
            retryable=False,
            **kwargs
        )
        self.frame = frame


class RemoteFailure(MolkbookError):
    """The server reported a generation failure with an ``error`` frame."""

    def __init__(self, message: str, **kwargs):
        kwargs.pop("retryable", None)
        kwargs.pop("code", None)
        super().__init__(
            message=message,
            code="remote_failure",
            status_code=kwargs.pop("status_code", 500),
            retryable=False,  # Content may already be persisted
            **kwargs
        )


def is_retryable_error(error: Any) -> bool:
    """
    Check if an error is retryable.

    Infrastructure errors (rate limits, timeouts, connection issues,
    5xx responses) are retryable. Semantic errors (invalid request,
    authentication, protocol violations) are not.
    """
    if isinstance(error, MolkbookError):
        return error.retryable

    return False
