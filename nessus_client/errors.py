"""Error taxonomy for nessus-client.

Every failure of a call is one of these exceptions. None of them is retried
by the library; they are raised straight to the caller of perform_request.
"""

from __future__ import annotations


class NessusClientError(Exception):
    """Base class for all errors raised while performing a call."""


class InvalidRequestError(NessusClientError):
    """Raised when the method or URL cannot form a valid HTTP request."""


class SerializationError(NessusClientError):
    """Raised when a structured body cannot be converted to JSON."""

    def __init__(self, message: str, value_type: type) -> None:
        super().__init__(message)
        self.value_type = value_type


class EncodingError(NessusClientError):
    """Raised when compressing a request body fails."""


class TransportError(NessusClientError):
    """Raised when sending the request fails (connection, TLS, timeout)."""


class DecodeError(NessusClientError):
    """Raised when a response body cannot be parsed.

    Carries the status code, headers and raw bytes of the response so callers
    can still branch on the HTTP status of an error page.
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        headers: dict[str, list[str]],
        content: bytes,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.headers = headers
        self.content = content


class ConfigError(Exception):
    """Raised when client configuration loading or validation fails."""
