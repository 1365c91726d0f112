"""
Custom exceptions for update-stream.

Every failure the engine forwards to subscribers is one of these classes, so
callers can tell transport trouble from an API refusal without parsing text.
"""

from typing import Any


class UpdateStreamError(Exception):
    """Base exception for update-stream errors."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code or "UPDATE_STREAM_ERROR"
        self.context = context or {}


class TransportError(UpdateStreamError):
    """Network or I/O failure while talking to the bot API."""

    def __init__(
        self,
        message: str,
        method: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "TRANSPORT_ERROR", context)
        self.method = method


class DecodeError(UpdateStreamError):
    """Malformed response envelope or payload."""

    def __init__(
        self,
        message: str,
        method: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "DECODE_ERROR", context)
        self.method = method


class ApiError(UpdateStreamError):
    """The server answered with ``ok=false``."""

    def __init__(
        self,
        description: str | None = None,
        error_code: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        message = description or "Bot API request failed"
        if error_code is not None:
            message = f"[{error_code}] {message}"
        super().__init__(message, "API_ERROR", context)
        self.description = description
        self.error_code = error_code

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ApiError):
            return NotImplemented
        return (
            self.description == other.description
            and self.error_code == other.error_code
        )

    def __hash__(self) -> int:
        return hash((self.description, self.error_code))


class RequestConstructionError(UpdateStreamError):
    """The request for an endpoint could not be built."""

    def __init__(
        self,
        message: str,
        method: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "REQUEST_CONSTRUCTION_ERROR", context)
        self.method = method


class ConfigurationError(UpdateStreamError):
    """Exception for configuration related errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, "CONFIGURATION_ERROR", context)
