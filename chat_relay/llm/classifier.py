"""
Failure classification for relay exchanges.

Every failure path (upstream status, upstream transport, bad input, missing
credential) maps to exactly one ErrorOutcome with a fixed user-facing message.
Upstream error bodies and exception text are kept for logs only.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from .exceptions import ExchangeFailed


class ErrorKind(Enum):
    """Failure categories surfaced to the user."""
    BAD_REQUEST = "bad_request"
    RATE_LIMITED = "rate_limited"
    AUTH_FAILED = "auth_failed"
    UPSTREAM_ERROR = "upstream_error"
    NETWORK_ERROR = "network_error"
    PARSE_NOISE = "parse_noise"  # logged only, never surfaced


USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.BAD_REQUEST: "Invalid request format. Please check your input.",
    ErrorKind.RATE_LIMITED: (
        "You are sending messages too frequently. "
        "Please wait a moment and try again."
    ),
    ErrorKind.AUTH_FAILED: "Insufficient permissions or authentication failure.",
    ErrorKind.UPSTREAM_ERROR: "Sorry, a server error occurred. Please try again later.",
    ErrorKind.NETWORK_ERROR: (
        "Network error occurred. Please check your connection and try again."
    ),
    ErrorKind.PARSE_NOISE: "",
}

MISSING_CREDENTIAL_MESSAGE = (
    "The server is missing API credentials. Please check server configuration."
)

# Status the relay answers with when it reports an outcome before streaming.
HTTP_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.AUTH_FAILED: 401,
    ErrorKind.UPSTREAM_ERROR: 502,
    ErrorKind.NETWORK_ERROR: 504,
}

HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_TOO_MANY_REQUESTS = 429


@dataclass(frozen=True)
class ErrorOutcome:
    """Classified failure attached to a failed exchange."""
    kind: ErrorKind
    user_message: str

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_KIND.get(self.kind, 500)

    def to_dict(self) -> dict[str, str]:
        return {"error": self.kind.value, "message": self.user_message}


class ErrorClassifier:
    """Pure, total mapping from failures to outcomes."""

    @staticmethod
    def outcome(kind: ErrorKind) -> ErrorOutcome:
        return ErrorOutcome(kind=kind, user_message=USER_MESSAGES[kind])

    @staticmethod
    def classify_status(
        status_code: int | None,
        body: Any = None,  # noqa: ARG004
    ) -> ErrorOutcome:
        """
        Classify an upstream (or relay) response status.

        Args:
            status_code: HTTP status, or None when no usable status exists
            body: Error body, accepted for call-site symmetry; never shown

        Returns:
            The outcome for the status; unmapped codes are upstream errors
        """
        if status_code == HTTP_TOO_MANY_REQUESTS:
            kind = ErrorKind.RATE_LIMITED
        elif status_code == HTTP_BAD_REQUEST:
            kind = ErrorKind.BAD_REQUEST
        elif status_code in (HTTP_UNAUTHORIZED, HTTP_FORBIDDEN):
            kind = ErrorKind.AUTH_FAILED
        else:
            kind = ErrorKind.UPSTREAM_ERROR
        return ErrorClassifier.outcome(kind)

    @staticmethod
    def classify_exception(error: BaseException) -> ErrorOutcome:
        """Classify an exception raised while reaching or reading upstream."""
        if isinstance(error, ExchangeFailed):
            return error.outcome
        if isinstance(error, httpx.HTTPStatusError):
            return ErrorClassifier.classify_status(error.response.status_code)
        if isinstance(error, httpx.TransportError | ConnectionError | TimeoutError | OSError):
            return ErrorClassifier.outcome(ErrorKind.NETWORK_ERROR)
        return ErrorClassifier.outcome(ErrorKind.UPSTREAM_ERROR)

    @staticmethod
    def missing_credential() -> ErrorOutcome:
        return ErrorOutcome(
            kind=ErrorKind.AUTH_FAILED, user_message=MISSING_CREDENTIAL_MESSAGE
        )

    @staticmethod
    def error_detail(body: Any) -> str | None:
        """Pull the provider's error message out of an error body for logging."""
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict):
                message = error.get("message")
                return str(message) if message is not None else None
            if isinstance(error, str):
                return error
        if isinstance(body, str) and body:
            return body[:500]
        return None
