from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class AladhanApiError(RuntimeError):
    """Upstream answered, but not with a usable ``code == 200 / status == OK`` payload."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FetchJobError(RuntimeError):
    pass


class FetchCancelledError(FetchJobError):
    pass


class ErrorType(str, Enum):
    NETWORK = "network"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    API = "api"
    VALIDATION = "validation"
    DATABASE = "database"
    UNKNOWN = "unknown"


# Checked in order; the first matching keyword wins.
_KEYWORDS: list[tuple[ErrorType, tuple[str, ...]]] = [
    (ErrorType.NETWORK, ("network", "fetch", "connection")),
    (ErrorType.TIMEOUT, ("timeout", "timed out")),
    (ErrorType.RATE_LIMIT, ("rate limit", "too many requests")),
    (ErrorType.API, ("api", "http")),
    (ErrorType.VALIDATION, ("validation", "invalid")),
    (ErrorType.DATABASE, ("database", "sqlite")),
]

_RETRYABLE = frozenset({ErrorType.NETWORK, ErrorType.TIMEOUT, ErrorType.API, ErrorType.RATE_LIMIT})

_BASE_DELAYS: dict[ErrorType, float] = {
    ErrorType.NETWORK: 1.0,
    ErrorType.TIMEOUT: 2.0,
    ErrorType.API: 1.0,
    ErrorType.RATE_LIMIT: 5.0,
    ErrorType.VALIDATION: 0.0,
    ErrorType.DATABASE: 2.0,
    ErrorType.UNKNOWN: 1.0,
}

_MESSAGES: dict[ErrorType, str] = {
    ErrorType.API: "Unable to fetch prayer times from the API. Please try again later.",
    ErrorType.VALIDATION: "Invalid prayer time data. Please check the input format.",
    ErrorType.DATABASE: "Database error occurred. Please try again.",
    ErrorType.NETWORK: "Network connection failed. Please check your internet connection.",
    ErrorType.TIMEOUT: "Request timed out. Please try again.",
    ErrorType.RATE_LIMIT: "Too many requests. Please wait a moment and try again.",
    ErrorType.UNKNOWN: "An unexpected error occurred. Please try again.",
}


@dataclass(frozen=True)
class ErrorDetails:
    type: ErrorType
    message: str
    retryable: bool
    location: str | None = None
    date: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))


def categorize_error(error: BaseException | None) -> ErrorType:
    if error is None:
        return ErrorType.UNKNOWN
    message = str(error).lower()
    for error_type, keywords in _KEYWORDS:
        if any(keyword in message for keyword in keywords):
            return error_type
    return ErrorType.UNKNOWN


def is_retryable(error_type: ErrorType) -> bool:
    return error_type in _RETRYABLE


def get_retry_delay(error_type: ErrorType, attempt: int) -> float:
    """Seconds to wait before retry ``attempt`` (0-based)."""
    return _BASE_DELAYS.get(error_type, 1.0) * (2**attempt)


def get_user_friendly_message(error_type: ErrorType) -> str:
    return _MESSAGES.get(error_type, _MESSAGES[ErrorType.UNKNOWN])


def describe_error(
    error: BaseException,
    *,
    location: str | None = None,
    date: str | None = None,
) -> ErrorDetails:
    error_type = categorize_error(error)
    return ErrorDetails(
        type=error_type,
        message=str(error),
        retryable=is_retryable(error_type),
        location=location,
        date=date,
    )
