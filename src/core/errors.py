"""Error classification utilities for remote store failures."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel


class ErrorCategory(Enum):
    """Categories of errors that can occur while talking to the task store."""

    AUTHENTICATION_FAILED = "authentication_failed"
    NETWORK_ERROR = "network_error"
    RECORD_NOT_FOUND = "record_not_found"
    PERMISSION_DENIED = "permission_denied"
    INVALID_QUERY = "invalid_query"
    STORE_UNAVAILABLE = "store_unavailable"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    # Store errors
    ERR_NETWORK_ERROR = "ERR_NETWORK_ERROR"
    ERR_STORE_UNAVAILABLE = "ERR_STORE_UNAVAILABLE"
    ERR_INVALID_QUERY = "ERR_INVALID_QUERY"

    # Task errors
    ERR_TASK_NOT_FOUND = "ERR_TASK_NOT_FOUND"

    # Identity errors
    ERR_AUTHENTICATION_FAILED = "ERR_AUTHENTICATION_FAILED"
    ERR_PERMISSION_DENIED = "ERR_PERMISSION_DENIED"

    # Generic errors
    ERR_UNKNOWN = "ERR_UNKNOWN"


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    category: ErrorCategory
    message: str
    suggestion: str
    severity: ErrorSeverity


_ERROR_PATTERNS: dict[
    Literal["auth", "network", "unavailable", "query"],
    dict[str, list[str] | set[str]],
] = {
    "auth": {
        "phrases": [
            "authentication failed",
            "unauthorized",
            "invalid token",
            "jwt expired",
            "401",
        ],
        "exception_types": {"AuthenticationError"},
    },
    "network": {
        "phrases": [
            "connection",
            "timeout",
            "timed out",
            "network",
            "503",
            "502",
            "504",
            "unreachable",
        ],
        "exception_types": {"ConnectionError", "TimeoutError", "ConnectTimeout", "ReadTimeout"},
    },
    "unavailable": {
        "phrases": [
            "database is locked",
            "unable to open database",
            "disk i/o error",
            "does not exist",
        ],
        "exception_types": set(),
    },
    "query": {
        "phrases": [
            "invalid filter syntax",
            "unsupported operator",
            "invalid collection name",
            "syntax error",
        ],
        "exception_types": set(),
    },
}


def _match_error_pattern(
    *,
    error_str: str,
    exception_type: str,
    pattern_type: Literal["auth", "network", "unavailable", "query"],
) -> bool:
    """Return True if the error matches the configured pattern type."""
    patterns = _ERROR_PATTERNS[pattern_type]
    return any(phrase in error_str for phrase in patterns["phrases"]) or exception_type in patterns["exception_types"]


def _exception_chain(exception: BaseException) -> list[BaseException]:
    """Return the exception followed by its causes, outermost first."""
    chain: list[BaseException] = []
    current: BaseException | None = exception
    while current is not None and current not in chain:
        chain.append(current)
        current = current.__cause__ or current.__context__
    return chain


def classify_store_error(exception: BaseException) -> ErrorResponse:  # noqa: PLR0911
    """Classify a remote store failure and return a structured response with recovery suggestions.

    The exception and its causes are inspected, so a ``DatabaseError`` wrapping a
    connection failure is still reported as a network problem.

    Args:
        exception: The exception raised by the remote store

    Returns:
        ErrorResponse with code, category, message, suggestion, and severity
    """
    chain = _exception_chain(exception)
    error_str = " | ".join(str(e) for e in chain).lower()
    exception_types = [type(e).__name__ for e in chain]

    if "RecordNotFoundError" in exception_types or "record not found" in error_str:
        return ErrorResponse(
            code=ErrorCode.ERR_TASK_NOT_FOUND,
            category=ErrorCategory.RECORD_NOT_FOUND,
            message="That task no longer exists.",
            suggestion="Refresh the list to see current tasks.",
            severity=ErrorSeverity.LOW,
        )

    if "PermissionError" in exception_types or "permission denied" in error_str:
        return ErrorResponse(
            code=ErrorCode.ERR_PERMISSION_DENIED,
            category=ErrorCategory.PERMISSION_DENIED,
            message="You don't have permission for this action.",
            suggestion="Sign in again and retry.",
            severity=ErrorSeverity.MEDIUM,
        )

    for exception_type in exception_types:
        if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="auth"):
            return ErrorResponse(
                code=ErrorCode.ERR_AUTHENTICATION_FAILED,
                category=ErrorCategory.AUTHENTICATION_FAILED,
                message="Your session is no longer valid.",
                suggestion="Please sign in again.",
                severity=ErrorSeverity.HIGH,
            )

    for exception_type in exception_types:
        if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="network"):
            return ErrorResponse(
                code=ErrorCode.ERR_NETWORK_ERROR,
                category=ErrorCategory.NETWORK_ERROR,
                message="Network error occurred.",
                suggestion="Please check your connection and try again.",
                severity=ErrorSeverity.MEDIUM,
            )

    if _match_error_pattern(error_str=error_str, exception_type="", pattern_type="unavailable"):
        return ErrorResponse(
            code=ErrorCode.ERR_STORE_UNAVAILABLE,
            category=ErrorCategory.STORE_UNAVAILABLE,
            message="The task store is temporarily unavailable.",
            suggestion="Please try again in a moment.",
            severity=ErrorSeverity.HIGH,
        )

    if _match_error_pattern(error_str=error_str, exception_type="", pattern_type="query"):
        return ErrorResponse(
            code=ErrorCode.ERR_INVALID_QUERY,
            category=ErrorCategory.INVALID_QUERY,
            message="The request could not be processed.",
            suggestion="Please try again later. If the problem persists, contact support.",
            severity=ErrorSeverity.HIGH,
        )

    return ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        category=ErrorCategory.UNKNOWN,
        message="An unexpected error occurred.",
        suggestion="Please try again later. If the problem persists, contact support.",
        severity=ErrorSeverity.MEDIUM,
    )
