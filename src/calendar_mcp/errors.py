"""
Error taxonomy and error-logging utilities for calendar-mcp.

This module provides:
- Standard error codes for each failure category
- The exception hierarchy raised by the registry, resolver, backends and routing
- Standardized error logging with operation context
- Error categorization for exceptions that do not carry their own code

Every per-account failure recorded by the fan-out engine carries one of the
codes below, so the invocation layer can tell "no token, re-enroll" apart from
"the provider returned an error".
"""

import logging
from typing import Optional, Dict, Any

import requests

logger = logging.getLogger(__name__)


class ErrorCode:
    """Standard error codes for different error categories."""
    # Configuration errors (1xxx)
    CONFIG_MISSING = "E1001"
    CONFIG_INVALID = "E1002"
    DUPLICATE_ACCOUNT = "E1003"

    # Lookup and routing errors (2xxx)
    UNKNOWN_ACCOUNT = "E2001"
    UNKNOWN_PROVIDER = "E2002"
    ROUTING_FAILED = "E2004"

    # Authentication errors (3xxx)
    NO_CREDENTIAL = "E3001"

    # Backend errors (4xxx)
    BACKEND_REQUEST_FAILED = "E4001"
    BACKEND_TIMEOUT = "E4002"
    BACKEND_INVALID_RESPONSE = "E4003"

    # Execution errors (5xxx)
    CANCELLED = "E5001"
    INVALID_ARGUMENT = "E5002"

    # Unknown errors (9xxx)
    UNKNOWN_ERROR = "E9001"


class CalendarMcpError(Exception):
    """Base exception for all calendar-mcp errors."""
    error_code = ErrorCode.UNKNOWN_ERROR


class ConfigurationError(CalendarMcpError):
    """Raised when the account configuration cannot be loaded or is malformed."""
    error_code = ErrorCode.CONFIG_INVALID

    def __init__(self, message: str, error_code: Optional[str] = None):
        if error_code is not None:
            self.error_code = error_code
        super().__init__(message)


class UnknownAccountError(CalendarMcpError):
    """Raised when an explicitly requested account id is not in the registry."""
    error_code = ErrorCode.UNKNOWN_ACCOUNT

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account '{account_id}' not found")


class UnknownProviderError(CalendarMcpError):
    """Raised when a provider kind has no backend mapping."""
    error_code = ErrorCode.UNKNOWN_PROVIDER

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"Unknown provider kind: {provider!r}")


class NoCredentialError(CalendarMcpError):
    """
    Raised when the authentication collaborator has no token for an account.

    This is the "re-enrollment required" outcome. Reads convert it into an
    empty result plus a recorded failure; writes surface it to the caller.
    """
    error_code = ErrorCode.NO_CREDENTIAL

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(
            f"No credential available for account '{account_id}'; re-enrollment required"
        )


class BackendError(CalendarMcpError):
    """Raised when a provider's remote API call fails."""
    error_code = ErrorCode.BACKEND_REQUEST_FAILED

    def __init__(self, message: str, status_code: Optional[int] = None, error_code: Optional[str] = None):
        self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        super().__init__(message)


class RoutingError(CalendarMcpError):
    """Raised when no account can be selected for a write without an explicit target."""
    error_code = ErrorCode.ROUTING_FAILED


class InvalidArgumentError(CalendarMcpError):
    """Raised for missing or inconsistent request parameters."""
    error_code = ErrorCode.INVALID_ARGUMENT


class OperationCancelledError(CalendarMcpError):
    """Raised inside a backend call when the fan-out has been cancelled."""
    error_code = ErrorCode.CANCELLED


def log_error_with_context(
    error: Exception,
    error_code: str,
    operation: str,
    context: Optional[Dict[str, Any]] = None,
    level: int = logging.ERROR,
    include_traceback: bool = True
) -> None:
    """
    Log an error with standardized context information.

    Args:
        error: The exception that occurred
        error_code: Standard error code from ErrorCode class
        operation: Description of the operation that failed
        context: Additional context dictionary (account id, provider, etc.)
        level: Logging level (default: ERROR)
        include_traceback: Whether to include full traceback (default: True)

    Example:
        >>> try:
        ...     backend.get_emails(account, count=20)
        ... except Exception as e:
        ...     log_error_with_context(
        ...         e, ErrorCode.BACKEND_REQUEST_FAILED,
        ...         "Fetching emails",
        ...         context={'account_id': 'work'}
        ...     )
    """
    error_type = type(error).__name__
    error_message = str(error)

    context_str = ""
    if context:
        context_items = [f"{k}={v}" for k, v in context.items() if v is not None]
        if context_items:
            context_str = f" | Context: {', '.join(context_items)}"

    log_message = (
        f"[{error_code}] {operation} failed: {error_type}: {error_message}{context_str}"
    )

    if include_traceback:
        logger.log(level, log_message, exc_info=error)
    else:
        logger.log(level, log_message)


def categorize_error(error: BaseException) -> str:
    """
    Return the error code for an exception.

    Library errors carry their own ``error_code``; anything else is mapped by
    type.

    Args:
        error: The exception to categorize

    Returns:
        Error code string from ErrorCode

    Example:
        >>> categorize_error(TimeoutError("read timed out"))
        'E4002'
    """
    code = getattr(error, 'error_code', None)
    if isinstance(code, str):
        return code

    if isinstance(error, (TimeoutError, requests.exceptions.Timeout)):
        return ErrorCode.BACKEND_TIMEOUT
    elif isinstance(error, (ConnectionError, requests.exceptions.RequestException)):
        return ErrorCode.BACKEND_REQUEST_FAILED
    elif isinstance(error, (KeyError, ValueError, TypeError)):
        return ErrorCode.BACKEND_INVALID_RESPONSE
    else:
        return ErrorCode.UNKNOWN_ERROR
