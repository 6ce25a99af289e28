"""
Logging context for multi-account requests.

This module stores contextual information (account_id, correlation_id,
operation) that is automatically included in every log message by the
ContextFilter in logging_config.

Fan-out workers run on pool threads. contextvars do not flow into
ThreadPoolExecutor workers on their own, so the engine enters
``with_account_context`` inside each worker.

Usage:
    >>> from calendar_mcp.logging_context import with_account_context
    >>>
    >>> with with_account_context(account_id='work', correlation_id='abc-123'):
    >>>     logger.info("This log will include context")
    >>> # Previous context is restored after the block
"""
import contextvars
from contextlib import contextmanager
from typing import Dict, Any, Optional

_correlation_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar('correlation_id', default=None)
_account_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar('account_id', default=None)
_operation: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar('operation', default=None)


def get_logging_context() -> Dict[str, Any]:
    """
    Get the current logging context.

    Returns:
        Dictionary containing the context fields that are set:
        - correlation_id: Unique ID for one service call
        - account_id: Account being queried
        - operation: Logical action name (e.g. 'get_emails')
    """
    context = {}

    correlation_id = _correlation_id.get()
    account_id = _account_id.get()
    operation = _operation.get()

    if correlation_id is not None:
        context['correlation_id'] = correlation_id
    if account_id is not None:
        context['account_id'] = account_id
    if operation is not None:
        context['operation'] = operation

    return context


def set_correlation_id(correlation_id: Optional[str]) -> None:
    _correlation_id.set(correlation_id)


def set_account_id(account_id: Optional[str]) -> None:
    _account_id.set(account_id)


def set_operation(operation: Optional[str]) -> None:
    _operation.set(operation)


def clear_context() -> None:
    """Clear all context fields."""
    _correlation_id.set(None)
    _account_id.set(None)
    _operation.set(None)


@contextmanager
def with_account_context(
    account_id: Optional[str] = None,
    correlation_id: Optional[str] = None,
    operation: Optional[str] = None
):
    """
    Context manager for setting account context.

    Only the fields that are passed are changed; all three are restored on
    exit.

    Args:
        account_id: Account identifier
        correlation_id: Correlation ID for the service call
        operation: Logical action name

    Example:
        >>> with with_account_context(account_id='work', correlation_id='abc-123'):
        >>>     logger.info("Querying account")
    """
    tokens = []
    if account_id is not None:
        tokens.append((_account_id, _account_id.set(account_id)))
    if correlation_id is not None:
        tokens.append((_correlation_id, _correlation_id.set(correlation_id)))
    if operation is not None:
        tokens.append((_operation, _operation.set(operation)))

    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)
