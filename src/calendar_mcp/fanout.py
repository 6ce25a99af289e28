"""
Fan-out engine: run one operation against many accounts concurrently.

Each account's call runs on a worker thread and is wrapped so that any
exception becomes a failure entry tagged with the account id. Results are
merged only after every call has settled, timed out or been cancelled, and
are then put in a documented order, so the output never depends on which
account answered first.

Ordering:
    - With a sort key: stable sort on that key (``reverse`` for descending)
    - Ties, and calls without a sort key: position of the source account in
      the ``accounts`` argument (callers pass registry order), then the order
      the backend returned the items in

Usage:
    >>> engine = FanOutEngine(max_workers=4, default_timeout=30)
    >>> result = engine.execute(
    ...     registry.get_enabled(),
    ...     lambda account, token: backend.get_emails(account, count=10, cancel_token=token),
    ...     sort_key=lambda e: e.received_date_time,
    ...     reverse=True,
    ... )
    >>> result.status, len(result.items), [f.account_id for f in result.failures]
"""
import logging
import threading
import time
import uuid
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from calendar_mcp.errors import (
    ErrorCode,
    CalendarMcpError,
    OperationCancelledError,
    categorize_error,
    log_error_with_context,
)
from calendar_mcp.logging_context import with_account_context
from calendar_mcp.models import Account

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_WORKERS = 8

# How often the coordinator re-checks the cancellation signal while waiting
_POLL_INTERVAL_SECONDS = 0.05

# Failure codes logged as warnings: expected outcomes, not faults
_EXPECTED_FAILURE_CODES = (ErrorCode.NO_CREDENTIAL, ErrorCode.CANCELLED)

AccountOperation = Callable[[Account, 'CancellationToken'], Optional[Sequence[Any]]]


class CancellationToken:
    """
    Cooperative cancellation signal shared by every call of one fan-out.

    Backends check it at request boundaries; a token created with a parent
    is also cancelled when the parent is.
    """

    def __init__(self, parent: Optional['CancellationToken'] = None):
        self._event = threading.Event()
        self._parent = parent

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.is_cancelled

    def raise_if_cancelled(self) -> None:
        """
        Raises:
            OperationCancelledError: If the token has been cancelled
        """
        if self.is_cancelled:
            raise OperationCancelledError("Operation cancelled")


class FanOutStatus(str, Enum):
    """Overall outcome of a fan-out (per-account failures are listed separately)."""
    OK = "ok"
    NO_TARGETS = "no_targets"
    CANCELLED = "cancelled"


@dataclass
class AccountFailure:
    """One account's failure, as surfaced to the caller."""
    account_id: str
    error: str
    error_code: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'accountId': self.account_id,
            'error': self.error,
            'errorCode': self.error_code,
        }


@dataclass
class PartialResult:
    """Outcome of one account's call: items on success, a failure otherwise."""
    account_id: str
    items: List[Any] = field(default_factory=list)
    failure: Optional[AccountFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, account_id: str, items: Sequence[Any]) -> 'PartialResult':
        return cls(account_id=account_id, items=list(items))

    @classmethod
    def failed(cls, account_id: str, error: str, error_code: str) -> 'PartialResult':
        return cls(account_id=account_id, failure=AccountFailure(account_id, error, error_code))


@dataclass
class MergedResult:
    """
    Merged outcome of a fan-out.

    ``NO_TARGETS`` means zero accounts were queried, which is different from
    ``OK`` with an empty ``items`` list (accounts were queried and nothing
    matched).
    """
    status: FanOutStatus
    items: List[Any] = field(default_factory=list)
    failures: List[AccountFailure] = field(default_factory=list)
    accounts_queried: List[str] = field(default_factory=list)
    reason: Optional[str] = None

    @property
    def is_partial(self) -> bool:
        return self.status == FanOutStatus.OK and bool(self.failures)

    @classmethod
    def no_targets(cls, reason: str) -> 'MergedResult':
        return cls(status=FanOutStatus.NO_TARGETS, reason=reason)


class FanOutEngine:
    """
    Runs account-scoped operations concurrently with isolated failures.

    Args:
        max_workers: Upper bound on worker threads per fan-out
        default_timeout: Deadline in seconds for one fan-out; accounts not
            settled by then are reported as timed out
    """

    def __init__(self, max_workers: int = DEFAULT_MAX_WORKERS, default_timeout: float = DEFAULT_TIMEOUT_SECONDS):
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        self.max_workers = max_workers
        self.default_timeout = default_timeout

    def execute(
        self,
        accounts: Sequence[Account],
        operation: AccountOperation,
        sort_key: Optional[Callable[[Any], Any]] = None,
        reverse: bool = False,
        timeout: Optional[float] = None,
        cancel_token: Optional[CancellationToken] = None,
        operation_name: str = "operation",
        correlation_id: Optional[str] = None,
    ) -> MergedResult:
        """
        Invoke ``operation`` once per account and merge the results.

        Args:
            accounts: Target accounts, in the order used for tie-breaks
            operation: Callable taking (account, cancel_token) and returning
                a sequence of items
            sort_key: Key for the merged ordering; None keeps account order
            reverse: Sort descending by ``sort_key``
            timeout: Deadline in seconds (default: engine's default_timeout)
            cancel_token: Caller's cancellation signal
            operation_name: Logical action name for logs
            correlation_id: Correlation id for logs (generated if missing)

        Returns:
            MergedResult with status, merged items and per-account failures
        """
        if not accounts:
            logger.info(f"{operation_name}: no eligible accounts to query")
            return MergedResult.no_targets("No eligible accounts")

        correlation_id = correlation_id or uuid.uuid4().hex[:12]
        timeout = self.default_timeout if timeout is None else timeout
        # Child token: the engine cancels it on deadline without touching the caller's
        call_token = CancellationToken(parent=cancel_token)

        logger.debug(f"{operation_name}: fanning out to {len(accounts)} account(s), timeout={timeout}s")

        executor = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(accounts)),
            thread_name_prefix='calendar-mcp-fanout'
        )
        futures: List[Future] = []
        try:
            for account in accounts:
                futures.append(executor.submit(
                    self._run_one, account, operation, call_token, operation_name, correlation_id
                ))
            self._wait_for_settle(futures, call_token, timeout)
        finally:
            # Stragglers observe the token at their next request boundary
            call_token.cancel()
            executor.shutdown(wait=False, cancel_futures=True)

        cancelled = cancel_token is not None and cancel_token.is_cancelled
        partials = [
            self._collect(account, future, cancelled, timeout)
            for account, future in zip(accounts, futures)
        ]

        result = MergedResult(
            status=FanOutStatus.CANCELLED if cancelled else FanOutStatus.OK,
            items=self._merge(partials, sort_key, reverse),
            failures=[p.failure for p in partials if p.failure is not None],
            accounts_queried=[account.id for account in accounts],
        )
        logger.info(
            f"{operation_name}: {len(result.items)} item(s) from {len(accounts)} account(s), "
            f"{len(result.failures)} failure(s), status={result.status.value}"
        )
        return result

    @staticmethod
    def _wait_for_settle(futures: List[Future], token: CancellationToken, timeout: float) -> None:
        deadline = time.monotonic() + timeout
        pending = set(futures)
        while pending:
            if token.is_cancelled:
                return
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            _, pending = wait(
                pending,
                timeout=min(remaining, _POLL_INTERVAL_SECONDS),
                return_when=FIRST_COMPLETED
            )

    @staticmethod
    def _run_one(
        account: Account,
        operation: AccountOperation,
        token: CancellationToken,
        operation_name: str,
        correlation_id: str,
    ) -> PartialResult:
        # contextvars do not flow into pool threads, so set them here
        with with_account_context(account_id=account.id, correlation_id=correlation_id, operation=operation_name):
            try:
                token.raise_if_cancelled()
                items = operation(account, token)
                return PartialResult.success(account.id, items or [])
            except Exception as e:
                error_code = categorize_error(e)
                expected = error_code in _EXPECTED_FAILURE_CODES
                log_error_with_context(
                    e,
                    error_code,
                    f"{operation_name} for account '{account.id}'",
                    context={'account_id': account.id, 'provider': account.provider},
                    level=logging.WARNING if expected else logging.ERROR,
                    include_traceback=not isinstance(e, CalendarMcpError),
                )
                return PartialResult.failed(account.id, str(e), error_code)

    @staticmethod
    def _collect(account: Account, future: Future, cancelled: bool, timeout: float) -> PartialResult:
        if future.done() and not future.cancelled():
            return future.result()
        if cancelled:
            return PartialResult.failed(account.id, "Operation cancelled", ErrorCode.CANCELLED)
        logger.warning(f"Account '{account.id}' did not respond within {timeout}s")
        return PartialResult.failed(
            account.id,
            f"Timed out after {timeout}s",
            ErrorCode.BACKEND_TIMEOUT
        )

    @staticmethod
    def _merge(
        partials: List[PartialResult],
        sort_key: Optional[Callable[[Any], Any]],
        reverse: bool,
    ) -> List[Any]:
        # partials are in account order and items in backend order, so this
        # list already holds the tie-break order; sorted() is stable
        merged = [item for partial in partials if partial.ok for item in partial.items]
        if sort_key is None:
            return merged
        return sorted(merged, key=sort_key, reverse=reverse)
