"""
Calendar service: the entry points the invocation layer calls.

One method per logical action. Reads resolve their target accounts (one
explicit account, or every enabled account), fan out through the
FanOutEngine and return a ReadResult carrying both the merged items and the
per-account failures. Writes run against one account, chosen explicitly or by
the RoutingPolicy, and return a WriteOutcome.

Reads and writes never raise for per-account problems; every failure is
reported in the returned structure.

Usage:
    >>> service = CalendarService.from_config(load_config())
    >>> result = service.get_emails(count=10)
    >>> result.status, [f.account_id for f in result.failures]
    >>> outcome = service.send_email(to='x@corp.com', subject='Hi', body='...')
    >>> outcome.account_used
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from calendar_mcp.config_schema import CalendarMcpConfig
from calendar_mcp.dates import ensure_utc
from calendar_mcp.errors import (
    CalendarMcpError,
    ErrorCode,
    InvalidArgumentError,
    OperationCancelledError,
    UnknownAccountError,
    categorize_error,
    log_error_with_context,
)
from calendar_mcp.fanout import (
    AccountFailure,
    CancellationToken,
    FanOutEngine,
    FanOutStatus,
    MergedResult,
)
from calendar_mcp.logging_context import with_account_context
from calendar_mcp.models import Account, EventUpdate
from calendar_mcp.registry import AccountRegistry
from calendar_mcp.resolver import ProviderResolver
from calendar_mcp.routing import RoutingPolicy, routing_key_for_recipient

logger = logging.getLogger(__name__)


def _to_dict(item: Any) -> Dict[str, Any]:
    return item.to_dict()


@dataclass
class ReadResult:
    """
    Outcome of a read entry point.

    ``status`` is OK, NO_TARGETS (zero accounts were queried) or CANCELLED.
    An OK status with failures is a partial success.
    """
    status: FanOutStatus
    items: List[Any] = field(default_factory=list)
    failures: List[AccountFailure] = field(default_factory=list)
    accounts_queried: List[str] = field(default_factory=list)
    reason: Optional[str] = None
    items_key: str = 'items'
    serializer: Callable[[Any], Dict[str, Any]] = field(default=_to_dict, repr=False, compare=False)

    @classmethod
    def from_merged(cls, merged: MergedResult, items_key: str,
                    serializer: Callable[[Any], Dict[str, Any]] = _to_dict) -> 'ReadResult':
        return cls(
            status=merged.status,
            items=list(merged.items),
            failures=list(merged.failures),
            accounts_queried=list(merged.accounts_queried),
            reason=merged.reason,
            items_key=items_key,
            serializer=serializer,
        )

    @property
    def has_targets(self) -> bool:
        return self.status != FanOutStatus.NO_TARGETS

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            'status': self.status.value,
            self.items_key: [self.serializer(item) for item in self.items],
            'count': len(self.items),
            'accountsQueried': list(self.accounts_queried),
            'failures': [failure.to_dict() for failure in self.failures],
        }
        if self.reason:
            result['reason'] = self.reason
        return result


@dataclass
class WriteOutcome:
    """Outcome of a write entry point (send mail, create/update/delete event)."""
    success: bool
    identifier: Optional[str] = None
    account_used: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    calendar_used: Optional[str] = None
    identifier_key: str = 'id'

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'success': self.success}
        if self.identifier is not None:
            result[self.identifier_key] = self.identifier
        if self.account_used is not None:
            result['accountUsed'] = self.account_used
        if self.calendar_used is not None:
            result['calendarUsed'] = self.calendar_used
        if not self.success:
            result['error'] = self.error
            result['errorCode'] = self.error_code
        return result


class CalendarService:
    """
    Multi-account mail and calendar operations.

    Args:
        registry: Configured accounts
        resolver: Backend lookup per provider kind
        engine: Fan-out engine (default: 8 workers, 30s deadline)
    """

    def __init__(
        self,
        registry: AccountRegistry,
        resolver: ProviderResolver,
        engine: Optional[FanOutEngine] = None,
    ):
        # Registry and routing policy are swapped together as one tuple
        self._state: Tuple[AccountRegistry, RoutingPolicy] = (registry, RoutingPolicy(registry))
        self.resolver = resolver
        self.engine = engine or FanOutEngine()

    @classmethod
    def from_config(
        cls,
        config: CalendarMcpConfig,
        token_dir: Optional[Path] = None,
        resolver: Optional[ProviderResolver] = None,
    ) -> 'CalendarService':
        """Build a service with the default backends from a validated configuration."""
        registry = AccountRegistry.from_config(config)
        engine = FanOutEngine(max_workers=config.max_workers, default_timeout=config.request_timeout_seconds)
        return cls(registry, resolver or ProviderResolver.default(token_dir), engine)

    @property
    def registry(self) -> AccountRegistry:
        return self._state[0]

    def replace_registry(self, registry: AccountRegistry) -> None:
        """Swap in a newly loaded registry. Calls already running keep the old one."""
        self._state = (registry, RoutingPolicy(registry))
        logger.info(f"Account registry replaced ({len(registry)} account(s))")

    # Helpers

    @staticmethod
    def _targets(registry: AccountRegistry, account_id: Optional[str]) -> Tuple[List[Account], Optional[str]]:
        """Accounts a read goes to, with the reason when there are none."""
        if account_id:
            account = registry.get_by_id(account_id)
            if account is None:
                return [], str(UnknownAccountError(account_id))
            # Explicit ids reach disabled accounts too
            return [account], None

        enabled = registry.get_enabled()
        if not enabled:
            return [], "No enabled accounts configured"
        return enabled, None

    def _read(
        self,
        name: str,
        account_id: Optional[str],
        call: Callable[[Any, Account, CancellationToken], Optional[Sequence[Any]]],
        items_key: str,
        sort_key: Optional[Callable[[Any], Any]] = None,
        reverse: bool = False,
        serializer: Callable[[Any], Dict[str, Any]] = _to_dict,
        cancel_token: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> ReadResult:
        registry = self.registry
        correlation_id = uuid.uuid4().hex[:12]

        with with_account_context(correlation_id=correlation_id, operation=name):
            accounts, reason = self._targets(registry, account_id)
            if not accounts:
                logger.info(f"{name}: no eligible targets ({reason})")
                return ReadResult.from_merged(MergedResult.no_targets(reason), items_key, serializer)

            def operation(account: Account, token: CancellationToken):
                # Unknown provider kinds fail here, per account
                backend = self.resolver.resolve(account.provider)
                return call(backend, account, token)

            merged = self.engine.execute(
                accounts,
                operation,
                sort_key=sort_key,
                reverse=reverse,
                timeout=timeout,
                cancel_token=cancel_token,
                operation_name=name,
                correlation_id=correlation_id,
            )
        return ReadResult.from_merged(merged, items_key, serializer)

    def _write(
        self,
        name: str,
        account_id: Optional[str],
        routing_key: Optional[str],
        call: Callable[[Any, Account, Optional[CancellationToken]], Optional[str]],
        identifier_key: str = 'id',
        cancel_token: Optional[CancellationToken] = None,
        require_account: bool = False,
    ) -> WriteOutcome:
        registry, routing = self._state
        correlation_id = uuid.uuid4().hex[:12]
        account: Optional[Account] = None

        with with_account_context(correlation_id=correlation_id, operation=name):
            try:
                if cancel_token is not None and cancel_token.is_cancelled:
                    raise OperationCancelledError("Operation cancelled")
                if account_id:
                    account = registry.get_by_id(account_id)
                    if account is None:
                        raise UnknownAccountError(account_id)
                elif require_account:
                    raise InvalidArgumentError("accountId is required")
                else:
                    account = routing.select(routing_key)

                with with_account_context(account_id=account.id):
                    backend = self.resolver.resolve(account.provider)
                    identifier = call(backend, account, cancel_token)
                    logger.info(f"{name} succeeded for account '{account.id}'")
                return WriteOutcome(
                    success=True,
                    identifier=identifier,
                    account_used=account.id,
                    identifier_key=identifier_key,
                )
            except Exception as e:
                error_code = categorize_error(e)
                log_error_with_context(
                    e,
                    error_code,
                    name,
                    context={
                        'account_id': account.id if account else account_id,
                        'routing_key': routing_key,
                    },
                    level=logging.WARNING if isinstance(e, CalendarMcpError) else logging.ERROR,
                    include_traceback=not isinstance(e, CalendarMcpError),
                )
                return WriteOutcome(
                    success=False,
                    account_used=account.id if account else None,
                    error=str(e),
                    error_code=error_code,
                    identifier_key=identifier_key,
                )

    @staticmethod
    def _invalid(message: str, identifier_key: str = 'id') -> WriteOutcome:
        logger.warning(f"Rejected request: {message}")
        return WriteOutcome(
            success=False,
            error=message,
            error_code=ErrorCode.INVALID_ARGUMENT,
            identifier_key=identifier_key,
        )

    # Accounts

    def list_accounts(self) -> ReadResult:
        """All configured accounts (enabled or not) in registry order."""
        accounts = self.registry.get_all()
        return ReadResult(
            status=FanOutStatus.OK,
            items=accounts,
            accounts_queried=[a.id for a in accounts],
            items_key='accounts',
        )

    def test_account(self, account_id: str) -> Dict[str, Any]:
        """
        Check whether an account has a usable cached credential.

        Returns:
            Dictionary with accountId, provider, authenticated and, when not
            authenticated, error/errorCode
        """
        account = self.registry.get_by_id(account_id)
        if account is None:
            error = UnknownAccountError(account_id)
            return {
                'accountId': account_id,
                'authenticated': False,
                'error': str(error),
                'errorCode': error.error_code,
            }

        with with_account_context(account_id=account.id, operation='test_account'):
            try:
                backend = self.resolver.resolve(account.provider)
                backend.require_credential(
                    account, tuple(backend.MAIL_READ_SCOPES) + tuple(backend.CALENDAR_SCOPES)
                )
            except CalendarMcpError as e:
                return {
                    'accountId': account.id,
                    'provider': account.provider,
                    'authenticated': False,
                    'error': str(e),
                    'errorCode': e.error_code,
                }
        return {'accountId': account.id, 'provider': account.provider, 'authenticated': True}

    # Mail

    def get_emails(
        self,
        account_id: Optional[str] = None,
        count: int = 20,
        unread_only: bool = False,
        cancel_token: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> ReadResult:
        """Recent emails from one account or all enabled accounts, newest first."""
        return self._read(
            'get_emails',
            account_id,
            lambda backend, account, token: backend.get_emails(
                account, count=count, unread_only=unread_only, cancel_token=token
            ),
            items_key='emails',
            sort_key=lambda message: ensure_utc(message.received_date_time),
            reverse=True,
            serializer=lambda message: message.to_summary_dict(),
            cancel_token=cancel_token,
            timeout=timeout,
        )

    def search_emails(
        self,
        query: str,
        account_id: Optional[str] = None,
        count: int = 20,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        cancel_token: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> ReadResult:
        """Emails matching ``query`` within the optional date range, newest first."""
        return self._read(
            'search_emails',
            account_id,
            lambda backend, account, token: backend.search_emails(
                account, query, count=count, from_date=from_date, to_date=to_date, cancel_token=token
            ),
            items_key='emails',
            sort_key=lambda message: ensure_utc(message.received_date_time),
            reverse=True,
            serializer=lambda message: message.to_summary_dict(),
            cancel_token=cancel_token,
            timeout=timeout,
        )

    def get_email_detail(
        self,
        account_id: Optional[str],
        email_id: str,
        cancel_token: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> ReadResult:
        """
        Full content of one email. An explicit account id is required.

        A message that does not exist yields an OK result with no items and
        a reason.
        """
        if not account_id:
            return ReadResult.from_merged(MergedResult.no_targets("accountId is required"), 'email')
        if not email_id:
            return ReadResult.from_merged(MergedResult.no_targets("emailId is required"), 'email')

        def fetch(backend, account, token):
            message = backend.get_email_detail(account, email_id, cancel_token=token)
            return [message] if message is not None else []

        result = self._read(
            'get_email_detail', account_id, fetch, items_key='email',
            cancel_token=cancel_token, timeout=timeout,
        )
        if result.status == FanOutStatus.OK and not result.items and not result.failures:
            result.reason = f"Email '{email_id}' not found in account '{account_id}'"
        return result

    def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        body_format: str = "html",
        cc: Optional[List[str]] = None,
        account_id: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> WriteOutcome:
        """
        Send an email. Without ``account_id`` the account is chosen by the
        recipient's domain.
        """
        if not to or not to.strip():
            return self._invalid("Recipient address is required", 'messageId')
        if body_format.lower() not in ('html', 'text'):
            return self._invalid(f"bodyFormat must be 'html' or 'text', got {body_format!r}", 'messageId')

        return self._write(
            'send_email',
            account_id,
            routing_key_for_recipient(to),
            lambda backend, account, token: backend.send_email(
                account, to.strip(), subject, body, body_format=body_format.lower(), cc=cc, cancel_token=token
            ),
            identifier_key='messageId',
            cancel_token=cancel_token,
        )

    # Calendar

    def list_calendars(
        self,
        account_id: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> ReadResult:
        """Calendars from one account or all enabled accounts, in registry order."""
        return self._read(
            'list_calendars',
            account_id,
            lambda backend, account, token: backend.list_calendars(account, cancel_token=token),
            items_key='calendars',
            cancel_token=cancel_token,
            timeout=timeout,
        )

    def get_calendar_events(
        self,
        account_id: Optional[str] = None,
        calendar_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        count: int = 50,
        cancel_token: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> ReadResult:
        """Events (default: today through +30 days) sorted by start time."""
        return self._read(
            'get_calendar_events',
            account_id,
            lambda backend, account, token: backend.get_calendar_events(
                account, calendar_id=calendar_id, start=start, end=end, count=count, cancel_token=token
            ),
            items_key='events',
            sort_key=lambda event: ensure_utc(event.start),
            cancel_token=cancel_token,
            timeout=timeout,
        )

    def create_event(
        self,
        subject: str,
        start: datetime,
        end: datetime,
        account_id: Optional[str] = None,
        calendar_id: Optional[str] = None,
        location: Optional[str] = None,
        attendees: Optional[List[str]] = None,
        body: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> WriteOutcome:
        """
        Create an event. Without ``account_id`` the account is chosen by the
        first attendee's domain (first enabled account when there are none).
        """
        if not subject:
            return self._invalid("Event subject is required", 'eventId')
        if ensure_utc(end) <= ensure_utc(start):
            return self._invalid("Event end must be after its start", 'eventId')

        routing_key = routing_key_for_recipient(attendees[0]) if attendees else None
        outcome = self._write(
            'create_event',
            account_id,
            routing_key,
            lambda backend, account, token: backend.create_event(
                account, calendar_id, subject, start, end,
                location=location, attendees=attendees, body=body, cancel_token=token
            ),
            identifier_key='eventId',
            cancel_token=cancel_token,
        )
        if outcome.success:
            outcome.calendar_used = calendar_id or "default"
        return outcome

    def update_event(
        self,
        account_id: Optional[str],
        calendar_id: Optional[str],
        event_id: str,
        update: EventUpdate,
        cancel_token: Optional[CancellationToken] = None,
    ) -> WriteOutcome:
        """Apply the non-None fields of ``update``. Requires an explicit account."""
        if not event_id:
            return self._invalid("eventId is required", 'eventId')
        if update.is_empty():
            return self._invalid("No fields to update", 'eventId')
        if update.start is not None and update.end is not None and ensure_utc(update.end) <= ensure_utc(update.start):
            return self._invalid("Event end must be after its start", 'eventId')

        def apply(backend, account, token):
            backend.update_event(account, calendar_id, event_id, update, cancel_token=token)
            return event_id

        return self._write(
            'update_event', account_id, None, apply,
            identifier_key='eventId', cancel_token=cancel_token, require_account=True,
        )

    def delete_event(
        self,
        account_id: Optional[str],
        calendar_id: Optional[str],
        event_id: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> WriteOutcome:
        """Delete an event. Requires an explicit account."""
        if not event_id:
            return self._invalid("eventId is required", 'eventId')

        def remove(backend, account, token):
            backend.delete_event(account, calendar_id, event_id, cancel_token=token)
            return event_id

        return self._write(
            'delete_event', account_id, None, remove,
            identifier_key='eventId', cancel_token=cancel_token, require_account=True,
        )
