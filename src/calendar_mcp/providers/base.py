"""
Provider backend interface.

Every provider kind implements the same nine operations for one account.
Each operation first obtains a bearer credential from the backend's
credential provider:

    - No credential: the operation raises NoCredentialError. The fan-out
      engine turns that into an empty contribution plus a NO_CREDENTIAL
      failure for reads, and write entry points report it as a failed
      outcome, so the action is never silently skipped.
    - Cancellation is checked before every HTTP request.

HTTP calls go through ``_request``, which applies the timeout and wraps
transport and status errors in BackendError.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import requests

from calendar_mcp.auth.interfaces import CredentialProvider
from calendar_mcp.dates import within_range
from calendar_mcp.errors import BackendError, ErrorCode, NoCredentialError
from calendar_mcp.fanout import CancellationToken
from calendar_mcp.models import (
    Account,
    CalendarEvent,
    CalendarInfo,
    EmailMessage,
    EventUpdate,
)

logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT_SECONDS = 20


def apply_date_bound(
    messages: Iterable[EmailMessage],
    count: int,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
) -> List[EmailMessage]:
    """
    Filter a recency-ordered superset to a date range, keeping at most ``count``.

    Used when a backend cannot combine free-text search with a date filter in
    one remote call. ``messages`` may be a lazy iterator over result pages;
    iteration stops as soon as ``count`` matches are collected.

    Args:
        messages: Messages ordered newest first
        count: Maximum number of messages to return
        from_date: Inclusive lower bound, or None
        to_date: Inclusive upper bound, or None

    Returns:
        Up to ``count`` messages inside the range, in input order
    """
    if count <= 0:
        return []

    selected = []
    for message in messages:
        if within_range(message.received_date_time, from_date, to_date):
            selected.append(message)
            if len(selected) >= count:
                break
    return selected


class ProviderBackend(ABC):
    """
    Base class for provider backends.

    Args:
        credentials: Source of bearer tokens for this provider's accounts
        session_factory: Builds the HTTP session for one call (tests inject mocks)
        http_timeout: Timeout in seconds for each HTTP request
    """

    # Provider label used in logs and errors
    name = "provider"

    # Scopes requested per capability
    MAIL_READ_SCOPES: Sequence[str] = ()
    MAIL_SEND_SCOPES: Sequence[str] = ()
    CALENDAR_SCOPES: Sequence[str] = ()

    def __init__(
        self,
        credentials: CredentialProvider,
        session_factory: Optional[Callable[[], requests.Session]] = None,
        http_timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
    ):
        self.credentials = credentials
        self.session_factory = session_factory or requests.Session
        self.http_timeout = http_timeout

    def require_credential(self, account: Account, scopes: Sequence[str]) -> str:
        """
        Get a bearer token for the account.

        Raises:
            NoCredentialError: If the credential provider has no token
        """
        token = self.credentials.get_credential(account.provider_config, scopes, account.id)
        if not token:
            logger.warning(f"No credential for account '{account.id}' ({self.name}); re-enrollment required")
            raise NoCredentialError(account.id)
        return token

    def _request(
        self,
        session: requests.Session,
        method: str,
        url: str,
        token: str,
        cancel_token: Optional[CancellationToken] = None,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Perform one authenticated HTTP request and return the decoded JSON body.

        Returns:
            Parsed JSON object, or None for empty responses (e.g. 202/204)

        Raises:
            OperationCancelledError: If the fan-out was cancelled
            BackendError: On transport failure, non-2xx status or invalid JSON
        """
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        request_headers = {'Authorization': f'Bearer {token}', 'Accept': 'application/json'}
        if headers:
            request_headers.update(headers)

        logger.debug(f"{self.name}: {method} {url}")
        try:
            response = session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=request_headers,
                timeout=self.http_timeout,
            )
        except requests.exceptions.Timeout as e:
            raise BackendError(
                f"{self.name} request timed out: {method} {url}",
                error_code=ErrorCode.BACKEND_TIMEOUT
            ) from e
        except requests.exceptions.RequestException as e:
            raise BackendError(f"{self.name} request failed: {e}") from e

        if response.status_code >= 400:
            raise BackendError(
                f"{self.name} returned HTTP {response.status_code} for {method} {url}: "
                f"{_error_detail(response)}",
                status_code=response.status_code
            )

        if response.status_code == 204 or not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise BackendError(
                f"{self.name} returned invalid JSON for {method} {url}",
                error_code=ErrorCode.BACKEND_INVALID_RESPONSE
            ) from e

    @abstractmethod
    def get_emails(
        self,
        account: Account,
        count: int = 20,
        unread_only: bool = False,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[EmailMessage]:
        """Most recent messages in the inbox, newest first."""

    @abstractmethod
    def search_emails(
        self,
        account: Account,
        query: str,
        count: int = 20,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[EmailMessage]:
        """Messages matching ``query``, bounded to the date range, newest first."""

    @abstractmethod
    def get_email_detail(
        self,
        account: Account,
        email_id: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Optional[EmailMessage]:
        """Full message including body and attachments, or None if not found."""

    @abstractmethod
    def send_email(
        self,
        account: Account,
        to: str,
        subject: str,
        body: str,
        body_format: str = "html",
        cc: Optional[List[str]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        """Send a message and return its identifier."""

    @abstractmethod
    def list_calendars(
        self,
        account: Account,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[CalendarInfo]:
        """Calendars the account can see."""

    @abstractmethod
    def get_calendar_events(
        self,
        account: Account,
        calendar_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        count: int = 50,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[CalendarEvent]:
        """Events in the window (default today through +30 days), by start."""

    @abstractmethod
    def create_event(
        self,
        account: Account,
        calendar_id: Optional[str],
        subject: str,
        start: datetime,
        end: datetime,
        location: Optional[str] = None,
        attendees: Optional[List[str]] = None,
        body: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        """Create an event and return its identifier."""

    @abstractmethod
    def update_event(
        self,
        account: Account,
        calendar_id: Optional[str],
        event_id: str,
        update: EventUpdate,
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        """Apply the non-None fields of ``update`` to the event."""

    @abstractmethod
    def delete_event(
        self,
        account: Account,
        calendar_id: Optional[str],
        event_id: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        """Delete the event."""


def _error_detail(response: requests.Response) -> str:
    """Best-effort error message from a provider error body."""
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    error = payload.get('error') if isinstance(payload, dict) else None
    if isinstance(error, dict):
        return str(error.get('message') or error.get('code') or error)
    if error:
        return str(error)
    return str(payload)[:200]
