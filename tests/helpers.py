"""
Test helpers for calendar-mcp tests.

This module provides:
- A fake credential provider (fixed token per account, None = not enrolled)
- A fake provider backend with per-account data, delays and failures
- Builders for messages and events
- Mock HTTP sessions for backend tests
"""
import json
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from unittest.mock import MagicMock

from calendar_mcp.models import CalendarEvent, CalendarInfo, EmailMessage
from calendar_mcp.providers.base import ProviderBackend, apply_date_bound

BASE_TIME = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


# ============================================================================
# Data helpers
# ============================================================================

def make_email(email_id: str, account_id: str, minutes: int = 0, subject: str = "", is_read: bool = False):
    """Build a message received ``minutes`` after BASE_TIME."""
    return EmailMessage(
        id=email_id,
        account_id=account_id,
        received_date_time=BASE_TIME + timedelta(minutes=minutes),
        subject=subject or f"Subject {email_id}",
        from_address=f"sender@{account_id}.test",
        is_read=is_read,
    )


def make_event(event_id: str, account_id: str, hours: int = 0, calendar_id: str = 'primary'):
    """Build a one-hour event starting ``hours`` after BASE_TIME."""
    start = BASE_TIME + timedelta(hours=hours)
    return CalendarEvent(
        id=event_id,
        account_id=account_id,
        calendar_id=calendar_id,
        start=start,
        end=start + timedelta(hours=1),
        subject=f"Event {event_id}",
    )


# ============================================================================
# Fake credentials and backend
# ============================================================================

class FakeCredentials:
    """Credential provider returning a fixed token per account id (None = not enrolled)."""

    def __init__(self, tokens: Optional[Dict[str, str]] = None):
        self.tokens = dict(tokens or {})
        self.calls = []

    def get_credential(self, provider_config, scopes, account_id):
        self.calls.append((account_id, tuple(scopes)))
        return self.tokens.get(account_id)


class FakeBackend(ProviderBackend):
    """
    In-memory backend.

    Attributes:
        emails / events / calendars: Per-account data returned by reads
        delays: Seconds an account's call takes (checks cancellation while waiting)
        errors: Exception raised for an account
        sent / created / updated / deleted: Recorded writes
    """

    name = "fake"

    MAIL_READ_SCOPES = ('mail.read',)
    MAIL_SEND_SCOPES = ('mail.send',)
    CALENDAR_SCOPES = ('calendar',)

    def __init__(self, credentials: FakeCredentials):
        super().__init__(credentials)
        self.emails: Dict[str, List[EmailMessage]] = {}
        self.events: Dict[str, List[CalendarEvent]] = {}
        self.calendars: Dict[str, List[CalendarInfo]] = {}
        self.delays: Dict[str, float] = {}
        self.errors: Dict[str, Exception] = {}
        self.sent = []
        self.created = []
        self.updated = []
        self.deleted = []
        self.started = set()
        self._lock = threading.Lock()

    def _enter(self, account, scopes, cancel_token):
        self.require_credential(account, scopes)
        with self._lock:
            self.started.add(account.id)
        delay = self.delays.get(account.id, 0)
        deadline = time.monotonic() + delay
        while time.monotonic() < deadline:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            time.sleep(0.01)
        if account.id in self.errors:
            raise self.errors[account.id]

    def get_emails(self, account, count=20, unread_only=False, cancel_token=None):
        self._enter(account, self.MAIL_READ_SCOPES, cancel_token)
        messages = [m for m in self.emails.get(account.id, []) if not (unread_only and m.is_read)]
        return messages[:count]

    def search_emails(self, account, query, count=20, from_date=None, to_date=None, cancel_token=None):
        self._enter(account, self.MAIL_READ_SCOPES, cancel_token)
        matches = (m for m in self.emails.get(account.id, []) if query.lower() in m.subject.lower())
        return apply_date_bound(matches, count, from_date, to_date)

    def get_email_detail(self, account, email_id, cancel_token=None):
        self._enter(account, self.MAIL_READ_SCOPES, cancel_token)
        return next((m for m in self.emails.get(account.id, []) if m.id == email_id), None)

    def send_email(self, account, to, subject, body, body_format="html", cc=None, cancel_token=None):
        self._enter(account, self.MAIL_SEND_SCOPES, cancel_token)
        self.sent.append((account.id, to, subject, body_format, cc))
        return f"msg-{account.id}-{len(self.sent)}"

    def list_calendars(self, account, cancel_token=None):
        self._enter(account, self.CALENDAR_SCOPES, cancel_token)
        return list(self.calendars.get(account.id, []))

    def get_calendar_events(self, account, calendar_id=None, start=None, end=None, count=50, cancel_token=None):
        self._enter(account, self.CALENDAR_SCOPES, cancel_token)
        return list(self.events.get(account.id, []))[:count]

    def create_event(self, account, calendar_id, subject, start, end, location=None,
                     attendees=None, body=None, cancel_token=None):
        self._enter(account, self.CALENDAR_SCOPES, cancel_token)
        self.created.append((account.id, calendar_id, subject, attendees))
        return f"evt-{account.id}-{len(self.created)}"

    def update_event(self, account, calendar_id, event_id, update, cancel_token=None):
        self._enter(account, self.CALENDAR_SCOPES, cancel_token)
        self.updated.append((account.id, calendar_id, event_id, update))

    def delete_event(self, account, calendar_id, event_id, cancel_token=None):
        self._enter(account, self.CALENDAR_SCOPES, cancel_token)
        self.deleted.append((account.id, calendar_id, event_id))



# ============================================================================
# HTTP mocks
# ============================================================================

def make_response(status_code: int = 200, payload=None):
    """Mock requests.Response with a JSON payload (None = empty body)."""
    response = MagicMock()
    response.status_code = status_code
    if payload is None:
        response.content = b''
        response.json.side_effect = ValueError("No JSON")
        response.text = ''
    else:
        response.content = json.dumps(payload).encode('utf-8')
        response.json.return_value = payload
        response.text = json.dumps(payload)
    return response


def mock_session(*responses):
    """Session factory whose session returns ``responses`` in order.

    Returns:
        Tuple of (factory, session); inspect ``session.request.call_args_list``.
    """
    session = MagicMock()
    session.__enter__.return_value = session
    session.request.side_effect = list(responses)
    return (lambda: session), session
