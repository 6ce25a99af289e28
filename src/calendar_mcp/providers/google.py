"""
Google Workspace backend (Gmail and Google Calendar REST APIs).

Gmail's list endpoint returns message ids only, so each listed message is
fetched with ``format=metadata``. Search passes the date range as ``after:``
and ``before:`` operators (day granularity) and then applies the exact bound
client-side, the same way the Graph fallback does.
"""
import base64
import logging
from datetime import datetime, timedelta, timezone
from email.mime.text import MIMEText
from email.utils import getaddresses, parseaddr
from typing import Any, Dict, Iterator, List, Optional

import requests

from calendar_mcp.dates import (
    default_event_window,
    ensure_utc,
    format_gmail_date,
    parse_datetime,
)
from calendar_mcp.errors import BackendError
from calendar_mcp.fanout import CancellationToken
from calendar_mcp.models import (
    Account,
    CalendarEvent,
    CalendarInfo,
    EmailAttachment,
    EmailMessage,
    EventUpdate,
)
from calendar_mcp.auth.google_credentials import GoogleCredentialProvider
from calendar_mcp.auth.interfaces import CredentialProvider
from calendar_mcp.providers.base import ProviderBackend, apply_date_bound

logger = logging.getLogger(__name__)

GMAIL_BASE_URL = 'https://gmail.googleapis.com/gmail/v1/users/me'
CALENDAR_BASE_URL = 'https://www.googleapis.com/calendar/v3'

METADATA_HEADERS = ['From', 'To', 'Cc', 'Subject', 'Date']

SEARCH_PAGE_SIZE = 50
MAX_SEARCH_PAGES = 10

_EDIT_ROLES = ('owner', 'writer')

_RESPONSE_STATUS = {
    'accepted': 'accepted',
    'tentative': 'tentative',
    'declined': 'declined',
    'needsAction': 'notResponded',
}


def _headers(payload: Dict[str, Any]) -> Dict[str, str]:
    return {h.get('name', '').lower(): h.get('value', '') for h in payload.get('headers') or []}


def _decode_body(data: Optional[str]) -> str:
    if not data:
        return ""
    padded = data + '=' * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode('ascii')).decode('utf-8', errors='replace')


def _walk_parts(payload: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
    yield payload
    for part in payload.get('parts') or []:
        yield from _walk_parts(part)


def _google_time(value: datetime) -> Dict[str, str]:
    return {'dateTime': ensure_utc(value).isoformat(), 'timeZone': 'UTC'}


def _parse_google_time(value: Optional[Dict[str, Any]]) -> datetime:
    """Parse an event start/end: ``dateTime`` for timed events, ``date`` for all-day."""
    if not value:
        raise BackendError("Google event is missing a start or end time")
    raw = value.get('dateTime') or value.get('date')
    if not raw:
        raise BackendError("Google event is missing a start or end time")
    return ensure_utc(parse_datetime(raw))


class GoogleBackend(ProviderBackend):
    """Provider backend for Google Workspace and Gmail accounts."""

    name = "google"

    MAIL_READ_SCOPES = ('https://www.googleapis.com/auth/gmail.readonly',)
    MAIL_SEND_SCOPES = ('https://www.googleapis.com/auth/gmail.send',)
    CALENDAR_SCOPES = ('https://www.googleapis.com/auth/calendar',)

    def __init__(self, credentials: Optional[CredentialProvider] = None, **kwargs):
        super().__init__(credentials or GoogleCredentialProvider(), **kwargs)

    # Mail

    def _message_from_gmail(self, account: Account, data: Dict[str, Any], detail: bool = False) -> EmailMessage:
        payload = data.get('payload') or {}
        headers = _headers(payload)
        from_name, from_address = parseaddr(headers.get('from', ''))
        labels = data.get('labelIds') or []

        if data.get('internalDate'):
            received = datetime.fromtimestamp(int(data['internalDate']) / 1000, tz=timezone.utc)
        else:
            received = ensure_utc(parse_datetime(headers.get('date', '')))

        attachments = [
            EmailAttachment(
                name=part['filename'],
                size=(part.get('body') or {}).get('size', 0),
                content_type=part.get('mimeType') or "application/octet-stream",
            )
            for part in _walk_parts(payload)
            if part.get('filename')
        ]

        body = data.get('snippet') or ""
        body_format = 'text'
        if detail:
            parts = [p for p in _walk_parts(payload) if not p.get('filename')]
            html = next((p for p in parts if p.get('mimeType') == 'text/html'), None)
            plain = next((p for p in parts if p.get('mimeType') == 'text/plain'), None)
            chosen = html or plain
            if chosen is not None:
                body = _decode_body((chosen.get('body') or {}).get('data'))
                body_format = 'html' if chosen is html else 'text'

        return EmailMessage(
            id=data['id'],
            account_id=account.id,
            received_date_time=received,
            subject=headers.get('subject', ''),
            from_address=from_address,
            from_name=from_name,
            to=[address for _, address in getaddresses([headers.get('to', '')]) if address],
            cc=[address for _, address in getaddresses([headers.get('cc', '')]) if address],
            body=body,
            body_format=body_format,
            is_read='UNREAD' not in labels,
            has_attachments=bool(attachments),
            attachments=attachments if detail else [],
        )

    def _get_message(
        self,
        session: requests.Session,
        token: str,
        message_id: str,
        cancel_token: Optional[CancellationToken],
        full: bool = False,
    ) -> Optional[Dict[str, Any]]:
        params: Dict[str, Any] = {'format': 'full' if full else 'metadata'}
        if not full:
            params['metadataHeaders'] = METADATA_HEADERS
        return self._request(
            session, 'GET', f"{GMAIL_BASE_URL}/messages/{message_id}", token, cancel_token, params=params
        )

    def _iter_messages(
        self,
        account: Account,
        session: requests.Session,
        token: str,
        params: Dict[str, Any],
        cancel_token: Optional[CancellationToken],
        max_pages: int,
    ) -> Iterator[EmailMessage]:
        """Yield messages newest first, fetching list pages and metadata lazily."""
        params = dict(params)
        for _ in range(max_pages):
            page = self._request(
                session, 'GET', f"{GMAIL_BASE_URL}/messages", token, cancel_token, params=params
            ) or {}
            for ref in page.get('messages') or []:
                data = self._get_message(session, token, ref['id'], cancel_token)
                if data:
                    yield self._message_from_gmail(account, data)
            next_token = page.get('nextPageToken')
            if not next_token:
                return
            params['pageToken'] = next_token

    def get_emails(self, account, count=20, unread_only=False, cancel_token=None):
        token = self.require_credential(account, self.MAIL_READ_SCOPES)
        params: Dict[str, Any] = {'maxResults': count, 'labelIds': ['INBOX']}
        if unread_only:
            params['q'] = 'is:unread'
        with self.session_factory() as session:
            messages = list(self._iter_messages(account, session, token, params, cancel_token, max_pages=1))
        return messages[:count]

    def search_emails(self, account, query, count=20, from_date=None, to_date=None, cancel_token=None):
        token = self.require_credential(account, self.MAIL_READ_SCOPES)
        terms = [query.strip()] if query and query.strip() else []
        if from_date is not None:
            terms.append(f"after:{format_gmail_date(from_date)}")
        if to_date is not None:
            # before: excludes its day; widen by one and trim client-side
            terms.append(f"before:{format_gmail_date(to_date + timedelta(days=1))}")

        params: Dict[str, Any] = {'maxResults': SEARCH_PAGE_SIZE}
        if terms:
            params['q'] = ' '.join(terms)

        with self.session_factory() as session:
            messages = self._iter_messages(account, session, token, params, cancel_token, MAX_SEARCH_PAGES)
            return apply_date_bound(messages, count, from_date, to_date)

    def get_email_detail(self, account, email_id, cancel_token=None):
        token = self.require_credential(account, self.MAIL_READ_SCOPES)
        with self.session_factory() as session:
            try:
                data = self._get_message(session, token, email_id, cancel_token, full=True)
            except BackendError as e:
                if e.status_code == 404:
                    logger.info(f"Message '{email_id}' not found in account '{account.id}'")
                    return None
                raise
        if not data:
            return None
        return self._message_from_gmail(account, data, detail=True)

    def send_email(self, account, to, subject, body, body_format="html", cc=None, cancel_token=None):
        token = self.require_credential(account, self.MAIL_SEND_SCOPES)
        mime = MIMEText(body, 'html' if body_format.lower() == 'html' else 'plain', 'utf-8')
        mime['To'] = to
        mime['Subject'] = subject
        if cc:
            mime['Cc'] = ', '.join(cc)
        raw = base64.urlsafe_b64encode(mime.as_bytes()).decode('ascii')

        with self.session_factory() as session:
            sent = self._request(
                session, 'POST', f"{GMAIL_BASE_URL}/messages/send", token, cancel_token,
                json_body={'raw': raw}
            ) or {}
        message_id = sent.get('id')
        if not message_id:
            raise BackendError("google did not return an id for the sent message")
        logger.info(f"Sent message '{message_id}' from account '{account.id}'")
        return message_id

    # Calendar

    def list_calendars(self, account, cancel_token=None):
        token = self.require_credential(account, self.CALENDAR_SCOPES)
        with self.session_factory() as session:
            payload = self._request(
                session, 'GET', f"{CALENDAR_BASE_URL}/users/me/calendarList", token, cancel_token
            ) or {}
        return [
            CalendarInfo(
                id=item['id'],
                account_id=account.id,
                name=item.get('summaryOverride') or item.get('summary') or "",
                owner=item['id'] if item.get('accessRole') == 'owner' else "",
                can_edit=item.get('accessRole') in _EDIT_ROLES,
                is_default=bool(item.get('primary')),
                color=item.get('backgroundColor'),
            )
            for item in payload.get('items') or []
        ]

    def _event_from_google(self, account: Account, calendar_id: str, data: Dict[str, Any]) -> CalendarEvent:
        attendees = data.get('attendees') or []
        own = next((a for a in attendees if a.get('self')), None)
        if own is not None:
            response_status = _RESPONSE_STATUS.get(own.get('responseStatus'), 'notResponded')
        elif (data.get('organizer') or {}).get('self'):
            response_status = 'accepted'
        else:
            response_status = 'notResponded'

        return CalendarEvent(
            id=data['id'],
            account_id=account.id,
            calendar_id=calendar_id,
            start=_parse_google_time(data.get('start')),
            end=_parse_google_time(data.get('end')),
            subject=data.get('summary') or "",
            location=data.get('location') or "",
            body=data.get('description') or "",
            organizer=(data.get('organizer') or {}).get('email') or "",
            attendees=[a.get('email') for a in attendees if a.get('email')],
            is_all_day='date' in (data.get('start') or {}),
            response_status=response_status,
        )

    def get_calendar_events(self, account, calendar_id=None, start=None, end=None, count=50, cancel_token=None):
        token = self.require_credential(account, self.CALENDAR_SCOPES)
        calendar_id = calendar_id or 'primary'
        start, end = default_event_window(start, end)
        params = {
            'timeMin': ensure_utc(start).isoformat(),
            'timeMax': ensure_utc(end).isoformat(),
            'singleEvents': 'true',
            'orderBy': 'startTime',
            'maxResults': count,
        }
        with self.session_factory() as session:
            payload = self._request(
                session, 'GET', f"{CALENDAR_BASE_URL}/calendars/{calendar_id}/events",
                token, cancel_token, params=params
            ) or {}
        return [
            self._event_from_google(account, calendar_id, item)
            for item in payload.get('items') or []
            if item.get('status') != 'cancelled'
        ][:count]

    def create_event(self, account, calendar_id, subject, start, end, location=None,
                     attendees=None, body=None, cancel_token=None):
        token = self.require_credential(account, self.CALENDAR_SCOPES)
        event: Dict[str, Any] = {
            'summary': subject,
            'start': _google_time(start),
            'end': _google_time(end),
        }
        if location:
            event['location'] = location
        if attendees:
            event['attendees'] = [{'email': address} for address in attendees]
        if body:
            event['description'] = body

        with self.session_factory() as session:
            created = self._request(
                session, 'POST', f"{CALENDAR_BASE_URL}/calendars/{calendar_id or 'primary'}/events",
                token, cancel_token, json_body=event
            ) or {}
        event_id = created.get('id')
        if not event_id:
            raise BackendError("google did not return an id for the created event")
        logger.info(f"Created event '{event_id}' in account '{account.id}'")
        return event_id

    def update_event(self, account, calendar_id, event_id, update: EventUpdate, cancel_token=None):
        token = self.require_credential(account, self.CALENDAR_SCOPES)
        patch: Dict[str, Any] = {}
        if update.subject is not None:
            patch['summary'] = update.subject
        if update.start is not None:
            patch['start'] = _google_time(update.start)
        if update.end is not None:
            patch['end'] = _google_time(update.end)
        if update.location is not None:
            patch['location'] = update.location
        if update.attendees is not None:
            patch['attendees'] = [{'email': address} for address in update.attendees]
        if update.body is not None:
            patch['description'] = update.body

        with self.session_factory() as session:
            self._request(
                session, 'PATCH', f"{CALENDAR_BASE_URL}/calendars/{calendar_id or 'primary'}/events/{event_id}",
                token, cancel_token, json_body=patch
            )
        logger.info(f"Updated event '{event_id}' in account '{account.id}'")

    def delete_event(self, account, calendar_id, event_id, cancel_token=None):
        token = self.require_credential(account, self.CALENDAR_SCOPES)
        with self.session_factory() as session:
            self._request(
                session, 'DELETE', f"{CALENDAR_BASE_URL}/calendars/{calendar_id or 'primary'}/events/{event_id}",
                token, cancel_token
            )
        logger.info(f"Deleted event '{event_id}' from account '{account.id}'")
