"""
Microsoft Graph backend shared by Microsoft 365 and Outlook.com accounts.

The two provider kinds speak the same REST API and differ only in the
identity platform authority their credentials come from (see m365.py and
outlook_com.py).

Search:
    Graph rejects ``$search`` combined with ``$filter``. A text query with a
    date range is therefore sent as ``$search`` alone; Graph returns those
    results newest first, and the date bound is applied client-side while
    paging, stopping once ``count`` messages match (apply_date_bound).
"""
import logging
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

import requests

from calendar_mcp.dates import (
    default_event_window,
    ensure_utc,
    format_graph_datetime,
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
from calendar_mcp.providers.base import ProviderBackend, apply_date_bound

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = 'https://graph.microsoft.com/v1.0'

MESSAGE_SELECT = (
    'id,subject,from,toRecipients,ccRecipients,receivedDateTime,isRead,hasAttachments,bodyPreview'
)

# Page size and page cap for the client-side search fallback
SEARCH_PAGE_SIZE = 50
MAX_SEARCH_PAGES = 10

# Lower bound that keeps receivedDateTime first in an unread filter
UNBOUNDED_RECEIVED_FROM = '1900-01-01T00:00:00Z'

_RESPONSE_STATUS = {
    'accepted': 'accepted',
    'tentativelyAccepted': 'tentative',
    'declined': 'declined',
    'organizer': 'accepted',
}


def _address(recipient: Optional[Dict[str, Any]]) -> str:
    if not recipient:
        return ""
    return (recipient.get('emailAddress') or {}).get('address') or ""


def _recipients(addresses: Optional[List[str]]) -> List[Dict[str, Any]]:
    return [{'emailAddress': {'address': address}} for address in addresses or []]


def _graph_time(value: datetime) -> Dict[str, str]:
    return {'dateTime': ensure_utc(value).strftime('%Y-%m-%dT%H:%M:%S'), 'timeZone': 'UTC'}


def _parse_graph_time(value: Optional[Dict[str, Any]]) -> datetime:
    """Parse a Graph dateTimeTimeZone object; we always request UTC."""
    if not value or not value.get('dateTime'):
        raise BackendError("Graph event is missing a start or end time")
    return ensure_utc(parse_datetime(value['dateTime']))


class GraphBackend(ProviderBackend):
    """
    Provider backend over the Microsoft Graph v1.0 REST API.

    Subclasses set ``name`` and supply an MSAL credential provider bound to
    the right authority.
    """

    name = "graph"

    MAIL_READ_SCOPES = ('Mail.Read',)
    MAIL_SEND_SCOPES = ('Mail.Send',)
    CALENDAR_SCOPES = ('Calendars.ReadWrite',)

    base_url = GRAPH_BASE_URL

    def _message_from_graph(self, account: Account, data: Dict[str, Any], detail: bool = False) -> EmailMessage:
        sender = data.get('from') or {}
        body = data.get('body') or {}
        attachments = [
            EmailAttachment(
                name=a.get('name') or "",
                size=a.get('size') or 0,
                content_type=a.get('contentType') or "application/octet-stream",
            )
            for a in data.get('attachments') or []
        ]
        return EmailMessage(
            id=data['id'],
            account_id=account.id,
            received_date_time=ensure_utc(parse_datetime(data['receivedDateTime'])),
            subject=data.get('subject') or "",
            from_address=_address(sender),
            from_name=(sender.get('emailAddress') or {}).get('name') or "",
            to=[_address(r) for r in data.get('toRecipients') or []],
            cc=[_address(r) for r in data.get('ccRecipients') or []],
            body=body.get('content', "") if detail else data.get('bodyPreview') or "",
            body_format=(body.get('contentType') or 'text').lower() if detail else 'text',
            is_read=bool(data.get('isRead')),
            has_attachments=bool(data.get('hasAttachments')),
            attachments=attachments,
        )

    def _event_from_graph(self, account: Account, calendar_id: str, data: Dict[str, Any]) -> CalendarEvent:
        response = (data.get('responseStatus') or {}).get('response')
        return CalendarEvent(
            id=data['id'],
            account_id=account.id,
            calendar_id=calendar_id,
            start=_parse_graph_time(data.get('start')),
            end=_parse_graph_time(data.get('end')),
            subject=data.get('subject') or "",
            location=(data.get('location') or {}).get('displayName') or "",
            body=(data.get('body') or {}).get('content') or data.get('bodyPreview') or "",
            organizer=_address(data.get('organizer')),
            attendees=[_address(a) for a in data.get('attendees') or []],
            is_all_day=bool(data.get('isAllDay')),
            response_status=_RESPONSE_STATUS.get(response, 'notResponded'),
        )

    def _iter_pages(
        self,
        session: requests.Session,
        url: str,
        token: str,
        params: Optional[Dict[str, Any]],
        cancel_token: Optional[CancellationToken],
        max_pages: int,
        headers: Optional[Dict[str, str]] = None,
    ) -> Iterator[Dict[str, Any]]:
        """Yield items across ``@odata.nextLink`` pages, lazily."""
        pages = 0
        while url and pages < max_pages:
            payload = self._request(
                session, 'GET', url, token, cancel_token, params=params, headers=headers
            ) or {}
            pages += 1
            for item in payload.get('value') or []:
                yield item
            url = payload.get('@odata.nextLink')
            # nextLink already carries the query string
            params = None

    def get_emails(self, account, count=20, unread_only=False, cancel_token=None):
        token = self.require_credential(account, self.MAIL_READ_SCOPES)
        params = {
            '$top': count,
            '$orderby': 'receivedDateTime desc',
            '$select': MESSAGE_SELECT,
        }
        if unread_only:
            # $orderby properties must lead the $filter or Graph answers InefficientFilter
            params['$filter'] = f"receivedDateTime ge {UNBOUNDED_RECEIVED_FROM} and isRead eq false"

        with self.session_factory() as session:
            payload = self._request(
                session, 'GET', f"{self.base_url}/me/mailFolders/inbox/messages",
                token, cancel_token, params=params
            ) or {}
        return [self._message_from_graph(account, item) for item in payload.get('value') or []][:count]

    def search_emails(self, account, query, count=20, from_date=None, to_date=None, cancel_token=None):
        token = self.require_credential(account, self.MAIL_READ_SCOPES)
        url = f"{self.base_url}/me/messages"
        query = (query or "").strip()
        has_range = from_date is not None or to_date is not None

        with self.session_factory() as session:
            if query and has_range:
                # $search cannot be combined with $filter: fetch newest-first superset
                params = {
                    '$search': f'"{query}"',
                    '$top': SEARCH_PAGE_SIZE,
                    '$select': MESSAGE_SELECT,
                }
                items = self._iter_pages(session, url, token, params, cancel_token, MAX_SEARCH_PAGES)
                messages = (self._message_from_graph(account, item) for item in items)
                return apply_date_bound(messages, count, from_date, to_date)

            params = {'$top': count, '$select': MESSAGE_SELECT}
            if query:
                params['$search'] = f'"{query}"'
            else:
                params['$orderby'] = 'receivedDateTime desc'
                filters = []
                if from_date is not None:
                    filters.append(f"receivedDateTime ge {format_graph_datetime(from_date)}")
                if to_date is not None:
                    filters.append(f"receivedDateTime le {format_graph_datetime(to_date)}")
                if filters:
                    params['$filter'] = ' and '.join(filters)

            payload = self._request(session, 'GET', url, token, cancel_token, params=params) or {}

        messages = [self._message_from_graph(account, item) for item in payload.get('value') or []]
        return messages[:count]

    def get_email_detail(self, account, email_id, cancel_token=None):
        token = self.require_credential(account, self.MAIL_READ_SCOPES)
        params = {'$expand': 'attachments($select=name,size,contentType)'}
        with self.session_factory() as session:
            try:
                payload = self._request(
                    session, 'GET', f"{self.base_url}/me/messages/{email_id}",
                    token, cancel_token, params=params
                )
            except BackendError as e:
                if e.status_code == 404:
                    logger.info(f"Message '{email_id}' not found in account '{account.id}'")
                    return None
                raise
        if not payload:
            return None
        return self._message_from_graph(account, payload, detail=True)

    def send_email(self, account, to, subject, body, body_format="html", cc=None, cancel_token=None):
        token = self.require_credential(account, self.MAIL_SEND_SCOPES)
        message = {
            'subject': subject,
            'body': {
                'contentType': 'HTML' if body_format.lower() == 'html' else 'Text',
                'content': body,
            },
            'toRecipients': _recipients([to]),
            'ccRecipients': _recipients(cc),
        }
        with self.session_factory() as session:
            # Draft then send, so the caller gets the message id back
            draft = self._request(
                session, 'POST', f"{self.base_url}/me/messages",
                token, cancel_token, json_body=message
            ) or {}
            message_id = draft.get('id')
            if not message_id:
                raise BackendError(f"{self.name} did not return an id for the draft message")
            self._request(
                session, 'POST', f"{self.base_url}/me/messages/{message_id}/send",
                token, cancel_token
            )
        logger.info(f"Sent message '{message_id}' from account '{account.id}'")
        return message_id

    def list_calendars(self, account, cancel_token=None):
        token = self.require_credential(account, self.CALENDAR_SCOPES)
        with self.session_factory() as session:
            items = list(self._iter_pages(
                session, f"{self.base_url}/me/calendars", token, None, cancel_token, MAX_SEARCH_PAGES
            ))
        return [
            CalendarInfo(
                id=item['id'],
                account_id=account.id,
                name=item.get('name') or "",
                owner=_address({'emailAddress': item.get('owner')}),
                can_edit=bool(item.get('canEdit')),
                is_default=bool(item.get('isDefaultCalendar')),
                color=item.get('hexColor') or item.get('color'),
            )
            for item in items
        ]

    def _events_url(self, calendar_id: Optional[str], event_id: Optional[str] = None) -> str:
        base = f"{self.base_url}/me/calendars/{calendar_id}" if calendar_id else f"{self.base_url}/me"
        if event_id:
            return f"{base}/events/{event_id}"
        return f"{base}/events"

    def get_calendar_events(self, account, calendar_id=None, start=None, end=None, count=50, cancel_token=None):
        token = self.require_credential(account, self.CALENDAR_SCOPES)
        start, end = default_event_window(start, end)
        base = f"{self.base_url}/me/calendars/{calendar_id}" if calendar_id else f"{self.base_url}/me"
        params = {
            'startDateTime': format_graph_datetime(start),
            'endDateTime': format_graph_datetime(end),
            '$top': count,
            '$orderby': 'start/dateTime',
        }
        with self.session_factory() as session:
            payload = self._request(
                session, 'GET', f"{base}/calendarView", token, cancel_token,
                params=params, headers={'Prefer': 'outlook.timezone="UTC"'}
            ) or {}
        return [
            self._event_from_graph(account, calendar_id or 'primary', item)
            for item in payload.get('value') or []
        ][:count]

    def create_event(self, account, calendar_id, subject, start, end, location=None,
                     attendees=None, body=None, cancel_token=None):
        token = self.require_credential(account, self.CALENDAR_SCOPES)
        event: Dict[str, Any] = {
            'subject': subject,
            'start': _graph_time(start),
            'end': _graph_time(end),
        }
        if location:
            event['location'] = {'displayName': location}
        if attendees:
            event['attendees'] = [
                {'emailAddress': {'address': address}, 'type': 'required'} for address in attendees
            ]
        if body:
            event['body'] = {'contentType': 'HTML', 'content': body}

        with self.session_factory() as session:
            created = self._request(
                session, 'POST', self._events_url(calendar_id), token, cancel_token, json_body=event
            ) or {}
        event_id = created.get('id')
        if not event_id:
            raise BackendError(f"{self.name} did not return an id for the created event")
        logger.info(f"Created event '{event_id}' in account '{account.id}'")
        return event_id

    def update_event(self, account, calendar_id, event_id, update: EventUpdate, cancel_token=None):
        token = self.require_credential(account, self.CALENDAR_SCOPES)
        patch: Dict[str, Any] = {}
        if update.subject is not None:
            patch['subject'] = update.subject
        if update.start is not None:
            patch['start'] = _graph_time(update.start)
        if update.end is not None:
            patch['end'] = _graph_time(update.end)
        if update.location is not None:
            patch['location'] = {'displayName': update.location}
        if update.attendees is not None:
            patch['attendees'] = [
                {'emailAddress': {'address': address}, 'type': 'required'} for address in update.attendees
            ]
        if update.body is not None:
            patch['body'] = {'contentType': 'HTML', 'content': update.body}

        with self.session_factory() as session:
            self._request(
                session, 'PATCH', self._events_url(calendar_id, event_id), token, cancel_token, json_body=patch
            )
        logger.info(f"Updated event '{event_id}' in account '{account.id}'")

    def delete_event(self, account, calendar_id, event_id, cancel_token=None):
        token = self.require_credential(account, self.CALENDAR_SCOPES)
        with self.session_factory() as session:
            self._request(session, 'DELETE', self._events_url(calendar_id, event_id), token, cancel_token)
        logger.info(f"Deleted event '{event_id}' from account '{account.id}'")
