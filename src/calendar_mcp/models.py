"""
Data models shared by the registry, provider backends and fan-out engine.

Account is an immutable value built once from configuration. The result
shapes (EmailMessage, CalendarEvent, CalendarInfo) are flat records produced
per request by a provider backend; each carries an ``account_id`` tag so the
caller can attribute a merged result to its source account.

Serialization:
    Every record has a ``to_dict()`` that produces the camelCase keys the
    invocation layer returns to clients, with datetimes as ISO 8601 strings.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Optional, List, Dict, Any, Mapping, Tuple


class ProviderKind(str, Enum):
    """Provider families an account can belong to."""
    ORGANIZATIONAL = "organizational"
    PERSONAL_CONSUMER = "personal-consumer"
    WORKSPACE = "workspace"


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class Account:
    """
    One configured identity against one external provider.

    Fields:
        id: Unique identifier, case-insensitive for lookup
        display_name: Human label (no uniqueness constraint)
        provider: Provider kind as written in configuration (e.g. 'microsoft365')
        domains: Email domains used for smart routing (may be empty)
        enabled: Disabled accounts are skipped by "all accounts" fan-out
        priority: Higher wins routing ties
        provider_config: Opaque settings passed through to the backend
    """
    id: str
    display_name: str
    provider: str
    domains: Tuple[str, ...] = ()
    enabled: bool = True
    priority: int = 0
    provider_config: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        # Freeze the collections so a shared Account can be read from any thread
        object.__setattr__(self, 'domains', tuple(self.domains))
        object.__setattr__(self, 'provider_config', MappingProxyType(dict(self.provider_config)))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the account listing shape (provider config is not exposed)."""
        return {
            'id': self.id,
            'displayName': self.display_name,
            'provider': self.provider,
            'domains': list(self.domains),
            'enabled': self.enabled,
            'priority': self.priority,
        }


@dataclass
class EmailAttachment:
    """Attachment metadata (content is never downloaded)."""
    name: str
    size: int = 0
    content_type: str = "application/octet-stream"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'size': self.size,
            'contentType': self.content_type,
        }


@dataclass
class EmailMessage:
    """Unified email message representation across all providers."""
    id: str
    account_id: str
    received_date_time: datetime
    subject: str = ""
    from_address: str = ""
    from_name: str = ""
    to: List[str] = field(default_factory=list)
    cc: List[str] = field(default_factory=list)
    body: str = ""
    body_format: str = "text"
    is_read: bool = False
    has_attachments: bool = False
    attachments: List[EmailAttachment] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'accountId': self.account_id,
            'subject': self.subject,
            'from': self.from_address,
            'fromName': self.from_name,
            'to': list(self.to),
            'cc': list(self.cc),
            'body': self.body,
            'bodyFormat': self.body_format,
            'receivedDateTime': _isoformat(self.received_date_time),
            'isRead': self.is_read,
            'hasAttachments': self.has_attachments,
            'attachments': [a.to_dict() for a in self.attachments],
        }

    def to_summary_dict(self) -> Dict[str, Any]:
        """Listing shape used by get/search results (no body or recipients)."""
        return {
            'id': self.id,
            'accountId': self.account_id,
            'subject': self.subject,
            'from': self.from_address,
            'fromName': self.from_name,
            'receivedDateTime': _isoformat(self.received_date_time),
            'isRead': self.is_read,
            'hasAttachments': self.has_attachments,
        }


@dataclass
class CalendarEvent:
    """Unified calendar event representation across all providers."""
    id: str
    account_id: str
    calendar_id: str
    start: datetime
    end: datetime
    subject: str = ""
    location: str = ""
    body: str = ""
    organizer: str = ""
    attendees: List[str] = field(default_factory=list)
    is_all_day: bool = False
    # accepted, tentative, declined, notResponded
    response_status: str = "notResponded"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'accountId': self.account_id,
            'calendarId': self.calendar_id,
            'subject': self.subject,
            'start': _isoformat(self.start),
            'end': _isoformat(self.end),
            'location': self.location,
            'body': self.body,
            'organizer': self.organizer,
            'attendees': list(self.attendees),
            'isAllDay': self.is_all_day,
            'responseStatus': self.response_status,
        }


@dataclass
class CalendarInfo:
    """Unified calendar representation across all providers."""
    id: str
    account_id: str
    name: str = ""
    owner: str = ""
    can_edit: bool = False
    is_default: bool = False
    color: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'accountId': self.account_id,
            'name': self.name,
            'owner': self.owner,
            'canEdit': self.can_edit,
            'isDefault': self.is_default,
            'color': self.color,
        }


@dataclass
class EventUpdate:
    """
    Partial fields for updating an event. ``None`` means "leave unchanged".
    """
    subject: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    location: Optional[str] = None
    attendees: Optional[List[str]] = None
    body: Optional[str] = None

    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (self.subject, self.start, self.end, self.location, self.attendees, self.body)
        )
