"""
Date utilities shared by provider backends and the fan-out engine.

This module provides functions to:
- Parse provider and user supplied date strings to timezone-aware datetimes
- Normalize naive datetimes to UTC so results from different providers sort together
- Compute the default calendar query window (today through +30 days)
- Format datetimes for Microsoft Graph and Gmail queries
"""
import logging
import re
from datetime import datetime, time, timedelta, timezone
from typing import Optional, Tuple

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

DEFAULT_EVENT_WINDOW_DAYS = 30

# 2024-03-31T10 has a time part without a colon
_ISO_TIME_SEPARATOR = re.compile(r"\d[Tt]\d")


def ensure_utc(value: datetime) -> datetime:
    """
    Return ``value`` as an aware datetime in UTC.

    Naive datetimes are assumed to already be UTC.

    Examples:
        >>> ensure_utc(datetime(2024, 1, 1, 9, 0))
        datetime.datetime(2024, 1, 1, 9, 0, tzinfo=datetime.timezone.utc)
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _has_time_component(value: str) -> bool:
    return ':' in value or _ISO_TIME_SEPARATOR.search(value) is not None


def parse_datetime(
    value: str,
    default_tz: timezone = timezone.utc,
    end_of_day: bool = False
) -> datetime:
    """
    Parse an ISO 8601 or free-form date string to an aware datetime.

    Graph returns fractional seconds with seven digits and no offset
    (``2024-03-01T09:00:00.0000000``); dateutil handles both that and
    RFC 3339 strings with ``Z``.

    Args:
        value: Date string
        default_tz: Timezone applied when the string has no offset
        end_of_day: For inclusive upper bounds. A date with no time part
            resolves to the last instant of that day instead of midnight.

    Returns:
        Timezone-aware datetime

    Raises:
        ValueError: If the string cannot be parsed

    Examples:
        >>> parse_datetime('2024-03-31', end_of_day=True)
        datetime.datetime(2024, 3, 31, 23, 59, 59, 999999, tzinfo=datetime.timezone.utc)
    """
    text = value.strip()
    try:
        parsed = date_parser.isoparse(text)
    except (ValueError, TypeError):
        try:
            parsed = date_parser.parse(text)
        except (ValueError, TypeError, OverflowError) as e:
            raise ValueError(f"Could not parse date string '{value}': {e}")

    if end_of_day and not _has_time_component(text):
        parsed = datetime.combine(parsed.date(), time.max, tzinfo=parsed.tzinfo)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=default_tz)
    return parsed


def default_event_window(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    now: Optional[datetime] = None
) -> Tuple[datetime, datetime]:
    """
    Fill in the calendar query window.

    Missing start defaults to today at 00:00 UTC; missing end defaults to
    start + 30 days.

    Args:
        start: Explicit window start, or None
        end: Explicit window end, or None
        now: Reference time (for tests)

    Returns:
        Tuple of (start, end), both aware UTC datetimes
    """
    now = ensure_utc(now) if now else datetime.now(timezone.utc)
    if start is None:
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    start = ensure_utc(start)
    if end is None:
        end = start + timedelta(days=DEFAULT_EVENT_WINDOW_DAYS)
    return start, ensure_utc(end)


def within_range(
    value: datetime,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None
) -> bool:
    """Check ``from_date <= value <= to_date``, treating missing bounds as open."""
    value = ensure_utc(value)
    if from_date is not None and value < ensure_utc(from_date):
        return False
    if to_date is not None and value > ensure_utc(to_date):
        return False
    return True


def format_graph_datetime(value: datetime) -> str:
    """Format as the UTC ISO string Graph expects in query parameters."""
    return ensure_utc(value).strftime('%Y-%m-%dT%H:%M:%SZ')


def format_gmail_date(value: datetime) -> str:
    """Format as a Gmail search operator date (YYYY/MM/DD)."""
    return ensure_utc(value).strftime('%Y/%m/%d')
