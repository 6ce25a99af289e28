"""
Tests for date utilities.
"""
from datetime import datetime, timedelta, timezone

import pytest

from calendar_mcp.dates import (
    default_event_window,
    ensure_utc,
    format_gmail_date,
    format_graph_datetime,
    parse_datetime,
    within_range,
)


def test_ensure_utc_naive_assumed_utc():
    assert ensure_utc(datetime(2024, 1, 1, 9, 0)) == datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


def test_ensure_utc_converts_offset():
    cet = timezone(timedelta(hours=1))
    converted = ensure_utc(datetime(2024, 1, 1, 10, 0, tzinfo=cet))
    assert converted == datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
    assert converted.tzinfo == timezone.utc


@pytest.mark.parametrize('value,expected', [
    ('2024-03-01T09:00:00Z', datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)),
    ('2024-03-01T09:00:00.0000000', datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)),
    ('2024-03-01T10:00:00+01:00', datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)),
    ('2024-03-01', datetime(2024, 3, 1, 0, 0, tzinfo=timezone.utc)),
    ('March 1 2024 9:00', datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)),
])
def test_parse_datetime(value, expected):
    assert parse_datetime(value) == expected


def test_parse_datetime_invalid():
    with pytest.raises(ValueError, match='Could not parse'):
        parse_datetime('not a date')


@pytest.mark.parametrize('value,expected', [
    ('2024-03-31', datetime(2024, 3, 31, 23, 59, 59, 999999, tzinfo=timezone.utc)),
    ('Oct 3 2024', datetime(2024, 10, 3, 23, 59, 59, 999999, tzinfo=timezone.utc)),
    ('2024-03-31T10:00:00Z', datetime(2024, 3, 31, 10, 0, tzinfo=timezone.utc)),
    ('2024-03-31T10', datetime(2024, 3, 31, 10, 0, tzinfo=timezone.utc)),
])
def test_parse_datetime_end_of_day(value, expected):
    assert parse_datetime(value, end_of_day=True) == expected


def test_date_only_upper_bound_includes_that_day():
    received = datetime(2024, 3, 31, 10, 0, tzinfo=timezone.utc)
    assert within_range(received, parse_datetime('2024-03-01'), parse_datetime('2024-03-31', end_of_day=True))


def test_default_event_window():
    now = datetime(2024, 5, 10, 15, 30, tzinfo=timezone.utc)
    start, end = default_event_window(now=now)

    assert start == datetime(2024, 5, 10, 0, 0, tzinfo=timezone.utc)
    assert end == start + timedelta(days=30)


def test_default_event_window_keeps_explicit_bounds():
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    end = datetime(2024, 1, 2, tzinfo=timezone.utc)
    assert default_event_window(start, end) == (start, end)


def test_default_event_window_end_from_start():
    start = datetime(2024, 1, 1, 8, 0)
    _, end = default_event_window(start)
    assert end == datetime(2024, 1, 31, 8, 0, tzinfo=timezone.utc)


def test_within_range():
    value = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert within_range(value)
    assert within_range(value, value, value)
    assert not within_range(value, from_date=value + timedelta(seconds=1))
    assert not within_range(value, to_date=value - timedelta(seconds=1))


def test_format_graph_datetime():
    value = datetime(2024, 5, 1, 11, 0, tzinfo=timezone(timedelta(hours=2)))
    assert format_graph_datetime(value) == '2024-05-01T09:00:00Z'


def test_format_gmail_date():
    assert format_gmail_date(datetime(2024, 5, 1, 23, 0)) == '2024/05/01'
