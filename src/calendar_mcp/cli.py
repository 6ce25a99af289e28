"""
Command-line interface for calendar-mcp.

Every command prints its result as JSON on stdout; logs go to stderr.

CLI Structure:
    calendar-mcp list-accounts
    calendar-mcp emails [--account <id>] [--count N] [--unread-only]
    calendar-mcp search <query> [--account <id>] [--count N] [--from DATE] [--to DATE]
    calendar-mcp email --account <id> <email-id>
    calendar-mcp send --to <addr> --subject <s> --body <b> [--account <id>] [--cc <addr>]...
    calendar-mcp calendars [--account <id>]
    calendar-mcp events [--account <id>] [--calendar <id>] [--start DATE] [--end DATE] [--count N]
    calendar-mcp create-event --subject <s> --start DATE --end DATE [--account <id>] [--attendee <addr>]...
    calendar-mcp update-event --account <id> <event-id> [--subject <s>] [--start DATE] ...
    calendar-mcp delete-event --account <id> <event-id> [--calendar <id>]
    calendar-mcp test-account <account-id>

Exit codes: 0 on success, 1 when a write fails, a read had no accounts to
query, or configuration cannot be loaded; 130 when interrupted.
"""
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import click
from dotenv import load_dotenv

from calendar_mcp import __version__
from calendar_mcp.config_loader import ConfigLoader
from calendar_mcp.dates import parse_datetime
from calendar_mcp.errors import ConfigurationError
from calendar_mcp.fanout import FanOutStatus
from calendar_mcp.logging_config import init_logging
from calendar_mcp.models import EventUpdate
from calendar_mcp.service import CalendarService, ReadResult, WriteOutcome

logger = logging.getLogger('calendar_mcp.cli')


def _parse_date_option(ctx: click.Context, param: click.Parameter, value: Optional[str]) -> Optional[datetime]:
    """Click callback: parse an ISO 8601 or free-form date string."""
    if value is None:
        return None
    try:
        return parse_datetime(value)
    except ValueError as e:
        raise click.BadParameter(str(e))


def _parse_end_date_option(ctx: click.Context, param: click.Parameter, value: Optional[str]) -> Optional[datetime]:
    """Click callback for inclusive upper bounds: a bare date covers the whole day."""
    if value is None:
        return None
    try:
        return parse_datetime(value, end_of_day=True)
    except ValueError as e:
        raise click.BadParameter(str(e))


def _echo_json(payload: Dict[str, Any]) -> None:
    click.echo(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def _emit_read(result: ReadResult) -> None:
    _echo_json(result.to_dict())
    if result.status != FanOutStatus.OK:
        sys.exit(1)


def _emit_write(outcome: WriteOutcome) -> None:
    _echo_json(outcome.to_dict())
    if not outcome.success:
        sys.exit(1)


def _get_service(ctx: click.Context) -> CalendarService:
    """
    Get or create the CalendarService for the context.

    Loads the configuration on first use and re-initializes logging with
    the file's logging section (the --log-level option still wins).
    """
    if ctx.obj.get('service') is None:
        try:
            config = ConfigLoader(ctx.obj['config_path']).load()
        except ConfigurationError as e:
            click.echo(f"Error: Configuration error [{e.error_code}]: {e}", err=True)
            sys.exit(1)

        overrides = {'level': ctx.obj['log_level']} if ctx.obj.get('log_level') else None
        init_logging(config=config.logging.to_logging_overrides(), overrides=overrides)
        ctx.obj['service'] = CalendarService.from_config(config)
    return ctx.obj['service']


@click.group()
@click.version_option(version=__version__, prog_name='calendar-mcp')
@click.option(
    '--config',
    'config_path',
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help='Configuration file (default: $CALENDAR_MCP_HOME/config.yaml or ~/.calendar-mcp/config.yaml)'
)
@click.option(
    '--env-file',
    type=click.Path(path_type=Path, dir_okay=False),
    default='.env',
    help='Path to .env file (default: .env)'
)
@click.option(
    '--log-level',
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
    default=None,
    help='Override the configured log level'
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], env_file: Path, log_level: Optional[str]):
    """
    calendar-mcp: unified mail and calendar access across Microsoft 365,
    Outlook.com and Google accounts.
    """
    ctx.ensure_object(dict)

    # .env is optional; existing environment variables win
    if env_file.exists():
        load_dotenv(env_file, override=False)

    ctx.obj['config_path'] = config_path
    ctx.obj['log_level'] = log_level.upper() if log_level else None
    ctx.obj['service'] = None

    try:
        init_logging(overrides={'level': ctx.obj['log_level']} if log_level else None)
    except OSError as e:
        click.echo(f"Warning: Could not initialize logging: {e}", err=True)


@cli.command('list-accounts')
@click.pass_context
def list_accounts(ctx: click.Context):
    """List configured accounts in configuration order."""
    _emit_read(_get_service(ctx).list_accounts())


@cli.command()
@click.option('--account', 'account_id', default=None, help='Account id (default: all enabled accounts)')
@click.option('--count', type=click.IntRange(min=1), default=20, show_default=True, help='Emails per account')
@click.option('--unread-only', is_flag=True, help='Only unread emails')
@click.pass_context
def emails(ctx: click.Context, account_id: Optional[str], count: int, unread_only: bool):
    """
    Recent emails, newest first.

    Examples:
        calendar-mcp emails --count 10
        calendar-mcp emails --account work --unread-only
    """
    _emit_read(_get_service(ctx).get_emails(account_id=account_id, count=count, unread_only=unread_only))


@cli.command()
@click.argument('query')
@click.option('--account', 'account_id', default=None, help='Account id (default: all enabled accounts)')
@click.option('--count', type=click.IntRange(min=1), default=20, show_default=True, help='Emails per account')
@click.option('--from', 'from_date', callback=_parse_date_option, default=None, help='Received on or after')
@click.option('--to', 'to_date', callback=_parse_end_date_option, default=None, help='Received on or before')
@click.pass_context
def search(
    ctx: click.Context,
    query: str,
    account_id: Optional[str],
    count: int,
    from_date: Optional[datetime],
    to_date: Optional[datetime]
):
    """
    Search emails by text, optionally within a date range.

    Examples:
        calendar-mcp search invoice --from 2024-01-01 --to 2024-03-31
    """
    _emit_read(_get_service(ctx).search_emails(
        query, account_id=account_id, count=count, from_date=from_date, to_date=to_date
    ))


@cli.command()
@click.argument('email_id')
@click.option('--account', 'account_id', required=True, help='Account the email belongs to')
@click.pass_context
def email(ctx: click.Context, email_id: str, account_id: str):
    """Full content of one email."""
    _emit_read(_get_service(ctx).get_email_detail(account_id, email_id))


@cli.command()
@click.option('--to', 'to', required=True, help='Recipient address')
@click.option('--subject', required=True)
@click.option('--body', required=True)
@click.option('--body-format', type=click.Choice(['html', 'text'], case_sensitive=False), default='html',
              show_default=True)
@click.option('--cc', multiple=True, help='CC address (repeatable)')
@click.option('--account', 'account_id', default=None, help='Sending account (default: smart routing)')
@click.pass_context
def send(
    ctx: click.Context,
    to: str,
    subject: str,
    body: str,
    body_format: str,
    cc: Tuple[str, ...],
    account_id: Optional[str]
):
    """
    Send an email. Without --account the sender is picked by recipient domain.

    Examples:
        calendar-mcp send --to x@corp.com --subject Hi --body "Hello"
    """
    _emit_write(_get_service(ctx).send_email(
        to, subject, body, body_format=body_format, cc=list(cc) or None, account_id=account_id
    ))


@cli.command()
@click.option('--account', 'account_id', default=None, help='Account id (default: all enabled accounts)')
@click.pass_context
def calendars(ctx: click.Context, account_id: Optional[str]):
    """List calendars."""
    _emit_read(_get_service(ctx).list_calendars(account_id=account_id))


@cli.command()
@click.option('--account', 'account_id', default=None, help='Account id (default: all enabled accounts)')
@click.option('--calendar', 'calendar_id', default=None, help='Calendar id (default: primary calendar)')
@click.option('--start', callback=_parse_date_option, default=None, help='Window start (default: today)')
@click.option('--end', callback=_parse_end_date_option, default=None, help='Window end (default: start + 30 days)')
@click.option('--count', type=click.IntRange(min=1), default=50, show_default=True, help='Events per account')
@click.pass_context
def events(
    ctx: click.Context,
    account_id: Optional[str],
    calendar_id: Optional[str],
    start: Optional[datetime],
    end: Optional[datetime],
    count: int
):
    """Calendar events sorted by start time."""
    _emit_read(_get_service(ctx).get_calendar_events(
        account_id=account_id, calendar_id=calendar_id, start=start, end=end, count=count
    ))


@cli.command('create-event')
@click.option('--subject', required=True)
@click.option('--start', callback=_parse_date_option, required=True)
@click.option('--end', callback=_parse_date_option, required=True)
@click.option('--account', 'account_id', default=None, help='Account (default: smart routing)')
@click.option('--calendar', 'calendar_id', default=None)
@click.option('--location', default=None)
@click.option('--attendee', 'attendees', multiple=True, help='Attendee address (repeatable)')
@click.option('--body', default=None)
@click.pass_context
def create_event(
    ctx: click.Context,
    subject: str,
    start: datetime,
    end: datetime,
    account_id: Optional[str],
    calendar_id: Optional[str],
    location: Optional[str],
    attendees: Tuple[str, ...],
    body: Optional[str]
):
    """
    Create a calendar event. Without --account the account is picked by the
    first attendee's domain.
    """
    _emit_write(_get_service(ctx).create_event(
        subject, start, end,
        account_id=account_id,
        calendar_id=calendar_id,
        location=location,
        attendees=list(attendees) or None,
        body=body,
    ))


@cli.command('update-event')
@click.argument('event_id')
@click.option('--account', 'account_id', required=True)
@click.option('--calendar', 'calendar_id', default=None)
@click.option('--subject', default=None)
@click.option('--start', callback=_parse_date_option, default=None)
@click.option('--end', callback=_parse_date_option, default=None)
@click.option('--location', default=None)
@click.option('--attendee', 'attendees', multiple=True, help='Replace attendees (repeatable)')
@click.option('--body', default=None)
@click.pass_context
def update_event(
    ctx: click.Context,
    event_id: str,
    account_id: str,
    calendar_id: Optional[str],
    subject: Optional[str],
    start: Optional[datetime],
    end: Optional[datetime],
    location: Optional[str],
    attendees: Tuple[str, ...],
    body: Optional[str]
):
    """Update fields of an existing event."""
    update = EventUpdate(
        subject=subject,
        start=start,
        end=end,
        location=location,
        attendees=list(attendees) if attendees else None,
        body=body,
    )
    _emit_write(_get_service(ctx).update_event(account_id, calendar_id, event_id, update))


@cli.command('delete-event')
@click.argument('event_id')
@click.option('--account', 'account_id', required=True)
@click.option('--calendar', 'calendar_id', default=None)
@click.pass_context
def delete_event(ctx: click.Context, event_id: str, account_id: str, calendar_id: Optional[str]):
    """Delete an event."""
    _emit_write(_get_service(ctx).delete_event(account_id, calendar_id, event_id))


@cli.command('test-account')
@click.argument('account_id')
@click.pass_context
def test_account(ctx: click.Context, account_id: str):
    """
    Check that an account has a cached credential.

    Exits 1 when the account is unknown or needs re-enrollment.
    """
    result = _get_service(ctx).test_account(account_id)
    _echo_json(result)
    if not result.get('authenticated'):
        sys.exit(1)


def main() -> None:
    """Console script entry point."""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        click.echo("Interrupted", err=True)
        sys.exit(130)


if __name__ == '__main__':
    main()
