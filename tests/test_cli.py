"""
Tests for the click command-line interface.

The service is the fake-backed one from conftest; configuration loading runs
against a temporary file and CalendarService.from_config is patched to
return the fixture service.
"""
import json
import os
from unittest.mock import patch

import pytest
import yaml
from click.testing import CliRunner

from calendar_mcp.cli import cli
from calendar_mcp.errors import ErrorCode

from helpers import make_email, make_event


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / 'config.yaml'
    with open(path, 'w') as f:
        yaml.dump({'calendar_mcp': {'accounts': [{'id': 'work', 'provider': 'microsoft365'}]}}, f)
    return path


@pytest.fixture
def mock_init_logging():
    with patch('calendar_mcp.cli.init_logging') as init_logging:
        yield init_logging


@pytest.fixture
def run(tmp_path, config_file, service, mock_init_logging):
    """Invoke the CLI against the fixture service; returns the click Result."""
    runner = CliRunner()

    def invoke(*args, env_file=None):
        env_file = env_file or tmp_path / 'absent.env'
        with patch('calendar_mcp.cli.CalendarService.from_config', return_value=service):
            return runner.invoke(
                cli,
                ['--config', str(config_file), '--env-file', str(env_file), *args],
                obj={},
            )
    return invoke


def _json(result):
    return json.loads(result.output)


class TestGroup:
    """Test group-level options."""

    def test_version(self):
        result = CliRunner().invoke(cli, ['--version'])
        assert result.exit_code == 0
        assert 'calendar-mcp' in result.output

    def test_help_lists_commands(self):
        result = CliRunner().invoke(cli, ['--help'])
        assert result.exit_code == 0
        for command in ('emails', 'search', 'send', 'events', 'create-event', 'test-account'):
            assert command in result.output

    def test_missing_config(self, tmp_path, mock_init_logging):
        result = CliRunner().invoke(
            cli,
            ['--config', str(tmp_path / 'absent.yaml'), '--env-file', str(tmp_path / 'absent.env'),
             'list-accounts'],
            obj={},
        )
        assert result.exit_code == 1
        assert 'Configuration error' in result.output
        assert ErrorCode.CONFIG_MISSING in result.output

    def test_log_level_override(self, run, mock_init_logging):
        result = run('--log-level', 'debug', 'list-accounts')

        assert result.exit_code == 0
        first, second = mock_init_logging.call_args_list
        assert first[1]['overrides'] == {'level': 'DEBUG'}
        # Re-initialized with the file's logging section; the option still wins
        assert second[1]['config'] == {'level': 'INFO', 'format': 'plain'}
        assert second[1]['overrides'] == {'level': 'DEBUG'}

    def test_env_file_loaded(self, run, tmp_path, monkeypatch):
        monkeypatch.setenv('CALENDAR_MCP_TEST_MARKER', 'placeholder')
        monkeypatch.delenv('CALENDAR_MCP_TEST_MARKER')
        env_file = tmp_path / '.env'
        env_file.write_text("CALENDAR_MCP_TEST_MARKER=loaded\n")

        result = run('list-accounts', env_file=env_file)

        assert result.exit_code == 0
        assert os.environ.get('CALENDAR_MCP_TEST_MARKER') == 'loaded'

    def test_env_file_does_not_override_environment(self, run, tmp_path, monkeypatch):
        monkeypatch.setenv('CALENDAR_MCP_TEST_MARKER', 'from-env')
        env_file = tmp_path / '.env'
        env_file.write_text("CALENDAR_MCP_TEST_MARKER=from-file\n")

        run('list-accounts', env_file=env_file)

        assert os.environ['CALENDAR_MCP_TEST_MARKER'] == 'from-env'


class TestReadCommands:
    """Test read commands."""

    def test_list_accounts(self, run):
        result = run('list-accounts')

        assert result.exit_code == 0
        data = _json(result)
        assert [a['id'] for a in data['accounts']] == ['work', 'personal', 'disabled-acct']
        assert 'providerConfig' not in data['accounts'][0]

    def test_emails_merged(self, run, backend):
        backend.emails['work'] = [make_email('w1', 'work', minutes=10)]
        backend.emails['personal'] = [make_email('p1', 'personal', minutes=20)]

        result = run('emails', '--count', '5')

        assert result.exit_code == 0
        data = _json(result)
        assert data['status'] == 'ok'
        assert [e['id'] for e in data['emails']] == ['p1', 'w1']
        assert data['accountsQueried'] == ['work', 'personal']

    def test_emails_unknown_account(self, run):
        result = run('emails', '--account', 'nope')

        assert result.exit_code == 1
        data = _json(result)
        assert data['status'] == 'no_targets'
        assert "nope" in data['reason']

    def test_emails_invalid_count(self, run):
        result = run('emails', '--count', '0')
        assert result.exit_code == 2

    def test_emails_partial_failure_still_succeeds(self, run, backend, credentials):
        backend.emails['work'] = [make_email('w1', 'work')]
        del credentials.tokens['personal']

        result = run('emails')

        assert result.exit_code == 0
        data = _json(result)
        assert [e['id'] for e in data['emails']] == ['w1']
        assert data['failures'][0]['accountId'] == 'personal'
        assert data['failures'][0]['errorCode'] == ErrorCode.NO_CREDENTIAL

    def test_search_with_dates(self, run, backend):
        backend.emails['work'] = [
            make_email('in-range', 'work', minutes=30, subject='Invoice May'),
            make_email('too-early', 'work', minutes=-60 * 24 * 40, subject='Invoice March'),
        ]

        result = run('search', 'invoice', '--account', 'work', '--from', '2024-04-30', '--to', '2024-05-02')

        assert result.exit_code == 0
        assert [e['id'] for e in _json(result)['emails']] == ['in-range']

    def test_search_to_date_covers_whole_day(self, run, backend):
        backend.emails['work'] = [make_email('same-day', 'work', minutes=60, subject='Invoice May')]

        result = run('search', 'invoice', '--account', 'work', '--from', '2024-05-01', '--to', '2024-05-01')

        assert result.exit_code == 0
        assert [e['id'] for e in _json(result)['emails']] == ['same-day']

    def test_search_invalid_date(self, run):
        result = run('search', 'invoice', '--from', 'not-a-date')
        assert result.exit_code == 2
        assert 'Could not parse' in result.output

    def test_email_detail(self, run, backend):
        backend.emails['work'] = [make_email('w1', 'work', subject='Quarterly')]

        result = run('email', 'w1', '--account', 'work')

        assert result.exit_code == 0
        assert _json(result)['email'][0]['subject'] == 'Quarterly'

    def test_email_detail_requires_account(self, run):
        result = run('email', 'w1')
        assert result.exit_code == 2

    def test_events(self, run, backend):
        backend.events['work'] = [make_event('later', 'work', hours=3)]
        backend.events['personal'] = [make_event('sooner', 'personal', hours=1)]

        result = run('events', '--start', '2024-05-01', '--end', '2024-05-02')

        assert result.exit_code == 0
        assert [e['id'] for e in _json(result)['events']] == ['sooner', 'later']


class TestWriteCommands:
    """Test write commands."""

    def test_send_routes_by_domain(self, run, backend):
        result = run('send', '--to', 'bob@example.com', '--subject', 'Hi', '--body', 'Hello')

        assert result.exit_code == 0
        data = _json(result)
        assert data['success'] is True
        assert data['accountUsed'] == 'personal'
        assert backend.sent == [('personal', 'bob@example.com', 'Hi', 'html', None)]

    def test_send_with_cc_and_text(self, run, backend):
        result = run(
            'send', '--to', 'bob@corp.com', '--subject', 'Hi', '--body', 'Hello',
            '--body-format', 'text', '--cc', 'a@corp.com', '--cc', 'b@corp.com'
        )

        assert result.exit_code == 0
        assert backend.sent == [('work', 'bob@corp.com', 'Hi', 'text', ['a@corp.com', 'b@corp.com'])]

    def test_send_failure_exits_nonzero(self, run, credentials):
        del credentials.tokens['work']

        result = run('send', '--to', 'bob@corp.com', '--subject', 'Hi', '--body', 'Hello')

        assert result.exit_code == 1
        data = _json(result)
        assert data['success'] is False
        assert data['errorCode'] == ErrorCode.NO_CREDENTIAL

    def test_send_missing_required_option(self, run):
        result = run('send', '--to', 'bob@corp.com')
        assert result.exit_code == 2

    def test_create_event(self, run, backend):
        result = run(
            'create-event', '--subject', 'Review',
            '--start', '2024-05-02T14:00:00Z', '--end', '2024-05-02T15:00:00Z',
            '--attendee', 'carol@corp.com',
        )

        assert result.exit_code == 0
        data = _json(result)
        assert data['accountUsed'] == 'work'
        assert data['eventId'] == 'evt-work-1'
        assert backend.created == [('work', None, 'Review', ['carol@corp.com'])]

    def test_create_event_end_before_start(self, run, backend):
        result = run(
            'create-event', '--subject', 'Review',
            '--start', '2024-05-02T15:00:00Z', '--end', '2024-05-02T14:00:00Z',
        )

        assert result.exit_code == 1
        assert _json(result)['errorCode'] == ErrorCode.INVALID_ARGUMENT
        assert backend.created == []

    def test_update_event(self, run, backend):
        result = run('update-event', 'evt-1', '--account', 'work', '--subject', 'Renamed')

        assert result.exit_code == 0
        account_id, calendar_id, event_id, update = backend.updated[0]
        assert (account_id, calendar_id, event_id) == ('work', None, 'evt-1')
        assert update.subject == 'Renamed'
        assert update.attendees is None

    def test_delete_event(self, run, backend):
        result = run('delete-event', 'evt-1', '--account', 'personal', '--calendar', 'cal-9')

        assert result.exit_code == 0
        assert backend.deleted == [('personal', 'cal-9', 'evt-1')]


class TestTestAccount:
    """Test the test-account command."""

    def test_authenticated(self, run):
        result = run('test-account', 'work')

        assert result.exit_code == 0
        assert _json(result) == {'accountId': 'work', 'provider': 'microsoft365', 'authenticated': True}

    def test_not_enrolled(self, run, credentials):
        del credentials.tokens['personal']

        result = run('test-account', 'personal')

        assert result.exit_code == 1
        assert _json(result)['errorCode'] == ErrorCode.NO_CREDENTIAL

    def test_unknown_account(self, run):
        result = run('test-account', 'ghost')

        assert result.exit_code == 1
        assert _json(result)['errorCode'] == ErrorCode.UNKNOWN_ACCOUNT
