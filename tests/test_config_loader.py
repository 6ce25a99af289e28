"""
Tests for the configuration loader.

Tests cover:
- YAML and JSON files, with and without a calendar_mcp section
- Environment variable overrides
- Error handling (missing file, invalid YAML, schema failures)
"""
import json

import pytest
import yaml

from calendar_mcp.config_loader import ConfigLoader, load_config
from calendar_mcp.errors import ConfigurationError, ErrorCode


@pytest.fixture
def config_data():
    """Complete configuration with a calendar_mcp section."""
    return {
        'calendar_mcp': {
            'request_timeout_seconds': 15,
            'max_workers': 4,
            'logging': {'level': 'debug'},
            'accounts': [
                {
                    'id': 'work',
                    'display_name': 'Work',
                    'provider': 'microsoft365',
                    'domains': ['corp.com'],
                    'priority': 1,
                    'provider_config': {'tenant_id': 'tenant-1', 'client_id': 'client-1'},
                },
                {
                    'id': 'gmail',
                    'provider': 'google',
                    'enabled': False,
                },
            ],
        }
    }


@pytest.fixture
def config_file(tmp_path, config_data):
    path = tmp_path / 'config.yaml'
    with open(path, 'w') as f:
        yaml.dump(config_data, f)
    return path


@pytest.fixture(autouse=True)
def clear_env(monkeypatch):
    for name in ('CALENDAR_MCP_REQUEST_TIMEOUT', 'CALENDAR_MCP_MAX_WORKERS', 'CALENDAR_MCP_LOG_LEVEL'):
        monkeypatch.delenv(name, raising=False)


class TestConfigLoaderInitialization:
    """Test ConfigLoader initialization."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            ConfigLoader(tmp_path / 'absent.yaml')
        assert exc_info.value.error_code == ErrorCode.CONFIG_MISSING

    def test_default_path_uses_data_directory(self, tmp_path, monkeypatch, config_data):
        monkeypatch.setenv('CALENDAR_MCP_HOME', str(tmp_path))
        with open(tmp_path / 'config.yaml', 'w') as f:
            yaml.dump(config_data, f)

        loader = ConfigLoader()

        assert loader.config_path == tmp_path / 'config.yaml'


class TestLoading:
    """Test loading valid files."""

    def test_load_yaml(self, config_file):
        config = ConfigLoader(config_file).load()

        assert config.request_timeout_seconds == 15
        assert config.max_workers == 4
        assert config.logging.level == 'DEBUG'
        assert [a.id for a in config.accounts] == ['work', 'gmail']
        assert config.accounts[0].provider_config == {'tenant_id': 'tenant-1', 'client_id': 'client-1'}
        assert config.accounts[1].enabled is False

    def test_load_config_function(self, config_file):
        assert len(load_config(config_file).accounts) == 2

    def test_load_json_appsettings(self, tmp_path):
        path = tmp_path / 'appsettings.json'
        path.write_text(json.dumps({
            'CalendarMcp': {
                'Accounts': [{
                    'Id': 'work',
                    'DisplayName': 'Work',
                    'Provider': 'microsoft365',
                    'Domains': ['corp.com'],
                    'Enabled': True,
                    'Priority': 2,
                    'ProviderConfig': {'TenantId': 't', 'ClientId': 'c'},
                }]
            },
            'Telemetry': {'Enabled': False},
        }))

        config = ConfigLoader(path).load()

        account = config.accounts[0]
        assert account.display_name == 'Work'
        assert account.priority == 2
        assert account.provider_config == {'TenantId': 't', 'ClientId': 'c'}

    def test_file_without_section(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text("accounts:\n  - id: home\n    provider: outlook.com\n")

        config = ConfigLoader(path).load()

        assert config.accounts[0].id == 'home'

    def test_empty_file(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text("")

        config = ConfigLoader(path).load()

        assert config.accounts == []
        assert config.request_timeout_seconds == 30.0

    def test_empty_section(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text("calendar_mcp:\n")
        assert ConfigLoader(path).load().accounts == []


class TestEnvironmentOverrides:
    """Test CALENDAR_MCP_* overrides."""

    def test_overrides_applied(self, config_file, monkeypatch):
        monkeypatch.setenv('CALENDAR_MCP_REQUEST_TIMEOUT', '2.5')
        monkeypatch.setenv('CALENDAR_MCP_MAX_WORKERS', '16')
        monkeypatch.setenv('CALENDAR_MCP_LOG_LEVEL', 'warning')

        config = ConfigLoader(config_file).load()

        assert config.request_timeout_seconds == 2.5
        assert config.max_workers == 16
        assert config.logging.level == 'WARNING'

    def test_override_replaces_camel_case_key(self, tmp_path, monkeypatch):
        path = tmp_path / 'config.yaml'
        path.write_text("CalendarMcp:\n  RequestTimeoutSeconds: 10\n")
        monkeypatch.setenv('CALENDAR_MCP_REQUEST_TIMEOUT', '3')

        assert ConfigLoader(path).load().request_timeout_seconds == 3

    def test_empty_override_ignored(self, config_file, monkeypatch):
        monkeypatch.setenv('CALENDAR_MCP_MAX_WORKERS', '')
        assert ConfigLoader(config_file).load().max_workers == 4

    def test_invalid_numeric_override(self, config_file, monkeypatch):
        monkeypatch.setenv('CALENDAR_MCP_MAX_WORKERS', 'many')
        with pytest.raises(ConfigurationError, match='CALENDAR_MCP_MAX_WORKERS'):
            ConfigLoader(config_file).load()


class TestErrors:
    """Test error handling."""

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text("calendar_mcp: [unclosed\n")
        with pytest.raises(ConfigurationError, match='YAML parse error'):
            ConfigLoader(path).load()

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigurationError, match='must be a mapping'):
            ConfigLoader(path).load()

    def test_non_mapping_section(self, tmp_path):
        path = tmp_path / 'config.yaml'
        path.write_text("calendar_mcp: 5\n")
        with pytest.raises(ConfigurationError, match="Section 'calendar_mcp'"):
            ConfigLoader(path).load()

    def test_duplicate_account_ids(self):
        with pytest.raises(ConfigurationError) as exc_info:
            ConfigLoader.load_from_dict({
                'accounts': [
                    {'id': 'work', 'provider': 'google'},
                    {'id': 'Work', 'provider': 'microsoft365'},
                ]
            })
        assert exc_info.value.error_code == ErrorCode.DUPLICATE_ACCOUNT

    def test_schema_failure(self):
        with pytest.raises(ConfigurationError) as exc_info:
            ConfigLoader.load_from_dict({'accounts': [{'id': 'work'}]})
        assert exc_info.value.error_code == ErrorCode.CONFIG_INVALID
