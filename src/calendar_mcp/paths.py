"""
Filesystem locations shared by the CLI, configuration loader and token caches.

The data directory holds the configuration file, one token cache file per
account and the log folder. It is ``$CALENDAR_MCP_HOME`` when set, otherwise
``~/.calendar-mcp``.
"""
import os
from pathlib import Path

DATA_DIR_ENV = 'CALENDAR_MCP_HOME'
CONFIG_FILENAME = 'config.yaml'


def get_data_directory() -> Path:
    override = os.environ.get(DATA_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / '.calendar-mcp'


def get_config_file_path() -> Path:
    return get_data_directory() / CONFIG_FILENAME


def get_token_directory() -> Path:
    return get_data_directory() / 'tokens'


def get_log_directory() -> Path:
    return get_data_directory() / 'logs'


def sanitize_account_id(account_id: str) -> str:
    """
    Make an account id safe to use as a file name.

    Raises:
        ValueError: If the id is empty after stripping
    """
    safe = account_id.strip().replace('/', '_').replace('\\', '_').replace('..', '_')
    if not safe:
        raise ValueError("Account id cannot be empty")
    # Token files are keyed case-insensitively, like registry lookups
    return safe.lower()
