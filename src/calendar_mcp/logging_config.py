"""
Logging configuration for calendar-mcp.

This module initializes the application's logging on startup so all
components share the same handlers and contextual fields (correlation_id,
account_id, operation).

Key Features:
    - Plain text and JSON formats
    - Rotating file handler under the data directory's log folder
    - Context-aware records (see logging_context)
    - Environment and runtime overrides

The console handler writes to stderr: stdout is reserved for command output
(JSON results from the CLI).

Usage:
    >>> from calendar_mcp.logging_config import init_logging
    >>>
    >>> init_logging()
    >>> init_logging(overrides={'level': 'DEBUG', 'format': 'json'})
    >>>
    >>> import logging
    >>> logger = logging.getLogger('calendar_mcp.service')
    >>> logger.info("This will include context automatically")
"""
import json
import logging
import logging.handlers
import os
import sys
from copy import deepcopy
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any

from calendar_mcp.logging_context import get_logging_context

ROOT_LOGGER_NAME = 'calendar_mcp'

DEFAULT_CONFIG = {
    'level': 'INFO',
    'format': 'plain',  # 'plain' or 'json'
    'handlers': {
        'console': {
            'enabled': True,
            'level': 'WARNING'
        },
        'file': {
            'enabled': False,
            'path': None,  # defaults to <data dir>/logs/calendar-mcp.log
            'level': 'INFO',
            'max_bytes': 10 * 1024 * 1024,  # 10MB
            'backup_count': 7
        }
    }
}

ENV_VAR_MAPPING = {
    'CALENDAR_MCP_LOG_LEVEL': ('level',),
    'CALENDAR_MCP_LOG_FORMAT': ('format',),
    'CALENDAR_MCP_LOG_FILE': ('handlers', 'file', 'path'),
}

PLAIN_FORMAT = '%(asctime)s %(levelname)-8s [%(correlation_id)s] [%(account_id)s] [%(component)s] %(message)s'


class JSONFormatter(logging.Formatter):
    """Formats log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'message': record.getMessage(),
            'component': getattr(record, 'component', record.name),
        }

        for field_name in ('correlation_id', 'account_id', 'operation'):
            value = getattr(record, field_name, None)
            if value not in (None, 'N/A'):
                log_data[field_name] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False)


class ContextFilter(logging.Filter):
    """Adds context fields from logging_context to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = get_logging_context()

        record.correlation_id = context.get('correlation_id', 'N/A')
        record.account_id = context.get('account_id', 'N/A')
        record.operation = context.get('operation', 'N/A')

        if not hasattr(record, 'component'):
            # Last part of the module path, e.g. 'fanout' from 'calendar_mcp.fanout'
            record.component = record.name.split('.')[-1]

        return True


def _merge_config(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge configuration dictionaries without mutating either."""
    result = deepcopy(base)

    for key, value in overrides.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_config(result[key], value)
        else:
            result[key] = value

    return result


def _apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """Apply CALENDAR_MCP_LOG_* environment variables to the configuration."""
    config = deepcopy(config)

    for env_var, path in ENV_VAR_MAPPING.items():
        env_value = os.environ.get(env_var)
        if env_value is None:
            continue

        current = config
        for key in path[:-1]:
            current = current.setdefault(key, {})
        current[path[-1]] = env_value

        # Setting a log file path implies the file handler is wanted
        if env_var == 'CALENDAR_MCP_LOG_FILE':
            config['handlers']['file']['enabled'] = True

    config['level'] = str(config.get('level', 'INFO')).upper()
    config['format'] = str(config.get('format', 'plain')).lower()
    return config


def _build_formatter(log_format: str) -> logging.Formatter:
    if log_format == 'json':
        return JSONFormatter()
    return logging.Formatter(fmt=PLAIN_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')


def _setup_handlers(logger: logging.Logger, config: Dict[str, Any], log_dir: Optional[Path]) -> None:
    handlers_config = config.get('handlers', {})
    log_format = config.get('format', 'plain')
    context_filter = ContextFilter()

    logger.handlers.clear()

    console_config = handlers_config.get('console', {})
    if console_config.get('enabled', True):
        console_level = console_config.get('level', config.get('level', 'INFO'))
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(getattr(logging, str(console_level).upper(), logging.INFO))
        console_handler.setFormatter(_build_formatter(log_format))
        console_handler.addFilter(context_filter)
        logger.addHandler(console_handler)

    file_config = handlers_config.get('file', {})
    if file_config.get('enabled', False):
        file_path = file_config.get('path')
        if file_path:
            file_path = Path(file_path)
        else:
            if log_dir is None:
                from calendar_mcp.paths import get_log_directory
                log_dir = get_log_directory()
            file_path = Path(log_dir) / 'calendar-mcp.log'

        file_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            str(file_path),
            maxBytes=file_config.get('max_bytes', 10 * 1024 * 1024),
            backupCount=file_config.get('backup_count', 7),
            encoding='utf-8'
        )
        file_level = file_config.get('level', config.get('level', 'INFO'))
        file_handler.setLevel(getattr(logging, str(file_level).upper(), logging.INFO))
        file_handler.setFormatter(_build_formatter(log_format))
        file_handler.addFilter(context_filter)
        logger.addHandler(file_handler)


def init_logging(
    config: Optional[Dict[str, Any]] = None,
    overrides: Optional[Dict[str, Any]] = None,
    log_dir: Optional[Path] = None
) -> Dict[str, Any]:
    """
    Initialize the application's logging configuration.

    Should be called once as the first step of application startup.

    Args:
        config: Optional logging section from the application config file
        overrides: Optional runtime overrides (e.g., {'level': 'DEBUG'})
        log_dir: Directory for the rotating log file when no explicit path is set

    Returns:
        The effective logging configuration

    Example:
        >>> init_logging(overrides={'level': 'DEBUG', 'format': 'json'})
    """
    effective = deepcopy(DEFAULT_CONFIG)

    if config:
        effective = _merge_config(effective, config)

    effective = _apply_env_overrides(effective)

    if overrides:
        effective = _merge_config(effective, overrides)
        effective['level'] = str(effective.get('level', 'INFO')).upper()

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(getattr(logging, effective['level'], logging.INFO))

    _setup_handlers(root_logger, effective, log_dir)

    root_logger.debug(
        f"Logging initialized: level={effective.get('level')}, format={effective.get('format')}"
    )
    return effective
