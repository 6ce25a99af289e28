"""
Configuration Loader

This module loads the calendar-mcp configuration file, applies environment
variable overrides and validates the result against the Pydantic schema in
config_schema.py.

The file is YAML. JSON is a subset of YAML, so an ``appsettings.json`` written
for a .NET host loads through the same path. Settings live under a
``calendar_mcp`` (or ``CalendarMcp``) section; a file without either section
is read as the section itself.

Environment Variable Overrides:
    CALENDAR_MCP_REQUEST_TIMEOUT -> request_timeout_seconds
    CALENDAR_MCP_MAX_WORKERS     -> max_workers
    CALENDAR_MCP_LOG_LEVEL       -> logging.level

Usage:
    >>> from calendar_mcp.config_loader import load_config
    >>> config = load_config('~/.calendar-mcp/config.yaml')
    >>> print([a.id for a in config.accounts])
"""
import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Union

import yaml
from pydantic import ValidationError

from calendar_mcp.config_schema import CalendarMcpConfig
from calendar_mcp.errors import ConfigurationError, ErrorCode
from calendar_mcp.paths import get_config_file_path

logger = logging.getLogger(__name__)

SECTION_KEYS = ('calendar_mcp', 'CalendarMcp')

# env var -> (path in section, converter)
ENV_OVERRIDES = {
    'CALENDAR_MCP_REQUEST_TIMEOUT': (('request_timeout_seconds',), float),
    'CALENDAR_MCP_MAX_WORKERS': (('max_workers',), int),
    'CALENDAR_MCP_LOG_LEVEL': (('logging', 'level'), str),
}

# Section keys the env overrides write to, with the spellings that may
# already be present in the file
_KEY_SPELLINGS = {
    'request_timeout_seconds': ('request_timeout_seconds', 'requestTimeoutSeconds', 'RequestTimeoutSeconds'),
    'max_workers': ('max_workers', 'maxWorkers', 'MaxWorkers'),
    'logging': ('logging', 'Logging'),
}


class ConfigLoader:
    """
    Loader for one calendar-mcp configuration file.

    Args:
        config_path: Path to the configuration file (default: the data
            directory's config.yaml)

    Raises:
        ConfigurationError: If the file is missing, not valid YAML, or fails
            validation

    Example:
        >>> loader = ConfigLoader('config.yaml')
        >>> config = loader.load()
        >>> config.request_timeout_seconds
        30.0
    """

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        self.config_path = Path(config_path).expanduser() if config_path else get_config_file_path()
        if not self.config_path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {self.config_path}",
                error_code=ErrorCode.CONFIG_MISSING
            )

    def _read_file(self) -> Dict[str, Any]:
        """
        Parse the file with yaml.safe_load and return the root mapping.

        Raises:
            ConfigurationError: If the file cannot be read, is invalid YAML,
                or the root element is not a mapping
        """
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                raw_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"YAML parse error in {self.config_path}: {e}") from e
        except IOError as e:
            raise ConfigurationError(f"Error reading configuration file {self.config_path}: {e}") from e

        if raw_data is None:
            return {}

        if not isinstance(raw_data, dict):
            raise ConfigurationError(
                f"Configuration file {self.config_path} root must be a mapping (dict), "
                f"got {type(raw_data).__name__}"
            )
        return raw_data

    @staticmethod
    def extract_section(raw_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Return the calendar-mcp section of a parsed file.

        Raises:
            ConfigurationError: If the section is present but not a mapping
        """
        for key in SECTION_KEYS:
            if key in raw_data:
                section = raw_data[key]
                if section is None:
                    return {}
                if not isinstance(section, dict):
                    raise ConfigurationError(
                        f"Section '{key}' must be a mapping, got {type(section).__name__}"
                    )
                return dict(section)
        return dict(raw_data)

    @staticmethod
    def _apply_env_overrides(section: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply CALENDAR_MCP_* environment variables to the section.

        Raises:
            ConfigurationError: If a numeric override cannot be converted
        """
        applied = []
        for env_var, (path, convert) in ENV_OVERRIDES.items():
            env_value = os.environ.get(env_var)
            if env_value is None or env_value == '':
                continue

            try:
                value = convert(env_value)
            except ValueError:
                raise ConfigurationError(
                    f"Environment variable {env_var} must be a {convert.__name__}, got: {env_value}"
                )

            current = section
            for key in path[:-1]:
                existing = next((k for k in _KEY_SPELLINGS.get(key, (key,)) if k in current), key)
                child = current.get(existing)
                child = dict(child) if isinstance(child, dict) else {}
                current[existing] = child
                current = child

            leaf = path[-1]
            for spelling in _KEY_SPELLINGS.get(leaf, (leaf,)):
                current.pop(spelling, None)
            current[leaf] = value
            applied.append(f"{'.'.join(path)}={value}")

        if applied:
            logger.info(f"Applied {len(applied)} environment variable overrides: {', '.join(applied)}")
        return section

    def load(self) -> CalendarMcpConfig:
        """
        Load and validate the configuration file.

        Environment variable overrides are applied before validation.

        Returns:
            Validated CalendarMcpConfig instance

        Raises:
            ConfigurationError: If parsing or validation fails
        """
        logger.info(f"Loading configuration from {self.config_path}")
        section = self.extract_section(self._read_file())
        section = self._apply_env_overrides(section)
        config = self.load_from_dict(section)
        logger.info(f"Configuration loaded: {len(config.accounts)} account(s)")
        return config

    @staticmethod
    def load_from_dict(config_dict: Dict[str, Any]) -> CalendarMcpConfig:
        """
        Validate configuration from a dictionary (the section contents).

        This is useful for testing or programmatic configuration.

        Raises:
            ConfigurationError: If schema validation fails
        """
        try:
            return CalendarMcpConfig.model_validate(config_dict)
        except ValidationError as e:
            error_msg = f"Configuration validation failed: {e}"
            logger.error(error_msg)
            code = ErrorCode.DUPLICATE_ACCOUNT if 'Duplicate account id' in str(e) else ErrorCode.CONFIG_INVALID
            raise ConfigurationError(error_msg, error_code=code) from e


def load_config(config_path: Optional[Union[str, Path]] = None) -> CalendarMcpConfig:
    """
    Load the configuration file at ``config_path`` (default: data directory).

    Raises:
        ConfigurationError: If the file is missing or invalid
    """
    return ConfigLoader(config_path).load()
