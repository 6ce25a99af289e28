"""
Configuration Schema

This module defines the Pydantic schema for the calendar-mcp configuration
file. The file holds one ``calendar_mcp`` section:

    calendar_mcp:
      request_timeout_seconds: 30
      max_workers: 8
      logging:
        level: INFO
      accounts:
        - id: work
          display_name: Work Account
          provider: microsoft365
          domains: [corp.com]
          priority: 1
          provider_config:
            tenant_id: ...
            client_id: ...

Account keys also accept the camelCase and PascalCase spellings used by
.NET-style appsettings files (``displayName``/``DisplayName``,
``ProviderConfig``, ...), so an existing ``appsettings.json`` loads as-is.
"""
from typing import Optional, Dict, Any, List

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


def _aliases(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class AccountConfig(BaseModel):
    """One entry of the ``accounts`` list."""
    id: str = Field(..., validation_alias=_aliases('id', 'Id'), description="Unique account identifier")
    display_name: Optional[str] = Field(
        default=None,
        validation_alias=_aliases('display_name', 'displayName', 'DisplayName'),
        description="Human label (defaults to the id)"
    )
    provider: str = Field(
        ...,
        validation_alias=_aliases('provider', 'Provider'),
        description="Provider kind, e.g. microsoft365, outlook.com, google"
    )
    domains: List[str] = Field(
        default_factory=list,
        validation_alias=_aliases('domains', 'Domains'),
        description="Email domains used for smart routing"
    )
    enabled: bool = Field(default=True, validation_alias=_aliases('enabled', 'Enabled'))
    priority: int = Field(
        default=0,
        validation_alias=_aliases('priority', 'Priority'),
        description="Higher wins ambiguous routing decisions"
    )
    provider_config: Dict[str, str] = Field(
        default_factory=dict,
        validation_alias=_aliases('provider_config', 'providerConfig', 'ProviderConfig'),
        description="Opaque provider settings (tenant id, client id, ...)"
    )

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    @field_validator('id', 'provider')
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Validate required strings are non-empty after stripping."""
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator('domains')
    @classmethod
    def validate_domains(cls, v: List[str]) -> List[str]:
        """Normalize domains: strip, drop a leading '@', reject blanks."""
        normalized = []
        for domain in v:
            cleaned = str(domain).strip().lstrip('@')
            if not cleaned:
                raise ValueError(f"Domain cannot be empty: {v}")
            if '@' in cleaned or ' ' in cleaned:
                raise ValueError(f"Invalid domain: {domain}")
            normalized.append(cleaned)
        return normalized

    @field_validator('provider_config', mode='before')
    @classmethod
    def stringify_provider_config(cls, v: Any) -> Any:
        """Provider settings are passed through as strings."""
        if isinstance(v, dict):
            return {str(key): '' if value is None else str(value) for key, value in v.items()}
        return v


class LoggingConfig(BaseModel):
    """Logging section, passed to logging_config.init_logging."""
    level: str = Field(default="INFO", description="Root log level")
    format: str = Field(default="plain", description="'plain' or 'json'")
    file: Optional[str] = Field(default=None, description="Log file path (enables the file handler)")

    model_config = ConfigDict(extra="forbid")

    @field_validator('level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f"Invalid log level: {v}")
        return level

    @field_validator('format')
    @classmethod
    def validate_format(cls, v: str) -> str:
        fmt = v.lower()
        if fmt not in ('plain', 'json'):
            raise ValueError(f"Log format must be 'plain' or 'json', got {v}")
        return fmt

    def to_logging_overrides(self) -> Dict[str, Any]:
        overrides: Dict[str, Any] = {'level': self.level, 'format': self.format}
        if self.file:
            overrides['handlers'] = {'file': {'enabled': True, 'path': self.file}}
        return overrides


class CalendarMcpConfig(BaseModel):
    """
    Root configuration.

    Duplicate account ids (compared case-insensitively) are rejected here, so
    a registry can never be built from an ambiguous account list.
    """
    accounts: List[AccountConfig] = Field(
        default_factory=list,
        validation_alias=_aliases('accounts', 'Accounts')
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        validation_alias=_aliases('request_timeout_seconds', 'requestTimeoutSeconds', 'RequestTimeoutSeconds'),
        description="Deadline for one fan-out; slower accounts are reported as timed out"
    )
    max_workers: int = Field(
        default=8,
        validation_alias=_aliases('max_workers', 'maxWorkers', 'MaxWorkers'),
        description="Thread pool size for fan-out"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        validation_alias=_aliases('logging', 'Logging')
    )

    # Unknown sections (e.g. a Telemetry block) are ignored
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator('request_timeout_seconds')
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"request_timeout_seconds must be positive, got {v}")
        return v

    @field_validator('max_workers')
    @classmethod
    def validate_max_workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_workers must be at least 1, got {v}")
        return v

    @model_validator(mode='after')
    def validate_unique_ids(self) -> 'CalendarMcpConfig':
        seen = set()
        for account in self.accounts:
            key = account.id.lower()
            if key in seen:
                raise ValueError(f"Duplicate account id: {account.id}")
            seen.add(key)
        return self
