"""
calendar-mcp: one mail and calendar interface over many accounts.

Accounts across Microsoft 365, Outlook.com and Google are read together
(fan-out with per-account failure reporting) and written to one at a time
(explicitly, or chosen by recipient domain).
"""
from calendar_mcp.errors import (
    BackendError,
    CalendarMcpError,
    ConfigurationError,
    ErrorCode,
    NoCredentialError,
    RoutingError,
    UnknownAccountError,
    UnknownProviderError,
)
from calendar_mcp.fanout import CancellationToken, FanOutEngine, FanOutStatus, MergedResult
from calendar_mcp.models import (
    Account,
    CalendarEvent,
    CalendarInfo,
    EmailMessage,
    EventUpdate,
    ProviderKind,
)
from calendar_mcp.registry import AccountRegistry
from calendar_mcp.resolver import ProviderResolver
from calendar_mcp.routing import RoutingPolicy
from calendar_mcp.service import CalendarService, ReadResult, WriteOutcome

__version__ = '0.1.0'

__all__ = [
    'Account',
    'AccountRegistry',
    'BackendError',
    'CalendarEvent',
    'CalendarInfo',
    'CalendarMcpError',
    'CalendarService',
    'CancellationToken',
    'ConfigurationError',
    'EmailMessage',
    'ErrorCode',
    'EventUpdate',
    'FanOutEngine',
    'FanOutStatus',
    'MergedResult',
    'NoCredentialError',
    'ProviderKind',
    'ProviderResolver',
    'ReadResult',
    'RoutingError',
    'RoutingPolicy',
    'UnknownAccountError',
    'UnknownProviderError',
    'WriteOutcome',
]
