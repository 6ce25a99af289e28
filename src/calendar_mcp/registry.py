"""
Account registry.

The registry is the single source of truth for which accounts exist. It is
built once from configuration and is read-only afterwards: every lookup is a
pure read over an immutable tuple, so it is safe to share across fan-out
worker threads without locking. Reloading configuration means building a new
registry and swapping it in whole (see CalendarService.replace_registry).

Lookups by id, provider and domain are case-insensitive. Iteration order is
configuration order; the fan-out engine and routing policy use it as their
tie-break.
"""
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from calendar_mcp.config_schema import AccountConfig, CalendarMcpConfig
from calendar_mcp.errors import ConfigurationError, ErrorCode
from calendar_mcp.models import Account

logger = logging.getLogger(__name__)


class AccountRegistry:
    """
    Immutable, ordered collection of configured accounts.

    Args:
        accounts: Accounts in configuration order

    Raises:
        ConfigurationError: If two accounts share an id (case-insensitive)

    Example:
        >>> registry = AccountRegistry([Account('work', 'Work', 'microsoft365')])
        >>> registry.get_by_id('WORK').id
        'work'
    """

    def __init__(self, accounts: Iterable[Account] = ()):
        ordered: List[Account] = []
        by_id: Dict[str, Account] = {}
        positions: Dict[str, int] = {}

        for account in accounts:
            key = account.id.lower()
            if key in by_id:
                raise ConfigurationError(
                    f"Duplicate account id: {account.id}",
                    error_code=ErrorCode.DUPLICATE_ACCOUNT
                )
            by_id[key] = account
            positions[key] = len(ordered)
            ordered.append(account)

        self._accounts: Tuple[Account, ...] = tuple(ordered)
        self._by_id = by_id
        self._positions = positions
        logger.debug(f"Account registry built with {len(self._accounts)} account(s)")

    @classmethod
    def from_config(cls, config: CalendarMcpConfig) -> 'AccountRegistry':
        """Build a registry from a validated configuration."""
        return cls(account_from_config(entry) for entry in config.accounts)

    def __len__(self) -> int:
        return len(self._accounts)

    def __iter__(self):
        return iter(self._accounts)

    def get_all(self) -> List[Account]:
        return list(self._accounts)

    def get_enabled(self) -> List[Account]:
        return [a for a in self._accounts if a.enabled]

    def get_by_id(self, account_id: Optional[str]) -> Optional[Account]:
        """Return the account with this id (case-insensitive), or None."""
        if not account_id:
            return None
        return self._by_id.get(account_id.strip().lower())

    def get_by_provider(self, provider: str) -> List[Account]:
        """Accounts whose configured provider string matches (case-insensitive)."""
        wanted = provider.strip().lower()
        return [a for a in self._accounts if a.provider.strip().lower() == wanted]

    def get_by_domain(self, domain: str) -> List[Account]:
        """
        Accounts listing ``domain`` in their routing domains.

        Disabled accounts are included; callers that need enabled accounts
        filter themselves.
        """
        wanted = domain.strip().lstrip('@').lower()
        if not wanted:
            return []
        return [
            a for a in self._accounts
            if any(d.lower() == wanted for d in a.domains)
        ]

    def position_of(self, account_id: str) -> int:
        """
        Configuration position of an account, used as a sort tie-break.

        Unknown ids sort after every registered account.
        """
        return self._positions.get(account_id.lower(), len(self._accounts))


def account_from_config(entry: AccountConfig) -> Account:
    return Account(
        id=entry.id,
        display_name=entry.display_name or entry.id,
        provider=entry.provider,
        domains=tuple(entry.domains),
        enabled=entry.enabled,
        priority=entry.priority,
        provider_config=dict(entry.provider_config),
    )
