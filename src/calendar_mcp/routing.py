"""
Smart routing: choose one account for a write that names no account.

Policy:
    1. Accounts listing the routing key (recipient domain) among their domains
    2. One match wins; several go to the highest priority, ties to the one
       registered first
    3. No match falls back to the first enabled account
    4. No enabled account at all is a RoutingError

Only enabled accounts take part. The policy reads the registry and nothing
else, so the same registry and key always give the same account.
"""
import logging
from typing import Optional

from calendar_mcp.errors import RoutingError
from calendar_mcp.models import Account
from calendar_mcp.registry import AccountRegistry

logger = logging.getLogger(__name__)


def routing_key_for_recipient(address: Optional[str]) -> Optional[str]:
    """
    Extract the lowercased domain of an email address.

    Examples:
        >>> routing_key_for_recipient('User@Corp.com')
        'corp.com'
        >>> routing_key_for_recipient('Jane <jane@example.com>')
        'example.com'
        >>> routing_key_for_recipient('not-an-address') is None
        True
    """
    if not address:
        return None
    address = address.strip()
    if '<' in address and address.endswith('>'):
        address = address[address.rindex('<') + 1:-1]
    _, sep, domain = address.rpartition('@')
    domain = domain.strip().lower()
    if not sep or not domain:
        return None
    return domain


class RoutingPolicy:
    """Selects the account for writes without an explicit target."""

    def __init__(self, registry: AccountRegistry):
        self.registry = registry

    def select(self, routing_key: Optional[str]) -> Account:
        """
        Pick the account for a routing key (a domain, or None).

        Raises:
            RoutingError: If no enabled account exists
        """
        if routing_key:
            matches = [a for a in self.registry.get_by_domain(routing_key) if a.enabled]
            if matches:
                # max() keeps the first of equal keys, so ties go to registry order
                chosen = max(matches, key=lambda a: a.priority)
                logger.info(
                    f"Routing '{routing_key}' to account '{chosen.id}' "
                    f"({len(matches)} domain match(es), priority {chosen.priority})"
                )
                return chosen

        enabled = self.registry.get_enabled()
        if not enabled:
            raise RoutingError("No enabled account available to route the request")

        chosen = enabled[0]
        logger.info(f"No domain match for '{routing_key}'; falling back to account '{chosen.id}'")
        return chosen

    def select_for_recipient(self, address: Optional[str]) -> Account:
        return self.select(routing_key_for_recipient(address))
