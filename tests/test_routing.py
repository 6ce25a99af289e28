"""
Tests for smart routing.
"""
import pytest

from calendar_mcp.errors import RoutingError
from calendar_mcp.models import Account
from calendar_mcp.registry import AccountRegistry
from calendar_mcp.routing import RoutingPolicy, routing_key_for_recipient


def _policy(*accounts):
    return RoutingPolicy(AccountRegistry(accounts))


class TestRoutingKey:
    """Test recipient domain extraction."""

    @pytest.mark.parametrize('address,expected', [
        ('user@foo.com', 'foo.com'),
        ('User@FOO.Com', 'foo.com'),
        ('Jane Doe <jane@example.com>', 'example.com'),
        (' user@foo.com ', 'foo.com'),
    ])
    def test_domain_extracted(self, address, expected):
        assert routing_key_for_recipient(address) == expected

    @pytest.mark.parametrize('address', [None, '', 'not-an-address', 'user@'])
    def test_invalid_address(self, address):
        assert routing_key_for_recipient(address) is None


class TestRoutingPolicy:
    """Test account selection."""

    def test_single_domain_match(self):
        policy = _policy(
            Account('a', 'A', 'google', domains=('other.com',)),
            Account('b', 'B', 'microsoft365', domains=('foo.com',)),
        )
        assert policy.select('foo.com').id == 'b'

    def test_highest_priority_wins(self):
        policy = _policy(
            Account('A', 'A', 'microsoft365', domains=('foo.com',), priority=1),
            Account('B', 'B', 'google', domains=('foo.com',), priority=5),
        )
        assert policy.select_for_recipient('user@foo.com').id == 'B'

    def test_priority_tie_goes_to_registry_order(self):
        policy = _policy(
            Account('first', 'First', 'microsoft365', domains=('foo.com',), priority=3),
            Account('second', 'Second', 'google', domains=('foo.com',), priority=3),
        )
        assert policy.select('foo.com').id == 'first'

    def test_fallback_to_first_enabled(self):
        policy = _policy(
            Account('off', 'Off', 'google', enabled=False),
            Account('C', 'C', 'microsoft365', domains=('foo.com',)),
        )
        assert policy.select_for_recipient('user@bar.com').id == 'C'

    def test_no_routing_key_falls_back(self):
        policy = _policy(Account('only', 'Only', 'google'))
        assert policy.select(None).id == 'only'

    def test_disabled_domain_match_ignored(self):
        policy = _policy(
            Account('work', 'Work', 'microsoft365', domains=('corp.com',)),
            Account('old', 'Old', 'google', domains=('corp.com',), enabled=False, priority=10),
        )
        assert policy.select('corp.com').id == 'work'

    def test_no_enabled_accounts(self):
        policy = _policy(Account('off', 'Off', 'google', enabled=False))
        with pytest.raises(RoutingError):
            policy.select('foo.com')

    def test_empty_registry(self):
        with pytest.raises(RoutingError):
            _policy().select(None)

    def test_deterministic(self):
        policy = _policy(
            Account('x', 'X', 'google', domains=('foo.com',), priority=2),
            Account('y', 'Y', 'google', domains=('foo.com',), priority=2),
        )
        assert {policy.select('foo.com').id for _ in range(20)} == {'x'}
