"""
Shared pytest fixtures for calendar-mcp tests.

- Account and registry fixtures (the three-account end-to-end fleet)
- A fake backend and resolver (see helpers.py)
- A service wired to the fake backend
"""
import pytest

from calendar_mcp.errors import BackendError
from calendar_mcp.fanout import FanOutEngine
from calendar_mcp.logging_context import clear_context
from calendar_mcp.models import Account, ProviderKind
from calendar_mcp.registry import AccountRegistry
from calendar_mcp.resolver import ProviderResolver
from calendar_mcp.service import CalendarService

from helpers import FakeBackend, FakeCredentials

# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def reset_logging_context():
    """Each test starts without leftover correlation/account context."""
    clear_context()
    yield
    clear_context()


@pytest.fixture
def accounts():
    """The three-account fleet used by the end-to-end scenarios."""
    return [
        Account('work', 'Work', 'microsoft365', domains=('corp.com',)),
        Account('personal', 'Personal', 'outlook.com', domains=('example.com',)),
        Account('disabled-acct', 'Old', 'google', domains=('corp.com',), enabled=False, priority=10),
    ]


@pytest.fixture
def registry(accounts):
    return AccountRegistry(accounts)


@pytest.fixture
def credentials(accounts):
    return FakeCredentials({account.id: f"token-{account.id}" for account in accounts})


@pytest.fixture
def backend(credentials):
    return FakeBackend(credentials)


@pytest.fixture
def resolver(backend):
    """Resolver mapping every provider kind to the same fake backend."""
    return ProviderResolver({kind: backend for kind in ProviderKind})


@pytest.fixture
def service(registry, resolver):
    return CalendarService(registry, resolver, FanOutEngine(max_workers=4, default_timeout=5))


@pytest.fixture
def backend_error():
    return BackendError("graph returned HTTP 503", status_code=503)
