"""
Tests for the provider resolver.
"""
import pytest

from calendar_mcp.errors import UnknownProviderError
from calendar_mcp.models import ProviderKind
from calendar_mcp.providers.google import GoogleBackend
from calendar_mcp.providers.m365 import M365Backend
from calendar_mcp.providers.outlook_com import OutlookComBackend
from calendar_mcp.resolver import PROVIDER_SYNONYMS, ProviderResolver


@pytest.fixture
def default_resolver(tmp_path):
    return ProviderResolver.default(token_dir=tmp_path)


class TestKindFor:
    """Test provider string to kind mapping."""

    @pytest.mark.parametrize('provider,kind', [
        ('microsoft365', ProviderKind.ORGANIZATIONAL),
        ('M365', ProviderKind.ORGANIZATIONAL),
        (' organizational ', ProviderKind.ORGANIZATIONAL),
        ('outlook.com', ProviderKind.PERSONAL_CONSUMER),
        ('Outlook', ProviderKind.PERSONAL_CONSUMER),
        ('hotmail', ProviderKind.PERSONAL_CONSUMER),
        ('personal-consumer', ProviderKind.PERSONAL_CONSUMER),
        ('google', ProviderKind.WORKSPACE),
        ('Gmail', ProviderKind.WORKSPACE),
        ('Google Workspace', ProviderKind.WORKSPACE),
        ('workspace', ProviderKind.WORKSPACE),
    ])
    def test_synonyms(self, provider, kind):
        assert ProviderResolver.kind_for(provider) == kind

    @pytest.mark.parametrize('provider', ['exchange', '', 'google-workspace', 'microsoft'])
    def test_unknown_kind_rejected(self, provider):
        with pytest.raises(UnknownProviderError):
            ProviderResolver.kind_for(provider)

    def test_every_kind_has_a_synonym(self):
        assert set(PROVIDER_SYNONYMS.values()) == set(ProviderKind)


class TestResolve:
    """Test backend resolution."""

    def test_default_backends(self, default_resolver):
        assert isinstance(default_resolver.resolve('microsoft365'), M365Backend)
        assert isinstance(default_resolver.resolve('outlook.com'), OutlookComBackend)
        assert isinstance(default_resolver.resolve('google'), GoogleBackend)

    def test_synonyms_share_backend(self, default_resolver):
        assert default_resolver.resolve('m365') is default_resolver.resolve('Microsoft365')

    def test_outlook_uses_consumers_tenant(self, default_resolver):
        backend = default_resolver.resolve('outlook.com')
        authority = backend.credentials.authority_for({'TenantId': 'ignored'})
        assert authority.endswith('/consumers')

    def test_m365_uses_account_tenant(self, default_resolver):
        backend = default_resolver.resolve('microsoft365')
        assert backend.credentials.authority_for({'tenant_id': 'tenant-1'}).endswith('/tenant-1')
        assert backend.credentials.authority_for({}).endswith('/organizations')

    def test_unknown_provider(self, default_resolver):
        with pytest.raises(UnknownProviderError) as exc_info:
            default_resolver.resolve('exchange')
        assert 'exchange' in str(exc_info.value)

    def test_missing_backend_for_kind(self, backend):
        resolver = ProviderResolver({ProviderKind.WORKSPACE: backend})
        with pytest.raises(UnknownProviderError):
            resolver.resolve('microsoft365')

    def test_http_timeout_passed_to_backends(self, tmp_path):
        resolver = ProviderResolver.default(token_dir=tmp_path, http_timeout=7)
        assert resolver.resolve('google').http_timeout == 7
