"""
Provider resolver: map a provider-kind string to its backend.

Configuration spells provider kinds several ways ("microsoft365", "m365",
"Google Workspace", ...). Every accepted spelling is listed in
PROVIDER_SYNONYMS; anything else is rejected with UnknownProviderError. There
is no default backend: a misspelled kind must never send one account's
request through another provider's credentials.
"""
import logging
from pathlib import Path
from typing import Dict, Mapping, Optional

from calendar_mcp.auth.google_credentials import GoogleCredentialProvider
from calendar_mcp.auth.msal_credentials import CONSUMERS_TENANT, MsalCredentialProvider
from calendar_mcp.auth.token_cache import TokenCacheStore
from calendar_mcp.errors import UnknownProviderError
from calendar_mcp.models import ProviderKind
from calendar_mcp.providers.base import ProviderBackend
from calendar_mcp.providers.google import GoogleBackend
from calendar_mcp.providers.m365 import M365Backend
from calendar_mcp.providers.outlook_com import OutlookComBackend

logger = logging.getLogger(__name__)

# Accepted spellings (compared trimmed and lowercased)
PROVIDER_SYNONYMS: Dict[str, ProviderKind] = {
    'microsoft365': ProviderKind.ORGANIZATIONAL,
    'm365': ProviderKind.ORGANIZATIONAL,
    'organizational': ProviderKind.ORGANIZATIONAL,
    'outlook.com': ProviderKind.PERSONAL_CONSUMER,
    'outlook': ProviderKind.PERSONAL_CONSUMER,
    'hotmail': ProviderKind.PERSONAL_CONSUMER,
    'personal-consumer': ProviderKind.PERSONAL_CONSUMER,
    'google': ProviderKind.WORKSPACE,
    'gmail': ProviderKind.WORKSPACE,
    'google workspace': ProviderKind.WORKSPACE,
    'workspace': ProviderKind.WORKSPACE,
}


class ProviderResolver:
    """
    Looks up the backend for an account's provider kind.

    Args:
        backends: One backend per provider kind

    Example:
        >>> resolver = ProviderResolver.default()
        >>> resolver.resolve('M365').name
        'microsoft365'
        >>> resolver.resolve('exchange')
        Traceback (most recent call last):
        ...
        UnknownProviderError: Unknown provider kind: 'exchange'
    """

    def __init__(self, backends: Mapping[ProviderKind, ProviderBackend]):
        self._backends: Dict[ProviderKind, ProviderBackend] = dict(backends)

    @classmethod
    def default(cls, token_dir: Optional[Path] = None, http_timeout: Optional[float] = None) -> 'ProviderResolver':
        """
        Build the standard resolver: Graph for both Microsoft kinds, REST for Google.

        Args:
            token_dir: Directory holding per-account token caches (default: data directory)
            http_timeout: Per-request HTTP timeout in seconds
        """
        kwargs = {} if http_timeout is None else {'http_timeout': http_timeout}
        msal_store = TokenCacheStore(token_dir, suffix='.msal.json')
        google_store = TokenCacheStore(token_dir, suffix='.google.json')
        return cls({
            ProviderKind.ORGANIZATIONAL: M365Backend(
                MsalCredentialProvider(msal_store, default_tenant='organizations'), **kwargs
            ),
            ProviderKind.PERSONAL_CONSUMER: OutlookComBackend(
                MsalCredentialProvider(msal_store, tenant=CONSUMERS_TENANT), **kwargs
            ),
            ProviderKind.WORKSPACE: GoogleBackend(GoogleCredentialProvider(google_store), **kwargs),
        })

    @staticmethod
    def kind_for(provider: str) -> ProviderKind:
        """
        Map a configured provider string to its kind.

        Raises:
            UnknownProviderError: If the string is not a recognized synonym
        """
        kind = PROVIDER_SYNONYMS.get((provider or '').strip().lower())
        if kind is None:
            raise UnknownProviderError(provider)
        return kind

    def resolve(self, provider: str) -> ProviderBackend:
        """
        Return the backend for a provider string.

        Raises:
            UnknownProviderError: If the string is unrecognized or its kind has no backend
        """
        kind = self.kind_for(provider)
        backend = self._backends.get(kind)
        if backend is None:
            logger.error(f"No backend registered for provider kind '{kind.value}'")
            raise UnknownProviderError(provider)
        return backend
