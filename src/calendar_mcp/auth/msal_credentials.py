"""Microsoft identity platform credentials via MSAL.

Used by the Microsoft 365 (organizational) and Outlook.com (personal-consumer)
backends. Tokens are acquired silently from a per-account MSAL token cache
file; accounts are enrolled out of band (interactive sign-in is not part of
this package).

Authority:
    - Microsoft 365: ``https://login.microsoftonline.com/<tenant_id>`` where
      the tenant comes from the account's provider settings
      (``common`` if absent)
    - Outlook.com: always the ``consumers`` tenant
"""
import logging
from typing import Mapping, Optional, Sequence

import msal

from calendar_mcp.auth.interfaces import get_config_value
from calendar_mcp.auth.token_cache import TokenCacheStore

logger = logging.getLogger(__name__)

AUTHORITY_BASE = 'https://login.microsoftonline.com'
CONSUMERS_TENANT = 'consumers'


class MsalCredentialProvider:
    """Silent token acquisition from per-account MSAL caches.

    Attributes:
        store: Token cache file store
        tenant: Fixed tenant (e.g. 'consumers'); None reads ``tenant_id``
            from the account's provider settings
        default_tenant: Tenant used when the settings have none

    Example:
        >>> provider = MsalCredentialProvider(TokenCacheStore(suffix='.msal.json'))
        >>> token = provider.get_credential({'ClientId': '...', 'TenantId': '...'},
        ...                                 ['Mail.Read'], 'work')
    """

    def __init__(
        self,
        store: Optional[TokenCacheStore] = None,
        tenant: Optional[str] = None,
        default_tenant: str = 'common',
    ):
        self.store = store or TokenCacheStore(suffix='.msal.json')
        self.tenant = tenant
        self.default_tenant = default_tenant

    def authority_for(self, provider_config: Mapping[str, str]) -> str:
        tenant = self.tenant or get_config_value(provider_config, 'tenant_id', self.default_tenant)
        return f"{AUTHORITY_BASE}/{tenant}"

    def _build_app(self, client_id: str, authority: str, cache: msal.SerializableTokenCache):
        return msal.PublicClientApplication(
            client_id=client_id,
            authority=authority,
            token_cache=cache,
        )

    def get_credential(
        self,
        provider_config: Mapping[str, str],
        scopes: Sequence[str],
        account_id: str,
    ) -> Optional[str]:
        """Return a cached or silently refreshed access token, or None.

        Args:
            provider_config: Account settings (``client_id`` required, ``tenant_id`` optional)
            scopes: Graph scopes, e.g. ['Mail.Read']
            account_id: Account whose cache file to use

        Returns:
            Access token, or None when the cache has no usable token
        """
        client_id = get_config_value(provider_config, 'client_id')
        if not client_id:
            logger.warning(f"Account '{account_id}' has no client_id in provider_config")
            return None

        with self.store.lock_for(account_id):
            serialized = self.store.read(account_id)
            if serialized is None:
                logger.debug(f"No MSAL token cache for account '{account_id}'")
                return None

            cache = msal.SerializableTokenCache()
            try:
                cache.deserialize(serialized)
            except ValueError as e:
                logger.warning(f"Invalid MSAL token cache for account '{account_id}': {e}")
                return None
            app = self._build_app(client_id, self.authority_for(provider_config), cache)

            accounts = app.get_accounts()
            if not accounts:
                logger.debug(f"MSAL cache for account '{account_id}' holds no signed-in account")
                return None

            result = app.acquire_token_silent(scopes=list(scopes), account=accounts[0])

            # Silent refresh may have rotated the refresh token
            if cache.has_state_changed:
                self.store.write(account_id, cache.serialize())

        if not result or 'access_token' not in result:
            if result and 'error' in result:
                logger.warning(
                    f"Silent token acquisition failed for account '{account_id}': "
                    f"{result.get('error')}: {result.get('error_description', '')}"
                )
            return None

        return result['access_token']
