"""Google credentials via google-auth.

Each Google account has an authorized-user JSON document in its token cache
file (the format written by ``Credentials.to_json()``). Expired tokens are
refreshed with the stored refresh token and written back.
"""
import json
import logging
from typing import Mapping, Optional, Sequence

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials

from calendar_mcp.auth.interfaces import get_config_value
from calendar_mcp.auth.token_cache import TokenCacheStore

logger = logging.getLogger(__name__)


class GoogleCredentialProvider:
    """Loads and refreshes per-account Google OAuth credentials.

    ``client_id``/``client_secret`` from the account's provider settings
    fill in values missing from the stored document.
    """

    def __init__(self, store: Optional[TokenCacheStore] = None):
        self.store = store or TokenCacheStore(suffix='.google.json')

    def get_credential(
        self,
        provider_config: Mapping[str, str],
        scopes: Sequence[str],
        account_id: str,
    ) -> Optional[str]:
        """Return a valid access token for the account, or None.

        Args:
            provider_config: Account settings (client id/secret)
            scopes: Google API scopes
            account_id: Account whose cache file to use

        Returns:
            Access token, or None when there is no usable credential
        """
        with self.store.lock_for(account_id):
            serialized = self.store.read(account_id)
            if serialized is None:
                logger.debug(f"No Google credential file for account '{account_id}'")
                return None

            try:
                info = json.loads(serialized)
            except json.JSONDecodeError as e:
                logger.warning(f"Invalid Google credential file for account '{account_id}': {e}")
                return None

            for key in ('client_id', 'client_secret'):
                if not info.get(key):
                    value = get_config_value(provider_config, key)
                    if value:
                        info[key] = value

            try:
                credentials = Credentials.from_authorized_user_info(info, scopes=list(scopes))
            except ValueError as e:
                logger.warning(f"Incomplete Google credential for account '{account_id}': {e}")
                return None

            if credentials.valid:
                return credentials.token

            if not credentials.refresh_token:
                logger.warning(f"Google credential for account '{account_id}' expired and has no refresh token")
                return None

            try:
                credentials.refresh(Request())
            except RefreshError as e:
                logger.warning(f"Google token refresh failed for account '{account_id}': {e}")
                return None

            self.store.write(account_id, credentials.to_json())
            logger.info(f"Refreshed Google token for account '{account_id}'")
            return credentials.token
