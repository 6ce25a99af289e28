"""Microsoft 365 (organizational) backend."""
from typing import Optional

from calendar_mcp.auth.interfaces import CredentialProvider
from calendar_mcp.auth.msal_credentials import MsalCredentialProvider
from calendar_mcp.providers.graph import GraphBackend


class M365Backend(GraphBackend):
    """
    Graph backend for work and school accounts.

    Credentials use the tenant from the account's ``tenant_id`` setting, so
    accounts in different tenants each authenticate against their own
    authority.
    """

    name = "microsoft365"

    def __init__(self, credentials: Optional[CredentialProvider] = None, **kwargs):
        super().__init__(credentials or MsalCredentialProvider(default_tenant='organizations'), **kwargs)
