"""Outlook.com (personal-consumer) backend."""
from typing import Optional

from calendar_mcp.auth.interfaces import CredentialProvider
from calendar_mcp.auth.msal_credentials import CONSUMERS_TENANT, MsalCredentialProvider
from calendar_mcp.providers.graph import GraphBackend


class OutlookComBackend(GraphBackend):
    """Graph backend for personal Microsoft accounts (outlook.com, hotmail.com, live.com)."""

    name = "outlook.com"

    def __init__(self, credentials: Optional[CredentialProvider] = None, **kwargs):
        # Personal accounts always sign in through the consumers tenant
        super().__init__(credentials or MsalCredentialProvider(tenant=CONSUMERS_TENANT), **kwargs)
