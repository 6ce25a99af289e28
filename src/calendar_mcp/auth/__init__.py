"""Credential providers used by the provider backends."""
from calendar_mcp.auth.interfaces import CredentialProvider, get_config_value
from calendar_mcp.auth.token_cache import TokenCacheStore
from calendar_mcp.auth.msal_credentials import MsalCredentialProvider
from calendar_mcp.auth.google_credentials import GoogleCredentialProvider

__all__ = [
    'CredentialProvider',
    'get_config_value',
    'TokenCacheStore',
    'MsalCredentialProvider',
    'GoogleCredentialProvider',
]
