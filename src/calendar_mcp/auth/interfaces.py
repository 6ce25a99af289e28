"""Authentication interfaces.

Provider backends never talk to an identity platform themselves. They ask a
credential provider for a bearer token for one account, passing the account's
opaque provider settings and the scopes the call needs. "No token" is a
normal answer (the account needs re-enrollment) and is reported as ``None``,
never raised.
"""
from typing import Mapping, Optional, Protocol, Sequence


class CredentialProvider(Protocol):
    """Protocol for bearer-token sources.

    Implementations own their token cache and any locking around it; they
    are called concurrently from fan-out worker threads.

    Example:
        >>> token = provider.get_credential(account.provider_config, ['Mail.Read'], account.id)
        >>> if token is None:
        ...     print("re-enrollment required")
    """

    def get_credential(
        self,
        provider_config: Mapping[str, str],
        scopes: Sequence[str],
        account_id: str,
    ) -> Optional[str]:
        """Return a bearer token for the account, or None if none is cached.

        Args:
            provider_config: The account's opaque provider settings
            scopes: OAuth scopes the call requires
            account_id: Account whose token cache to use

        Returns:
            Access token string, or None when the account must re-enroll
        """
        ...


def get_config_value(provider_config: Mapping[str, str], name: str, default: Optional[str] = None) -> Optional[str]:
    """Look up a provider setting regardless of key spelling.

    ``tenant_id``, ``tenantId`` and ``TenantId`` all match ``name='tenant_id'``.

    Args:
        provider_config: Account provider settings
        name: Setting name in any spelling
        default: Value returned when the setting is missing or blank

    Returns:
        The setting value, or ``default``
    """
    wanted = _normalize_key(name)
    for key, value in provider_config.items():
        if _normalize_key(key) == wanted and value:
            return value
    return default


def _normalize_key(key: str) -> str:
    return key.replace('_', '').replace('-', '').lower()


__all__ = [
    'CredentialProvider',
    'get_config_value',
]
