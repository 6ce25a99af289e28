"""Provider backends: one per provider kind, all implementing ProviderBackend."""
from calendar_mcp.providers.base import ProviderBackend, apply_date_bound
from calendar_mcp.providers.graph import GraphBackend
from calendar_mcp.providers.m365 import M365Backend
from calendar_mcp.providers.outlook_com import OutlookComBackend
from calendar_mcp.providers.google import GoogleBackend

__all__ = [
    'ProviderBackend',
    'apply_date_bound',
    'GraphBackend',
    'M365Backend',
    'OutlookComBackend',
    'GoogleBackend',
]
