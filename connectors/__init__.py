"""Connector package exports."""
from .base import BadRequestError, ConnectorError, RateLimitError, UpstreamError
from .supabase_store import SupabaseOrderStore

__all__ = [
    "BadRequestError",
    "ConnectorError",
    "RateLimitError",
    "SupabaseOrderStore",
    "UpstreamError",
]
