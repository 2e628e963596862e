"""Injectable TTL cache used for buyer/property/match collections."""

from .ttl import CacheStats, TTLCache, get_or_fetch

__all__ = ["TTLCache", "CacheStats", "get_or_fetch"]
