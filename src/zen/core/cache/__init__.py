"""
Typed file-system cache with LRU eviction, TTL expiry and a crash-safe index.
"""

from zen.core.cache.manager import FileCacheManager, sanitize_key
from zen.core.cache.models import CacheConfig, CacheEntry, CacheInfo
from zen.core.cache.serializers import JSONSerializer, Serializer, StringSerializer

__all__ = [
    "CacheConfig",
    "CacheEntry",
    "CacheInfo",
    "FileCacheManager",
    "JSONSerializer",
    "Serializer",
    "StringSerializer",
    "sanitize_key",
]
