"""
Data models for the file-system cache.

IndexEntry and IndexStats mirror the on-disk ``metadata/index.json`` schema:

    {"entries": {key: {path, size, created_at, last_access_at, ttl_seconds,
                       checksum}},
     "stats": {total_size, entry_count, hit_count, miss_count}}
"""

from __future__ import annotations

import time
from datetime import datetime
from pathlib import Path
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field, field_validator

T = TypeVar("T")


class CacheConfig(BaseModel):
    """Cache parameters (also used as the ``cache`` section of zen's config)."""

    base_path: str = Field(default="~/.zen/cache", description="Cache root directory")
    size_limit_mb: float = Field(default=100, gt=0, description="Maximum total size in MB")
    default_ttl: float = Field(
        default=24 * 3600, ge=0, description="Default entry TTL in seconds (0 = never)"
    )
    cleanup_interval: float = Field(
        default=3600, ge=0, description="Seconds between background cleanups (0 = off)"
    )
    # Entries are stored as raw serializer output; compressed storage is not implemented.
    compression: bool = Field(default=False, description="Compress stored entries (unsupported)")

    @field_validator("compression")
    @classmethod
    def validate_compression(cls, v: bool) -> bool:
        if v:
            raise ValueError("cache compression is not supported")
        return v

    def resolved_path(self) -> Path:
        return Path(self.base_path).expanduser()

    @property
    def size_limit_bytes(self) -> int:
        return int(self.size_limit_mb * 1024 * 1024)


class IndexEntry(BaseModel):
    """One entry of the on-disk index. Times are epoch seconds."""

    path: str
    size: int = Field(ge=0)
    created_at: float
    last_access_at: float
    ttl_seconds: float = 0
    checksum: str = ""
    # Monotonic insertion sequence, tie-breaker for LRU ordering.
    seq: int = 0

    def expired(self, now: float | None = None) -> bool:
        if self.ttl_seconds <= 0:
            return False
        return (now if now is not None else time.time()) - self.created_at >= self.ttl_seconds


class IndexStats(BaseModel):
    total_size: int = 0
    entry_count: int = 0
    hit_count: int = 0
    miss_count: int = 0


class CacheIndex(BaseModel):
    entries: dict[str, IndexEntry] = Field(default_factory=dict)
    stats: IndexStats = Field(default_factory=IndexStats)


class CacheEntry(BaseModel, Generic[T]):
    """A value read back from the cache together with its metadata."""

    data: T
    checksum: str
    created_at: datetime
    ttl_seconds: float
    last_access_at: datetime
    size_bytes: int
    path: str
    age_seconds: float
    cached: bool = True


class CacheInfo(BaseModel):
    """Summary returned by ``FileCacheManager.info()``."""

    total_bytes: int
    entry_count: int
    hit_count: int
    miss_count: int
    hit_ratio: float
    base_path: str
    size_limit_bytes: int

    def as_dict(self) -> dict[str, Any]:
        return self.model_dump()


__all__ = ["CacheConfig", "CacheEntry", "CacheIndex", "CacheInfo", "IndexEntry", "IndexStats"]
