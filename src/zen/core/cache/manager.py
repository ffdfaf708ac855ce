"""
Durable, size-bounded LRU + TTL cache on the local file system.

Layout under the cache root:

    metadata/index.json          authoritative index (atomic rewrite)
    content/<shard>/<name>.cache raw serializer output, one file per key

Writes go to a temp file that is atomically renamed into place before the
index is updated. The index is rewritten on every structural mutation and
fsynced by a background thread; ``close()`` performs a final synchronous
flush.

Value files are only created, replaced or unlinked under the index write
lock, so a reader holding the read lock always sees the file its index
entry describes.

Example:
    >>> cache = FileCacheManager(CacheConfig(base_path="/tmp/zen-cache"),
    ...                          JSONSerializer())
    >>> cache.put("greeting", {"hello": "world"}, ttl=60)
    >>> cache.get("greeting").data
    {'hello': 'world'}
    >>> cache.close()
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import tempfile
import threading
import time
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Generic, TypeVar

from pydantic import ValidationError

from zen.core.cache.models import (
    CacheConfig,
    CacheEntry,
    CacheIndex,
    CacheInfo,
    IndexEntry,
)
from zen.core.cache.serializers import Serializer
from zen.core.errors import ErrorCode, ZenError
from zen.utils.rwlock import ReadWriteLock

logger = logging.getLogger(__name__)

T = TypeVar("T")

_UNSAFE_CHARS = re.compile(r'[/:*?"<>|\\]')
_MAX_NAME = 150
_TMP_PREFIX = ".put-"

INDEX_FILE = "index.json"
METADATA_DIR = "metadata"
CONTENT_DIR = "content"


def sanitize_key(key: str) -> str:
    """Replace characters that are unsafe in file names with ``_``."""
    return _UNSAFE_CHARS.sub("_", key)


def _checksum(data: bytes) -> str:
    return "sha256:" + hashlib.sha256(data).hexdigest()


def _to_datetime(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, timezone.utc)


class FileCacheManager(Generic[T]):
    """
    File-system cache for values of one type.

    All public methods are safe for concurrent callers. A single read-write
    lock guards the in-memory index; value files are read under the read
    side only.

    Args:
        config: Cache parameters
        serializer: Codec for values of type T
        clock: Wall-clock source in epoch seconds (injectable for tests)
        background: Start the flush/cleanup thread
    """

    def __init__(
        self,
        config: CacheConfig,
        serializer: Serializer[T],
        *,
        clock: Callable[[], float] = time.time,
        background: bool = True,
    ) -> None:
        self.config = config
        self.serializer = serializer
        self._clock = clock
        self.root = config.resolved_path()
        self._content = self.root / CONTENT_DIR
        self._index_path = self.root / METADATA_DIR / INDEX_FILE
        self._lock = ReadWriteLock()
        self._io_lock = threading.Lock()
        self._seq = 0
        self._dirty = False
        self._closed = False

        try:
            self._content.mkdir(parents=True, exist_ok=True)
            self._index_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ZenError(
                ErrorCode.PERMISSION, f"cannot create cache directory {self.root}", cause=e
            )

        self._index = self._load_index()

        self._stop = threading.Event()
        self._wake = threading.Event()
        self._thread: threading.Thread | None = None
        if background:
            self._thread = threading.Thread(
                target=self._background_loop, name="zen-cache", daemon=True
            )
            self._thread.start()

    # ------------------------------------------------------------------
    # Index persistence
    # ------------------------------------------------------------------

    def _load_index(self) -> CacheIndex:
        if not self._index_path.exists():
            return CacheIndex()
        try:
            index = CacheIndex.model_validate_json(self._index_path.read_bytes())
        except (OSError, ValidationError, ValueError) as e:
            # Files on disk are left untouched; callers re-populate.
            logger.error("Cache index %s is unreadable, starting empty: %s", self._index_path, e)
            return CacheIndex()

        index.stats.total_size = sum(e.size for e in index.entries.values())
        index.stats.entry_count = len(index.entries)
        self._seq = max((e.seq for e in index.entries.values()), default=0)
        return index

    def _snapshot(self) -> bytes:
        with self._lock.read():
            return self._index.model_dump_json(indent=2).encode("utf-8")

    def _write_index(self, *, fsync: bool) -> None:
        data = self._snapshot()
        with self._io_lock:
            fd, tmp = tempfile.mkstemp(dir=self._index_path.parent, prefix=".index-", suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                    if fsync:
                        f.flush()
                        os.fsync(f.fileno())
                os.replace(tmp, self._index_path)
            except OSError as e:
                Path(tmp).unlink(missing_ok=True)
                raise ZenError(ErrorCode.PERMISSION, "failed to write cache index", cause=e)
        self._dirty = False

    def _persist(self) -> None:
        """Rewrite the index now; the background thread fsyncs it later."""
        self._write_index(fsync=False)
        self._dirty = True
        self._wake.set()

    def _background_loop(self) -> None:
        interval = self.config.cleanup_interval
        next_cleanup = time.monotonic() + interval if interval > 0 else None
        while not self._stop.is_set():
            timeout = None if next_cleanup is None else max(0.0, next_cleanup - time.monotonic())
            self._wake.wait(timeout)
            self._wake.clear()
            if self._stop.is_set():
                break
            try:
                if self._dirty:
                    self._write_index(fsync=True)
                if next_cleanup is not None and time.monotonic() >= next_cleanup:
                    self.cleanup()
                    next_cleanup = time.monotonic() + interval
            except ZenError as e:
                logger.warning("Background cache maintenance failed: %s", e)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def path_for(self, key: str) -> Path:
        """Deterministic on-disk path for key."""
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        name = sanitize_key(key)
        if name != key or len(name) > _MAX_NAME:
            # Distinct keys may sanitize to the same name.
            name = f"{name[:_MAX_NAME]}-{digest[:12]}"
        return self._content / digest[:2] / f"{name}.cache"

    def _prune_dirs(self, path: Path) -> None:
        parent = path.parent
        while parent != self._content and self._content in parent.parents:
            try:
                parent.rmdir()
            except OSError:
                break
            parent = parent.parent

    def _remove_file(self, path: Path) -> None:
        # Caller holds the write lock so a concurrent put of the same key
        # cannot land between the index change and the unlink.
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Failed to remove cache file %s: %s", path, e)
            return
        self._prune_dirs(path)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, key: str) -> CacheEntry[T]:
        """
        Read a value.

        Raises:
            ZenError: not_found (absent or expired), corrupted (index and
                disk disagree), serialization (unparseable content)
        """
        now = self._clock()
        raw: bytes | None = None
        with self._lock.read():
            entry = self._index.entries.get(key)
            if entry is not None and not entry.expired(now):
                path = Path(entry.path)
                try:
                    raw = path.read_bytes()
                except FileNotFoundError:
                    raw = None
                except OSError as e:
                    raise ZenError(
                        ErrorCode.PERMISSION, f"cannot read cache entry {key!r}", cause=e
                    )

        if entry is None:
            self._record_miss()
            raise ZenError(ErrorCode.NOT_FOUND, f"cache key {key!r} not found")

        if entry.expired(now):
            self._record_miss()
            self._drop_expired(key, entry)
            raise ZenError(ErrorCode.NOT_FOUND, f"cache key {key!r} expired")

        if raw is None or len(raw) != entry.size:
            self._record_miss()
            raise ZenError(
                ErrorCode.CORRUPTED,
                f"cache entry {key!r} does not match the index",
                retryable=False,
            )

        value = self.serializer.deserialize(raw)

        with self._lock.write():
            current = self._index.entries.get(key)
            if current is not None:
                current.last_access_at = now
            self._index.stats.hit_count += 1
        self._dirty = True

        return CacheEntry(
            data=value,
            checksum=entry.checksum,
            created_at=_to_datetime(entry.created_at),
            ttl_seconds=entry.ttl_seconds,
            last_access_at=_to_datetime(now),
            size_bytes=entry.size,
            path=entry.path,
            age_seconds=max(0.0, now - entry.created_at),
        )

    def _record_miss(self) -> None:
        with self._lock.write():
            self._index.stats.miss_count += 1
        self._dirty = True

    def _drop_expired(self, key: str, entry: IndexEntry) -> None:
        with self._lock.write():
            current = self._index.entries.get(key)
            if current is None or current.seq != entry.seq:
                return
            del self._index.entries[key]
            self._index.stats.total_size -= current.size
            self._index.stats.entry_count = len(self._index.entries)
            self._remove_file(Path(entry.path))
        self._persist()

    def put(
        self,
        key: str,
        value: T,
        *,
        ttl: float | None = None,
        checksum: str | None = None,
    ) -> None:
        """
        Store a value.

        Args:
            key: Non-empty cache key
            value: Value to store
            ttl: Seconds to live; None uses the configured default, 0 never expires
            checksum: Caller-provided checksum, defaults to sha256 of the bytes

        Raises:
            ZenError: invalid_key, storage_full (entry larger than the cache),
                permission (I/O failure), serialization
        """
        if not key:
            raise ZenError(ErrorCode.INVALID_KEY, "cache key cannot be empty", retryable=False)

        data = self.serializer.serialize(value)
        size = len(data)
        limit = self.config.size_limit_bytes
        if size > limit:
            raise ZenError(
                ErrorCode.STORAGE_FULL,
                f"entry of {size} bytes exceeds cache limit of {limit} bytes",
                retryable=False,
            )

        path = self.path_for(key)
        try:
            # Staged in the content root, which pruning never removes.
            fd, tmp = tempfile.mkstemp(dir=self._content, prefix=_TMP_PREFIX, suffix=".tmp")
            with os.fdopen(fd, "wb") as f:
                f.write(data)
        except OSError as e:
            raise ZenError(ErrorCode.PERMISSION, f"cannot write cache entry {key!r}", cause=e)

        now = self._clock()
        ttl_seconds = self.config.default_ttl if ttl is None else ttl
        victims: list[tuple[str, IndexEntry]] = []
        try:
            with self._lock.write():
                existing = self._index.entries.get(key)
                current_total = self._index.stats.total_size - (existing.size if existing else 0)
                if current_total + size > limit:
                    victims = self._select_victims(key, current_total + size - limit)
                    for victim_key, victim in victims:
                        del self._index.entries[victim_key]
                        current_total -= victim.size
                for _, victim in victims:
                    if Path(victim.path) != path:
                        self._remove_file(Path(victim.path))
                path.parent.mkdir(parents=True, exist_ok=True)
                os.replace(tmp, path)
                self._seq += 1
                self._index.entries[key] = IndexEntry(
                    path=str(path),
                    size=size,
                    created_at=now,
                    last_access_at=now,
                    ttl_seconds=ttl_seconds,
                    checksum=checksum or _checksum(data),
                    seq=self._seq,
                )
                self._index.stats.total_size = current_total + size
                self._index.stats.entry_count = len(self._index.entries)
        except OSError as e:
            Path(tmp).unlink(missing_ok=True)
            raise ZenError(ErrorCode.PERMISSION, f"cannot commit cache entry {key!r}", cause=e)

        for victim_key, victim in victims:
            logger.debug("Evicted cache entry %s (%d bytes)", victim_key, victim.size)
        self._persist()

    def _select_victims(self, incoming_key: str, needed: int) -> list[tuple[str, IndexEntry]]:
        # Caller holds the write lock.
        candidates = sorted(
            ((k, e) for k, e in self._index.entries.items() if k != incoming_key),
            key=lambda item: (item[1].last_access_at, item[1].seq),
        )
        victims: list[tuple[str, IndexEntry]] = []
        reclaimed = 0
        for key, entry in candidates:
            if reclaimed >= needed:
                break
            victims.append((key, entry))
            reclaimed += entry.size
        return victims

    def delete(self, key: str) -> None:
        """Remove key. Deleting a missing key is not an error."""
        with self._lock.write():
            entry = self._index.entries.pop(key, None)
            if entry is not None:
                self._index.stats.total_size -= entry.size
                self._index.stats.entry_count = len(self._index.entries)
            path = Path(entry.path) if entry is not None else self.path_for(key)
            self._remove_file(path)
        if entry is not None:
            self._persist()

    def clear(self) -> None:
        """Remove every entry and every file under the data tree."""
        with self._lock.write():
            self._index.entries.clear()
            self._index.stats.total_size = 0
            self._index.stats.entry_count = 0
            paths = sorted(self._content.rglob("*"), key=lambda p: len(p.parts), reverse=True)
            for path in paths:
                if path.name.startswith(_TMP_PREFIX):
                    continue  # staged by an in-flight put
                try:
                    if path.is_dir():
                        path.rmdir()
                    else:
                        path.unlink()
                except OSError as e:
                    logger.warning("Failed to remove %s during clear: %s", path, e)
        self._persist()

    def cleanup(self) -> int:
        """Evict every expired entry. Returns the number removed."""
        now = self._clock()
        removed: list[IndexEntry] = []
        with self._lock.write():
            for key in [k for k, e in self._index.entries.items() if e.expired(now)]:
                entry = self._index.entries.pop(key)
                self._index.stats.total_size -= entry.size
                removed.append(entry)
            self._index.stats.entry_count = len(self._index.entries)
            for entry in removed:
                self._remove_file(Path(entry.path))
        if removed:
            logger.debug("Cache cleanup removed %d expired entries", len(removed))
            self._persist()
        return len(removed)

    def keys(self, prefix: str = "") -> list[str]:
        """Live (unexpired) keys starting with prefix, in insertion order."""
        now = self._clock()
        with self._lock.read():
            items = [
                (e.seq, k)
                for k, e in self._index.entries.items()
                if k.startswith(prefix) and not e.expired(now)
            ]
        return [k for _, k in sorted(items)]

    def contains(self, key: str) -> bool:
        now = self._clock()
        with self._lock.read():
            entry = self._index.entries.get(key)
            return entry is not None and not entry.expired(now)

    def info(self) -> CacheInfo:
        with self._lock.read():
            stats = self._index.stats.model_copy()
        lookups = stats.hit_count + stats.miss_count
        return CacheInfo(
            total_bytes=stats.total_size,
            entry_count=stats.entry_count,
            hit_count=stats.hit_count,
            miss_count=stats.miss_count,
            hit_ratio=stats.hit_count / lookups if lookups else 0.0,
            base_path=str(self.root),
            size_limit_bytes=self.config.size_limit_bytes,
        )

    def close(self) -> None:
        """Stop background work and flush the index to disk. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._stop.set()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
        self._write_index(fsync=True)

    def __enter__(self) -> FileCacheManager[T]:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


def read_index_file(root: Path) -> dict:
    """Raw index contents for diagnostics (``zen cache info --verbose``)."""
    path = root / METADATA_DIR / INDEX_FILE
    if not path.exists():
        return {}
    return json.loads(path.read_text(encoding="utf-8"))


__all__ = ["FileCacheManager", "read_index_file", "sanitize_key"]
