"""Tests for the file-system cache."""

import json
import threading
import time
from pathlib import Path
from typing import Any

import pytest
from pydantic import ValidationError

from zen.core.cache import (
    CacheConfig,
    FileCacheManager,
    JSONSerializer,
    StringSerializer,
    sanitize_key,
)
from zen.core.cache.manager import read_index_file
from zen.core.errors import ErrorCode, ZenError
from zen.core.sync.models import SyncRecord

# 100 bytes exactly; "x" * 40 serializes to 42 bytes of JSON.
TINY_LIMIT_MB = 100 / (1024 * 1024)


def make_cache(tmp_path: Path, clock: Any = None, **overrides: Any) -> FileCacheManager[Any]:
    config = CacheConfig(base_path=str(tmp_path / "cache"), cleanup_interval=0, **overrides)
    kwargs: dict[str, Any] = {"background": False}
    if clock is not None:
        kwargs["clock"] = clock
    return FileCacheManager(config, JSONSerializer(), **kwargs)


class TestSerializers:
    """Tests for cache serializers."""

    def test_json_plain_values(self) -> None:
        """Test untyped JSON round-trips plain values."""
        s = JSONSerializer()
        assert s.deserialize(s.serialize({"a": [1, 2]})) == {"a": [1, 2]}
        assert s.content_type() == "application/json"

    def test_json_model_validates(self) -> None:
        """Test a model-typed serializer rebuilds the model."""
        s = JSONSerializer(SyncRecord)
        record = SyncRecord(task_id="T1", external_id="PROJ-1")
        restored = s.deserialize(s.serialize(record))
        assert isinstance(restored, SyncRecord)
        assert restored.external_id == "PROJ-1"

    def test_json_invalid_bytes(self) -> None:
        """Test garbage input raises a serialization error."""
        with pytest.raises(ZenError) as exc_info:
            JSONSerializer().deserialize(b"{not json")
        assert exc_info.value.code == ErrorCode.SERIALIZATION

    def test_json_unserializable_value(self) -> None:
        """Test values json cannot encode raise a serialization error."""
        with pytest.raises(ZenError) as exc_info:
            JSONSerializer().serialize({"x": object()})
        assert exc_info.value.code == ErrorCode.SERIALIZATION

    def test_string_serializer(self) -> None:
        """Test the string serializer rejects non-text values."""
        s = StringSerializer()
        assert s.deserialize(s.serialize("héllo")) == "héllo"
        with pytest.raises(ZenError):
            s.serialize(42)  # type: ignore[arg-type]
        with pytest.raises(ZenError):
            s.deserialize(b"\xff\xfe")


class TestBasicOperations:
    """Tests for put/get/delete."""

    def test_put_get(self, cache: FileCacheManager[Any]) -> None:
        """Test a stored value reads back with metadata."""
        cache.put("greeting", {"hello": "world"}, ttl=60)
        entry = cache.get("greeting")
        assert entry.data == {"hello": "world"}
        assert entry.ttl_seconds == 60
        assert entry.checksum.startswith("sha256:")
        assert entry.size_bytes == len(json.dumps({"hello": "world"}))

    def test_get_missing(self, cache: FileCacheManager[Any]) -> None:
        """Test a missing key raises not_found and counts a miss."""
        with pytest.raises(ZenError) as exc_info:
            cache.get("nope")
        assert exc_info.value.code == ErrorCode.NOT_FOUND
        assert cache.info().miss_count == 1

    def test_empty_key_rejected(self, cache: FileCacheManager[Any]) -> None:
        """Test put with an empty key raises invalid_key."""
        with pytest.raises(ZenError) as exc_info:
            cache.put("", 1)
        assert exc_info.value.code == ErrorCode.INVALID_KEY

    def test_overwrite_replaces_size(self, cache: FileCacheManager[Any]) -> None:
        """Test overwriting a key does not double-count its size."""
        cache.put("k", "a" * 10)
        cache.put("k", "b" * 20)
        info = cache.info()
        assert info.entry_count == 1
        assert info.total_bytes == 22
        assert cache.get("k").data == "b" * 20

    def test_delete(self, cache: FileCacheManager[Any]) -> None:
        """Test delete removes the entry and its file; missing keys are fine."""
        cache.put("k", 1)
        path = cache.path_for("k")
        assert path.exists()
        cache.delete("k")
        assert not cache.contains("k")
        assert not path.exists()
        cache.delete("k")

    def test_keys_with_prefix(self, cache: FileCacheManager[Any]) -> None:
        """Test keys() filters by prefix in insertion order."""
        cache.put("a:2", 1)
        cache.put("b:1", 1)
        cache.put("a:1", 1)
        assert cache.keys("a:") == ["a:2", "a:1"]
        assert len(cache.keys()) == 3

    def test_clear(self, cache: FileCacheManager[Any]) -> None:
        """Test clear empties the index and the content tree."""
        cache.put("a", 1)
        cache.put("b", 2)
        cache.clear()
        info = cache.info()
        assert info.entry_count == 0
        assert info.total_bytes == 0
        assert not any(p.is_file() for p in (cache.root / "content").rglob("*"))

    def test_entry_larger_than_cache(self, tmp_path: Path) -> None:
        """Test an entry bigger than the whole cache is refused."""
        cache = make_cache(tmp_path, size_limit_mb=TINY_LIMIT_MB)
        with pytest.raises(ZenError) as exc_info:
            cache.put("big", "x" * 200)
        assert exc_info.value.code == ErrorCode.STORAGE_FULL
        cache.close()


class TestKeySanitization:
    """Tests for key to path mapping."""

    def test_sanitize_key(self) -> None:
        """Test unsafe characters become underscores."""
        assert sanitize_key('a/b:c*d?e"f<g>h|i\\j') == "a_b_c_d_e_f_g_h_i_j"

    def test_colliding_sanitized_keys_stay_distinct(self, cache: FileCacheManager[Any]) -> None:
        """Test keys that sanitize alike get different files."""
        cache.put("a/b", "slash")
        cache.put("a:b", "colon")
        assert cache.path_for("a/b") != cache.path_for("a:b")
        assert cache.get("a/b").data == "slash"
        assert cache.get("a:b").data == "colon"

    def test_path_is_deterministic(self, cache: FileCacheManager[Any]) -> None:
        """Test the same key always maps to the same path under content/."""
        assert cache.path_for("sync_record:T1") == cache.path_for("sync_record:T1")
        assert cache.root / "content" in cache.path_for("x").parents


class TestTTL:
    """Tests for expiry."""

    def test_expired_entry_not_returned(self, tmp_path: Path, clock: Any) -> None:
        """Test an entry past its TTL raises not_found and is removed."""
        cache = make_cache(tmp_path, clock)
        cache.put("k", 1, ttl=10)
        clock.advance(9)
        assert cache.get("k").data == 1
        clock.advance(1)
        with pytest.raises(ZenError) as exc_info:
            cache.get("k")
        assert exc_info.value.code == ErrorCode.NOT_FOUND
        assert cache.info().entry_count == 0
        cache.close()

    def test_zero_ttl_never_expires(self, tmp_path: Path, clock: Any) -> None:
        """Test ttl=0 entries survive any amount of time."""
        cache = make_cache(tmp_path, clock)
        cache.put("k", 1, ttl=0)
        clock.advance(10**9)
        assert cache.get("k").data == 1
        cache.close()

    def test_default_ttl_applies(self, tmp_path: Path, clock: Any) -> None:
        """Test ttl=None falls back to the configured default."""
        cache = make_cache(tmp_path, clock, default_ttl=5)
        cache.put("k", 1)
        clock.advance(5)
        assert not cache.contains("k")
        cache.close()

    def test_cleanup_evicts_expired(self, tmp_path: Path, clock: Any) -> None:
        """Test cleanup removes only expired entries."""
        cache = make_cache(tmp_path, clock)
        cache.put("short", 1, ttl=1)
        cache.put("long", 2, ttl=100)
        clock.advance(2)
        assert cache.cleanup() == 1
        assert cache.keys() == ["long"]
        cache.close()


class TestLRU:
    """Tests for size-bounded eviction."""

    def test_least_recently_used_evicted(self, tmp_path: Path, clock: Any) -> None:
        """Test the entry accessed longest ago is evicted first."""
        cache = make_cache(tmp_path, clock, size_limit_mb=TINY_LIMIT_MB)
        cache.put("a", "x" * 40)
        clock.advance(1)
        cache.put("b", "x" * 40)
        clock.advance(1)
        cache.get("a")
        clock.advance(1)
        cache.put("c", "x" * 40)

        assert cache.contains("a")
        assert not cache.contains("b")
        assert cache.contains("c")
        assert cache.info().total_bytes <= 100
        cache.close()

    def test_total_never_exceeds_limit(self, tmp_path: Path, clock: Any) -> None:
        """Test the size bound holds over many writes."""
        cache = make_cache(tmp_path, clock, size_limit_mb=TINY_LIMIT_MB)
        for i in range(20):
            clock.advance(1)
            cache.put(f"k{i}", "x" * 30)
            assert cache.info().total_bytes <= 100
        assert cache.contains("k19")
        cache.close()


class TestConcurrency:
    """Tests for concurrent writers and removers of one key."""

    def test_delete_racing_put_never_corrupts(self, cache: FileCacheManager[Any]) -> None:
        """Test a delete interleaved with puts never leaves an entry without its file."""
        errors: list[ZenError] = []
        stop = threading.Event()

        def writer() -> None:
            i = 0
            while not stop.is_set():
                cache.put("k", {"n": i})
                i += 1

        def remover() -> None:
            while not stop.is_set():
                cache.delete("k")

        def reader() -> None:
            while not stop.is_set():
                try:
                    cache.get("k")
                except ZenError as e:
                    if e.code != ErrorCode.NOT_FOUND:
                        errors.append(e)

        threads = [threading.Thread(target=fn) for fn in (writer, remover, reader)]
        for t in threads:
            t.start()
        time.sleep(0.5)
        stop.set()
        for t in threads:
            t.join(timeout=5)

        assert errors == []
        if cache.contains("k"):
            assert "n" in cache.get("k").data

    def test_eviction_racing_put_keeps_files(self, tmp_path: Path) -> None:
        """Test evicted files are removed before a new writer of the same key lands."""
        cache = make_cache(tmp_path, size_limit_mb=TINY_LIMIT_MB)

        def fill(prefix: str) -> None:
            for i in range(50):
                cache.put(f"{prefix}{i % 4}", "x" * 40)

        threads = [threading.Thread(target=fill, args=(p,)) for p in ("a", "b", "c")]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        for key in cache.keys():
            assert cache.get(key).data == "x" * 40
        assert cache.info().total_bytes <= 100
        cache.close()

    def test_clear_keeps_staged_writes(self, cache: FileCacheManager[Any]) -> None:
        """Test clear leaves a temp file staged by an in-flight put alone."""
        staged = cache.root / "content" / ".put-inflight.tmp"
        staged.write_bytes(b"1")
        cache.put("a", 1)
        cache.clear()
        assert staged.exists()
        assert cache.info().entry_count == 0


class TestDurability:
    """Tests for index persistence and recovery."""

    def test_reopen_sees_entries(self, tmp_path: Path) -> None:
        """Test entries survive closing and reopening the cache."""
        cache = make_cache(tmp_path)
        cache.put("k", {"v": 1}, ttl=0)
        cache.close()

        reopened = make_cache(tmp_path)
        assert reopened.get("k").data == {"v": 1}
        assert reopened.info().entry_count == 1
        reopened.close()

    def test_index_file_layout(self, tmp_path: Path) -> None:
        """Test the on-disk index lists entries and stats."""
        cache = make_cache(tmp_path)
        cache.put("k", 1)
        cache.close()
        raw = read_index_file(tmp_path / "cache")
        assert set(raw) == {"entries", "stats"}
        assert set(raw["entries"]["k"]) >= {
            "path",
            "size",
            "created_at",
            "last_access_at",
            "ttl_seconds",
            "checksum",
        }
        assert raw["stats"]["entry_count"] == 1

    def test_corrupted_index_starts_empty(self, tmp_path: Path) -> None:
        """Test an unreadable index is replaced by an empty one."""
        cache = make_cache(tmp_path)
        cache.put("k", 1)
        cache.close()
        (tmp_path / "cache" / "metadata" / "index.json").write_text("{garbage")

        reopened = make_cache(tmp_path)
        assert reopened.info().entry_count == 0
        with pytest.raises(ZenError):
            reopened.get("k")
        reopened.close()

    def test_missing_content_file_is_corrupted(self, cache: FileCacheManager[Any]) -> None:
        """Test an index entry without its file raises corrupted."""
        cache.put("k", 1)
        cache.path_for("k").unlink()
        with pytest.raises(ZenError) as exc_info:
            cache.get("k")
        assert exc_info.value.code == ErrorCode.CORRUPTED

    def test_no_temp_files_left(self, cache: FileCacheManager[Any]) -> None:
        """Test atomic writes leave no temp files behind."""
        for i in range(5):
            cache.put(f"k{i}", i)
        leftovers = [p for p in cache.root.rglob("*.tmp")]
        assert leftovers == []

    def test_read_index_file_missing(self, tmp_path: Path) -> None:
        """Test reading a cache root without an index returns an empty dict."""
        assert read_index_file(tmp_path / "nothing") == {}


class TestInfo:
    """Tests for cache statistics."""

    def test_hit_ratio(self, cache: FileCacheManager[Any]) -> None:
        """Test hits and misses feed the hit ratio."""
        cache.put("k", 1)
        cache.get("k")
        cache.get("k")
        cache.get("k")
        with pytest.raises(ZenError):
            cache.get("missing")
        info = cache.info()
        assert info.hit_count == 3
        assert info.miss_count == 1
        assert info.hit_ratio == pytest.approx(0.75)

    def test_empty_hit_ratio(self, cache: FileCacheManager[Any]) -> None:
        """Test an unused cache reports a zero hit ratio."""
        assert cache.info().hit_ratio == 0.0
        assert cache.info().size_limit_bytes == 100 * 1024 * 1024


class TestCacheConfig:
    """Tests for cache configuration defaults."""

    def test_defaults(self) -> None:
        """Test the documented defaults."""
        config = CacheConfig()
        assert config.size_limit_mb == 100
        assert config.default_ttl == 86400
        assert config.cleanup_interval == 3600
        assert config.compression is False
        assert config.resolved_path() == Path("~/.zen/cache").expanduser()

    def test_compression_rejected(self) -> None:
        """Test enabling compression is a validation error."""
        with pytest.raises(ValidationError):
            CacheConfig(compression=True)
