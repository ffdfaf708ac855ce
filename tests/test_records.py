"""Tests for sync record persistence and the local task store."""

from pathlib import Path
from typing import Any

import pytest

from zen.core.cache import FileCacheManager
from zen.core.errors import ErrorCode, ZenError
from zen.core.sync.models import InternalTaskData, SyncDirection, SyncRecord
from zen.core.sync.records import KEY_PREFIX, SyncRecordStore, record_key
from zen.core.sync.task_store import FileTaskStore, TaskStore


@pytest.fixture
def records(cache: FileCacheManager[Any]) -> SyncRecordStore:
    return SyncRecordStore(cache)


class TestSyncRecordStore:
    """Tests for record CRUD."""

    def test_create_and_get(self, records: SyncRecordStore) -> None:
        """Test a created record reads back equal."""
        record = SyncRecord(task_id="T1", external_id="PROJ-1", external_system="jira")
        records.create(record)
        loaded = records.get("T1")
        assert loaded.external_id == "PROJ-1"
        assert loaded.sync_direction == SyncDirection.BIDIRECTIONAL
        assert loaded.version == 1

    def test_stored_without_expiry(
        self, records: SyncRecordStore, cache: FileCacheManager[Any]
    ) -> None:
        """Test records use the sync_record: key and never expire."""
        records.create(SyncRecord(task_id="T1"))
        entry = cache.get(record_key("T1"))
        assert record_key("T1") == f"{KEY_PREFIX}T1"
        assert entry.ttl_seconds == 0

    def test_create_duplicate(self, records: SyncRecordStore) -> None:
        """Test creating a second record for a task raises already_exists."""
        records.create(SyncRecord(task_id="T1"))
        with pytest.raises(ZenError) as exc_info:
            records.create(SyncRecord(task_id="T1"))
        assert exc_info.value.code == ErrorCode.ALREADY_EXISTS

    def test_get_missing(self, records: SyncRecordStore) -> None:
        """Test reading an unknown task raises not_found."""
        with pytest.raises(ZenError) as exc_info:
            records.get("nope")
        assert exc_info.value.code == ErrorCode.NOT_FOUND
        assert exc_info.value.task_id == "nope"

    def test_update_stamps_time(self, records: SyncRecordStore) -> None:
        """Test update refreshes updated_at."""
        created = records.create(SyncRecord(task_id="T1"))
        updated = records.update(created.model_copy(update={"external_id": "PROJ-9"}))
        assert updated.updated_at >= created.updated_at
        assert records.get("T1").external_id == "PROJ-9"

    def test_delete(self, records: SyncRecordStore) -> None:
        """Test delete removes the record and rejects unknown tasks."""
        records.create(SyncRecord(task_id="T1"))
        records.delete("T1")
        assert not records.exists("T1")
        with pytest.raises(ZenError) as exc_info:
            records.delete("T1")
        assert exc_info.value.code == ErrorCode.NOT_FOUND

    def test_list(self, records: SyncRecordStore, cache: FileCacheManager[Any]) -> None:
        """Test list returns only sync records."""
        records.create(SyncRecord(task_id="T1"))
        records.create(SyncRecord(task_id="T2"))
        cache.put("binary:gh", "/usr/bin/gh")
        assert sorted(r.task_id for r in records.list()) == ["T1", "T2"]

    def test_list_skips_invalid(
        self, records: SyncRecordStore, cache: FileCacheManager[Any]
    ) -> None:
        """Test undecodable records are skipped."""
        records.create(SyncRecord(task_id="T1"))
        cache.put(record_key("bad"), {"task_id": ""}, ttl=0)
        assert [r.task_id for r in records.list()] == ["T1"]

    def test_get_invalid_is_corrupted(
        self, records: SyncRecordStore, cache: FileCacheManager[Any]
    ) -> None:
        """Test an invalid stored record raises corrupted."""
        cache.put(record_key("bad"), {"version": -1, "task_id": "bad"}, ttl=0)
        with pytest.raises(ZenError) as exc_info:
            records.get("bad")
        assert exc_info.value.code == ErrorCode.CORRUPTED


class TestFileTaskStore:
    """Tests for the JSON file task store."""

    def test_put_and_get(self, tmp_path: Path) -> None:
        """Test a stored task reads back with an updated stamp."""
        store = FileTaskStore(tmp_path / "tasks")
        store.put("T1", InternalTaskData(id="T1", title="Write docs"))
        task = store.get("T1")
        assert task.title == "Write docs"
        assert task.updated is not None
        assert store.updated_at("T1") == task.updated

    def test_missing(self, tmp_path: Path) -> None:
        """Test unknown tasks raise not_found and have no update time."""
        store = FileTaskStore(tmp_path)
        with pytest.raises(ZenError) as exc_info:
            store.get("T9")
        assert exc_info.value.code == ErrorCode.NOT_FOUND
        assert store.updated_at("T9") is None

    def test_invalid_file(self, tmp_path: Path) -> None:
        """Test a malformed task file raises invalid_data."""
        store = FileTaskStore(tmp_path)
        store.path_for("T1").write_text("{}")
        with pytest.raises(ZenError) as exc_info:
            store.get("T1")
        assert exc_info.value.code == ErrorCode.INVALID_DATA

    def test_empty_id(self, tmp_path: Path) -> None:
        """Test an empty task id is invalid."""
        with pytest.raises(ZenError):
            FileTaskStore(tmp_path).path_for("")

    def test_list_ids(self, tmp_path: Path) -> None:
        """Test list_ids returns stored ids sorted."""
        store = FileTaskStore(tmp_path / "tasks")
        assert store.list_ids() == []
        store.put("b", InternalTaskData(id="b"))
        store.put("a", InternalTaskData(id="a"))
        assert store.list_ids() == ["a", "b"]
        assert not list((tmp_path / "tasks").glob("*.tmp"))

    def test_satisfies_protocol(self, tmp_path: Path) -> None:
        """Test FileTaskStore implements TaskStore."""
        assert isinstance(FileTaskStore(tmp_path), TaskStore)
