"""
SyncRecord persistence on top of the file-system cache.

Records live under ``sync_record:<task_id>`` with ``ttl=0``; listing walks
the cache's key index.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from zen.core.cache.manager import FileCacheManager
from zen.core.errors import ErrorCode, ZenError, is_code
from zen.core.sync.models import SyncRecord, utcnow

logger = logging.getLogger(__name__)

KEY_PREFIX = "sync_record:"


def record_key(task_id: str) -> str:
    return f"{KEY_PREFIX}{task_id}"


class SyncRecordStore:
    """
    CRUD for SyncRecords.

    Args:
        cache: Shared cache storing JSON-compatible values
    """

    def __init__(self, cache: FileCacheManager[Any]) -> None:
        self.cache = cache

    def _decode(self, task_id: str, data: Any) -> SyncRecord:
        try:
            return SyncRecord.model_validate(data)
        except ValidationError as e:
            raise ZenError(
                ErrorCode.CORRUPTED,
                "stored sync record is invalid",
                task_id=task_id,
                cause=e,
                retryable=False,
            )

    def get(self, task_id: str) -> SyncRecord:
        """
        Raises:
            ZenError: not_found when no record exists
        """
        try:
            entry = self.cache.get(record_key(task_id))
        except ZenError as e:
            if e.code == ErrorCode.NOT_FOUND:
                raise ZenError(
                    ErrorCode.NOT_FOUND, "sync record not found", task_id=task_id, retryable=False
                ) from e
            raise
        return self._decode(task_id, entry.data)

    def exists(self, task_id: str) -> bool:
        return self.cache.contains(record_key(task_id))

    def _write(self, record: SyncRecord) -> None:
        self.cache.put(record_key(record.task_id), record.model_dump(mode="json"), ttl=0)

    def create(self, record: SyncRecord) -> SyncRecord:
        """
        Raises:
            ZenError: already_exists if a record for the task exists
        """
        if self.exists(record.task_id):
            raise ZenError(
                ErrorCode.ALREADY_EXISTS,
                "sync record already exists",
                task_id=record.task_id,
                retryable=False,
            )
        self._write(record)
        return record

    def update(self, record: SyncRecord) -> SyncRecord:
        """Persist record, stamping ``updated_at``."""
        record = record.model_copy(update={"updated_at": utcnow()})
        self._write(record)
        return record

    def delete(self, task_id: str) -> None:
        """
        Raises:
            ZenError: not_found when no record exists
        """
        if not self.exists(task_id):
            raise ZenError(
                ErrorCode.NOT_FOUND, "sync record not found", task_id=task_id, retryable=False
            )
        self.cache.delete(record_key(task_id))

    def list(self) -> list[SyncRecord]:
        """All readable records; unreadable ones are logged and skipped."""
        records = []
        for key in self.cache.keys(KEY_PREFIX):
            task_id = key[len(KEY_PREFIX):]
            try:
                records.append(self.get(task_id))
            except ZenError as e:
                if is_code(e, ErrorCode.NOT_FOUND):
                    continue
                logger.warning("Skipping sync record %s: %s", task_id, e)
        return records


__all__ = ["KEY_PREFIX", "SyncRecordStore", "record_key"]
