"""
Conflict detection, resolution strategies, and the pending-conflict store.

A field is in conflict when the external value differs from the local value
and the external side changed after the local record was last updated.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Iterable
from datetime import datetime

from zen.core.errors import ErrorCode, ZenError
from zen.core.sync.models import (
    SYNC_FIELDS,
    ConflictRecord,
    ConflictStatus,
    ConflictStrategy,
    FieldConflict,
    InternalTaskData,
    utcnow,
)

logger = logging.getLogger(__name__)


def _later(a: datetime | None, b: datetime | None) -> bool:
    """True when a is strictly later than b; an unknown b counts as earliest."""
    if a is None:
        return False
    if b is None:
        return True
    return a > b


def detect_conflicts(
    local: InternalTaskData,
    external: InternalTaskData,
    *,
    local_updated: datetime | None,
    external_updated: datetime | None,
    fields: Iterable[str] = SYNC_FIELDS,
) -> list[FieldConflict]:
    """
    Compare synchronized fields of two task views.

    Returns:
        One FieldConflict per differing field, only when the external side is
        newer than the local record
    """
    if not _later(external_updated, local_updated):
        return []
    conflicts = []
    for name in fields:
        local_value = getattr(local, name)
        external_value = getattr(external, name)
        if local_value != external_value:
            conflicts.append(
                FieldConflict(
                    field=name,
                    local_value=local_value,
                    external_value=external_value,
                    local_timestamp=local_updated,
                    external_timestamp=external_updated,
                )
            )
    return conflicts


def apply_strategy(
    strategy: ConflictStrategy,
    local: InternalTaskData,
    conflicts: list[FieldConflict],
) -> tuple[InternalTaskData, list[str]]:
    """
    Resolve conflicts against the local task.

    Each conflict's ``resolution`` is set to ``local``, ``remote`` or
    ``manual``.

    Returns:
        (resolved task copy, names of fields that took the external value)
    """
    resolved = local.model_copy(deep=True)
    changed: list[str] = []
    for conflict in conflicts:
        if strategy == ConflictStrategy.REMOTE_WINS:
            take_remote = True
        elif strategy == ConflictStrategy.TIMESTAMP:
            # Ties go local.
            take_remote = _later(conflict.external_timestamp, conflict.local_timestamp)
        elif strategy == ConflictStrategy.MANUAL_REVIEW:
            conflict.resolution = "manual"
            continue
        else:
            take_remote = False

        if take_remote:
            setattr(resolved, conflict.field, conflict.external_value)
            changed.append(conflict.field)
            conflict.resolution = "remote"
        else:
            conflict.resolution = "local"
    return resolved, changed


class ConflictStore:
    """
    In-memory store of conflicts awaiting manual review, keyed by task id.

    Thread-safe; a new record for a task replaces any earlier one.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, ConflictRecord] = {}

    def add(self, task_id: str, conflicts: list[FieldConflict]) -> ConflictRecord:
        record = ConflictRecord(
            id=uuid.uuid4().hex,
            task_id=task_id,
            conflicts=[c.model_copy() for c in conflicts],
        )
        with self._lock:
            self._records[task_id] = record
        logger.info("Queued %d conflict(s) for %s", len(conflicts), task_id)
        return record.model_copy(deep=True)

    def get(self, task_id: str) -> ConflictRecord | None:
        with self._lock:
            record = self._records.get(task_id)
        return record.model_copy(deep=True) if record else None

    def list(self) -> list[ConflictRecord]:
        with self._lock:
            records = list(self._records.values())
        return [r.model_copy(deep=True) for r in records]

    def list_pending(self) -> list[ConflictRecord]:
        return [r for r in self.list() if r.status == ConflictStatus.PENDING]

    def _set_status(
        self, task_id: str, status: ConflictStatus, resolved_by: str | None
    ) -> ConflictRecord:
        with self._lock:
            record = self._records.get(task_id)
            if record is None:
                raise ZenError(
                    ErrorCode.NOT_FOUND, "no conflict recorded", task_id=task_id, retryable=False
                )
            record.status = status
            record.resolved_by = resolved_by
            record.resolved_at = utcnow()
            return record.model_copy(deep=True)

    def resolve(self, task_id: str, resolved_by: str = "") -> ConflictRecord:
        return self._set_status(task_id, ConflictStatus.RESOLVED, resolved_by or None)

    def ignore(self, task_id: str) -> ConflictRecord:
        return self._set_status(task_id, ConflictStatus.IGNORED, None)

    def remove(self, task_id: str) -> bool:
        with self._lock:
            return self._records.pop(task_id, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, task_id: object) -> bool:
        with self._lock:
            return task_id in self._records


__all__ = ["ConflictStore", "apply_strategy", "detect_conflicts"]
