"""
Local task storage used by the sync engine.

The engine only needs ``get``, ``put`` and ``updated_at``; FileTaskStore keeps
one JSON document per task under the workspace state directory.
"""

from __future__ import annotations

import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import ValidationError

from zen.core.cache.manager import sanitize_key
from zen.core.errors import ErrorCode, ZenError
from zen.core.sync.models import InternalTaskData, utcnow

logger = logging.getLogger(__name__)


@runtime_checkable
class TaskStore(Protocol):
    def get(self, task_id: str) -> InternalTaskData: ...

    def put(self, task_id: str, task: InternalTaskData) -> None: ...

    def updated_at(self, task_id: str) -> datetime | None: ...


class FileTaskStore:
    """
    Tasks as ``<root>/<task_id>.json``.

    Example:
        >>> store = FileTaskStore(Path(".zen/tasks"))
        >>> store.put("T1", InternalTaskData(id="T1", title="Write docs"))
        >>> store.get("T1").title
        'Write docs'
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root).expanduser()

    def path_for(self, task_id: str) -> Path:
        if not task_id:
            raise ZenError(ErrorCode.INVALID_DATA, "task id cannot be empty", retryable=False)
        return self.root / f"{sanitize_key(task_id)}.json"

    def get(self, task_id: str) -> InternalTaskData:
        path = self.path_for(task_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise ZenError(
                ErrorCode.NOT_FOUND, "task not found", task_id=task_id, retryable=False
            )
        except OSError as e:
            raise ZenError(ErrorCode.PERMISSION, f"cannot read {path}", task_id=task_id, cause=e)
        try:
            return InternalTaskData.model_validate_json(raw)
        except ValidationError as e:
            raise ZenError(
                ErrorCode.INVALID_DATA, f"invalid task file {path}", task_id=task_id, cause=e,
            )

    def put(self, task_id: str, task: InternalTaskData) -> None:
        """Atomically write task, stamping ``updated`` when unset."""
        path = self.path_for(task_id)
        if task.updated is None:
            task = task.model_copy(update={"updated": utcnow()})
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".task-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(task.model_dump_json(indent=2))
                os.replace(tmp, path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise ZenError(ErrorCode.PERMISSION, f"cannot write {path}", task_id=task_id, cause=e)

    def updated_at(self, task_id: str) -> datetime | None:
        """The task's ``updated`` time, falling back to the file's mtime."""
        try:
            task = self.get(task_id)
        except ZenError as e:
            if e.code == ErrorCode.NOT_FOUND:
                return None
            raise
        if task.updated is not None:
            return task.updated
        mtime = self.path_for(task_id).stat().st_mtime
        return datetime.fromtimestamp(mtime, timezone.utc)

    def list_ids(self) -> list[str]:
        if not self.root.exists():
            return []
        return sorted(p.stem for p in self.root.glob("*.json"))


__all__ = ["FileTaskStore", "TaskStore"]
