"""
Data models for external task synchronization.

SyncRecord is the only persisted model owned by the engine; the task data
models are transient views produced by provider adapters and the task store.
"""

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncDirection(str, Enum):
    PULL = "pull"
    PUSH = "push"
    BIDIRECTIONAL = "bidirectional"


class ConflictStrategy(str, Enum):
    LOCAL_WINS = "local_wins"
    REMOTE_WINS = "remote_wins"
    MANUAL_REVIEW = "manual_review"
    TIMESTAMP = "timestamp"


class SyncRecordStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    ERROR = "error"
    CONFLICT = "conflict"
    DISABLED = "disabled"


class ConflictStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    IGNORED = "ignored"


class TaskStatus(str, Enum):
    """Normalized task status vocabulary."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    COMPLETED = "completed"
    CANCELED = "canceled"


PRIORITIES = ("P0", "P1", "P2", "P3")
DEFAULT_PRIORITY = "P2"


class SyncRecord(BaseModel):
    """
    Persisted link between a local task and its external counterpart.

    Invariants: ``version`` only grows, ``error_count`` resets on success,
    and an ``error`` status always carries ``last_error``.
    """

    task_id: str = Field(..., min_length=1, description="Local task id (cache key)")
    external_id: str = Field(default="", description="Id in the external system")
    external_system: str = Field(default="", description="Provider name")
    sync_direction: SyncDirection = Field(default=SyncDirection.BIDIRECTIONAL)
    field_mappings: dict[str, str] = Field(
        default_factory=dict, description="Internal field to external dot-path"
    )
    conflict_strategy: ConflictStrategy = Field(default=ConflictStrategy.TIMESTAMP)
    status: SyncRecordStatus = Field(default=SyncRecordStatus.ACTIVE)
    last_sync_time: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = Field(default=1, ge=0)
    error_count: int = Field(default=0, ge=0)
    last_error: str | None = None
    retry_after: datetime | None = None
    data_hash: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _error_needs_message(self) -> SyncRecord:
        if self.status == SyncRecordStatus.ERROR and not self.last_error:
            raise ValueError("status 'error' requires last_error")
        return self


class ExternalTaskData(BaseModel):
    """A task as returned by a provider adapter."""

    id: str = ""
    title: str = ""
    description: str = ""
    status: str = ""
    priority: str = ""
    assignee: str = ""
    created: datetime | None = None
    updated: datetime | None = None
    fields: dict[str, Any] = Field(default_factory=dict, description="Provider-specific data")


class InternalTaskData(BaseModel):
    """A task in zen's own schema."""

    model_config = ConfigDict(validate_assignment=True)

    id: str
    title: str = ""
    description: str = ""
    status: str = TaskStatus.NOT_STARTED.value
    priority: str = DEFAULT_PRIORITY
    owner: str = ""
    team: str = ""
    created: datetime | None = None
    updated: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


# Fields compared between the local task and the external view.
SYNC_FIELDS = ("title", "description", "status", "priority", "owner")


def content_hash(task: InternalTaskData) -> str:
    """Fingerprint of the synchronized fields of a task."""
    payload = {name: getattr(task, name) for name in SYNC_FIELDS}
    digest = hashlib.sha256(json.dumps(payload, sort_keys=True, default=str).encode())
    return "sha256:" + digest.hexdigest()


class FieldConflict(BaseModel):
    field: str
    local_value: Any = None
    external_value: Any = None
    local_timestamp: datetime | None = None
    external_timestamp: datetime | None = None
    resolution: str | None = None


class ConflictRecord(BaseModel):
    id: str
    task_id: str
    conflicts: list[FieldConflict] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    status: ConflictStatus = ConflictStatus.PENDING
    resolved_by: str | None = None
    resolved_at: datetime | None = None


class SyncOptions(BaseModel):
    """Options for a single sync call. Unset fields fall back to the record or defaults."""

    direction: SyncDirection | None = None
    conflict_strategy: ConflictStrategy | None = None
    dry_run: bool = False
    force_sync: bool = False
    timeout: float = Field(default=30.0, ge=0, description="Seconds; 0 means no timeout")
    retry_count: int | None = Field(default=None, ge=0)
    batch_size: int = Field(default=50, ge=1)
    parallel: bool = False
    user_id: str = ""
    correlation_id: str = ""


class SyncResult(BaseModel):
    """Outcome of one sync_task call."""

    model_config = ConfigDict(use_enum_values=True)

    success: bool
    task_id: str
    external_id: str = ""
    direction: SyncDirection | None = None
    changed_fields: list[str] = Field(default_factory=list)
    conflicts: list[FieldConflict] = Field(default_factory=list)
    error: str = ""
    error_code: str = ""
    retryable: bool = False
    duration: float = 0.0
    timestamp: datetime = Field(default_factory=utcnow)
    correlation_id: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)


class RateLimitInfo(BaseModel):
    limit: int = 0
    remaining: int = 0
    reset_time: datetime | None = None


class ProviderHealth(BaseModel):
    provider: str
    healthy: bool = True
    last_checked: datetime = Field(default_factory=utcnow)
    response_time: float = 0.0
    error_count: int = 0
    last_error: str = ""
    rate_limit_info: RateLimitInfo | None = None


__all__ = [
    "ConflictRecord",
    "ConflictStatus",
    "ConflictStrategy",
    "DEFAULT_PRIORITY",
    "ExternalTaskData",
    "FieldConflict",
    "InternalTaskData",
    "PRIORITIES",
    "ProviderHealth",
    "RateLimitInfo",
    "SYNC_FIELDS",
    "SyncDirection",
    "SyncOptions",
    "SyncRecord",
    "SyncRecordStatus",
    "SyncResult",
    "TaskStatus",
    "content_hash",
    "utcnow",
]
