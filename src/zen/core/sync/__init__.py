"""
External task synchronization.

The package namespace exports the data models only; import the engine from
``zen.core.sync.engine`` (provider modules depend on these models).
"""

from zen.core.sync.models import (
    ConflictRecord,
    ConflictStatus,
    ConflictStrategy,
    ExternalTaskData,
    FieldConflict,
    InternalTaskData,
    ProviderHealth,
    RateLimitInfo,
    SyncDirection,
    SyncOptions,
    SyncRecord,
    SyncRecordStatus,
    SyncResult,
    TaskStatus,
)

__all__ = [
    "ConflictRecord",
    "ConflictStatus",
    "ConflictStrategy",
    "ExternalTaskData",
    "FieldConflict",
    "InternalTaskData",
    "ProviderHealth",
    "RateLimitInfo",
    "SyncDirection",
    "SyncOptions",
    "SyncRecord",
    "SyncRecordStatus",
    "SyncResult",
    "TaskStatus",
]
