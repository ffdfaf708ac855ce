"""Sync counters and an exponentially-weighted average latency."""

from __future__ import annotations

import threading
from datetime import datetime

from pydantic import BaseModel

from zen.core.sync.models import utcnow

# Weight of the newest sample in average_latency.
EWMA_ALPHA = 0.2


class MetricsSnapshot(BaseModel):
    sync_operations: int = 0
    successful_syncs: int = 0
    failed_syncs: int = 0
    conflicts: int = 0
    average_latency: float = 0.0
    last_sync_time: datetime | None = None


class SyncMetrics:
    """
    Monotonic counters for the sync engine.

    The first sample seeds ``average_latency``; later samples update it as
    ``avg = alpha * sample + (1 - alpha) * avg``.
    """

    def __init__(self, alpha: float = EWMA_ALPHA) -> None:
        if not 0.0 < alpha <= 1.0:
            raise ValueError("alpha must be in (0, 1]")
        self.alpha = alpha
        self._lock = threading.Lock()
        self._data = MetricsSnapshot()

    def record(self, success: bool, latency: float, *, conflicts: int = 0) -> None:
        with self._lock:
            data = self._data
            if data.sync_operations == 0:
                data.average_latency = latency
            else:
                data.average_latency = self.alpha * latency + (1 - self.alpha) * data.average_latency
            data.sync_operations += 1
            if success:
                data.successful_syncs += 1
            else:
                data.failed_syncs += 1
            data.conflicts += conflicts
            data.last_sync_time = utcnow()

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return self._data.model_copy()


__all__ = ["EWMA_ALPHA", "MetricsSnapshot", "SyncMetrics"]
