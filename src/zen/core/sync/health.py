"""Background provider health probing."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)

DEFAULT_HEALTH_INTERVAL = 60.0


class HealthMonitor:
    """
    Runs ``probe`` every ``interval`` seconds on a daemon thread.

    Errors raised by the probe are logged and do not stop the monitor.

    Args:
        probe: Callable performing one round of health checks
        interval: Seconds between rounds; 0 disables the monitor
    """

    def __init__(
        self, probe: Callable[[], object], interval: float = DEFAULT_HEALTH_INTERVAL
    ) -> None:
        self.probe = probe
        self.interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.interval <= 0:
            return
        with self._lock:
            if self.running:
                return
            self._stop.clear()
            self._thread = threading.Thread(target=self._loop, name="zen-health", daemon=True)
            self._thread.start()

    def _loop(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.probe()
            except Exception:
                logger.exception("Provider health round failed")

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            thread = self._thread
            self._thread = None
        self._stop.set()
        if thread is not None:
            thread.join(timeout=timeout)


__all__ = ["DEFAULT_HEALTH_INTERVAL", "HealthMonitor"]
