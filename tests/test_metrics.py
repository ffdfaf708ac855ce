"""Tests for sync metrics and the health monitor."""

import threading

import pytest

from zen.core.sync.health import HealthMonitor
from zen.core.sync.metrics import SyncMetrics


class TestSyncMetrics:
    """Tests for counters and the latency average."""

    def test_counters(self) -> None:
        """Test successes, failures and conflicts are counted."""
        metrics = SyncMetrics()
        metrics.record(True, 1.0)
        metrics.record(False, 1.0, conflicts=2)
        snap = metrics.snapshot()
        assert snap.sync_operations == 2
        assert snap.successful_syncs == 1
        assert snap.failed_syncs == 1
        assert snap.conflicts == 2
        assert snap.last_sync_time is not None

    def test_first_sample_seeds_average(self) -> None:
        """Test the first latency becomes the average."""
        metrics = SyncMetrics()
        metrics.record(True, 2.0)
        assert metrics.snapshot().average_latency == 2.0

    def test_ewma(self) -> None:
        """Test later samples are blended with weight alpha."""
        metrics = SyncMetrics(alpha=0.2)
        metrics.record(True, 1.0)
        metrics.record(True, 2.0)
        assert metrics.snapshot().average_latency == pytest.approx(1.2)

    def test_snapshot_is_copy(self) -> None:
        """Test mutating a snapshot does not affect the counters."""
        metrics = SyncMetrics()
        snap = metrics.snapshot()
        snap.sync_operations = 99
        assert metrics.snapshot().sync_operations == 0

    def test_invalid_alpha(self) -> None:
        """Test alpha outside (0, 1] is rejected."""
        with pytest.raises(ValueError):
            SyncMetrics(alpha=0)


class TestHealthMonitor:
    """Tests for the background probe loop."""

    def test_runs_probe(self) -> None:
        """Test the probe runs periodically until stopped."""
        ran = threading.Event()
        monitor = HealthMonitor(ran.set, interval=0.01)
        monitor.start()
        try:
            assert ran.wait(2.0)
            assert monitor.running
        finally:
            monitor.stop()
        assert not monitor.running

    def test_probe_errors_do_not_stop(self) -> None:
        """Test a failing probe keeps being called."""
        calls = []
        done = threading.Event()

        def probe() -> None:
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            done.set()

        monitor = HealthMonitor(probe, interval=0.01)
        monitor.start()
        try:
            assert done.wait(2.0)
        finally:
            monitor.stop()

    def test_zero_interval_disabled(self) -> None:
        """Test an interval of 0 never starts a thread."""
        monitor = HealthMonitor(lambda: None, interval=0)
        monitor.start()
        assert not monitor.running
