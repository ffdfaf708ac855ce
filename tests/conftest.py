"""
Pytest configuration and shared fixtures.

Provides isolated XDG/config environments, cache managers on temp
directories, fake clocks and a scripted task provider used by the sync
engine tests.
"""

import logging
import os
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

import pytest

from zen.core.cache import CacheConfig, FileCacheManager, JSONSerializer
from zen.core.config.loader import clear_cache
from zen.core.context import Context
from zen.core.errors import ErrorCode, ZenError
from zen.core.sync.models import (
    ExternalTaskData,
    InternalTaskData,
    ProviderHealth,
    RateLimitInfo,
)

# ==============================================================================
# Environment Fixtures
# ==============================================================================


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point XDG dirs at tmp_path and drop ZEN_* variables from the environment."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(home / ".local" / "share"))
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("NO_COLOR", raising=False)
    for key in list(os.environ):
        if key.startswith("ZEN_"):
            monkeypatch.delenv(key, raising=False)
    clear_cache()
    yield home
    clear_cache()


@pytest.fixture(autouse=True)
def reset_zen_logger():
    """Undo setup_logging so caplog keeps working across tests."""
    logger = logging.getLogger("zen")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    yield
    logger.handlers[:] = saved[0]
    logger.setLevel(saved[1])
    logger.propagate = saved[2]


@pytest.fixture
def project_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Temporary project directory with an empty .zen/ and cwd set to it."""
    project = tmp_path / "project"
    (project / ".zen").mkdir(parents=True)
    monkeypatch.chdir(project)
    return project


# ==============================================================================
# Clocks
# ==============================================================================


class FakeClock:
    """Manually advanced clock usable for both wall and monotonic time."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ==============================================================================
# Cache
# ==============================================================================


@pytest.fixture
def cache_config(tmp_path: Path) -> CacheConfig:
    return CacheConfig(base_path=str(tmp_path / "cache"), cleanup_interval=0)


@pytest.fixture
def cache(cache_config: CacheConfig):
    """JSON cache without a background thread."""
    manager: FileCacheManager[Any] = FileCacheManager(
        cache_config, JSONSerializer(), background=False
    )
    yield manager
    manager.close()


# ==============================================================================
# Fake provider
# ==============================================================================


class FakeProvider:
    """
    In-memory TaskProvider.

    ``fail_with`` holds errors raised by the next calls to get/create/update
    (one per call, consumed in order).
    """

    def __init__(self, name: str = "jira") -> None:
        self._name = name
        self.tasks: dict[str, ExternalTaskData] = {}
        self.fail_with: list[ZenError] = []
        self.calls: list[str] = []
        self.updates: list[tuple[str, dict[str, Any]]] = []
        self.healthy = True
        self._next = 1

    @property
    def name(self) -> str:
        return self._name

    def _maybe_fail(self, op: str) -> None:
        self.calls.append(op)
        if self.fail_with:
            raise self.fail_with.pop(0)

    def get_task(self, external_id: str, *, ctx: Context | None = None) -> ExternalTaskData:
        self._maybe_fail("get_task")
        if external_id not in self.tasks:
            raise ZenError(ErrorCode.NOT_FOUND, "no such issue", provider=self._name)
        return self.tasks[external_id].model_copy()

    def create_task(
        self, task: Mapping[str, Any], *, ctx: Context | None = None
    ) -> ExternalTaskData:
        self._maybe_fail("create_task")
        external_id = f"EXT-{self._next}"
        self._next += 1
        created = ExternalTaskData(id=external_id, **{k: v for k, v in task.items() if k != "id"})
        self.tasks[external_id] = created
        return created.model_copy()

    def update_task(
        self, external_id: str, task: Mapping[str, Any], *, ctx: Context | None = None
    ) -> ExternalTaskData:
        self._maybe_fail("update_task")
        self.updates.append((external_id, dict(task)))
        current = self.tasks[external_id]
        self.tasks[external_id] = current.model_copy(update=dict(task))
        return self.tasks[external_id].model_copy()

    def search_tasks(
        self, query: Mapping[str, Any], *, ctx: Context | None = None
    ) -> list[ExternalTaskData]:
        title = str(query.get("title", ""))
        return [t for t in self.tasks.values() if title in t.title]

    def validate_connection(self, *, ctx: Context | None = None) -> None:
        if not self.healthy:
            raise ZenError(ErrorCode.NETWORK_ERROR, "unreachable", provider=self._name)

    def get_field_mapping(self) -> dict[str, str]:
        return {}

    def map_to_internal(self, external: ExternalTaskData) -> InternalTaskData:
        return InternalTaskData(
            id=external.id,
            title=external.title,
            description=external.description,
            status=external.status or "not_started",
            priority=external.priority or "P2",
            owner=external.assignee,
            updated=external.updated,
        )

    def map_to_external(self, task: InternalTaskData) -> dict[str, Any]:
        return {
            "title": task.title,
            "description": task.description,
            "status": task.status,
            "priority": task.priority,
            "assignee": task.owner,
        }

    def health_check(self, *, ctx: Context | None = None) -> ProviderHealth:
        self.calls.append("health_check")
        if not self.healthy:
            return ProviderHealth(provider=self._name, healthy=False, last_error="down")
        return ProviderHealth(provider=self._name, healthy=True)

    def get_rate_limit_info(self, *, ctx: Context | None = None) -> RateLimitInfo:
        return RateLimitInfo(limit=100, remaining=100)


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


def transient(provider: str = "jira") -> ZenError:
    return ZenError(ErrorCode.NETWORK_ERROR, "connection reset", provider=provider)


@pytest.fixture
def make_transient() -> Callable[..., ZenError]:
    return transient
