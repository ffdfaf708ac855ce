"""
Wiring between CLI commands and the core.

The root callback stores a CLIState on the Typer context; commands build the
cache and sync engine from it through ``open_cache`` / ``open_engine``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import typer

from zen.core.adapters import build_providers, credentials_from_config
from zen.core.cache import FileCacheManager, JSONSerializer
from zen.core.config.models import ZenConfig
from zen.core.providers.discovery import BinaryDiscovery
from zen.core.sync.engine import SyncEngine
from zen.core.sync.records import SyncRecordStore
from zen.core.sync.task_store import FileTaskStore
from zen.utils.logging import SyncEventLogger

logger = logging.getLogger(__name__)


@dataclass
class CLIState:
    """Per-invocation settings resolved by the root callback."""

    config: ZenConfig
    output: str = "text"
    verbose: bool = False
    project_dir: Path | None = None


def get_state(ctx: typer.Context) -> CLIState:
    state = ctx.find_root().obj
    if not isinstance(state, CLIState):
        # Sub-apps invoked directly (tests) get defaults.
        state = CLIState(config=ZenConfig())
        ctx.find_root().obj = state
    return state


def workspace_root(config: ZenConfig, project_dir: Path | None = None) -> Path:
    if config.workspace.root:
        return Path(config.workspace.root).expanduser()
    return project_dir or Path.cwd()


def state_dir(config: ZenConfig, project_dir: Path | None = None) -> Path:
    return workspace_root(config, project_dir) / config.workspace.zen_path


def open_cache(config: ZenConfig, *, background: bool = True) -> FileCacheManager[Any]:
    return FileCacheManager(config.cache, JSONSerializer(), background=background)


def _event_log(root: Path) -> SyncEventLogger | None:
    try:
        return SyncEventLogger.init(root.name or "default")
    except OSError as e:
        logger.warning("Sync event journal disabled: %s", e)
        return None


@contextmanager
def open_engine(state: CLIState) -> Iterator[SyncEngine]:
    """
    Build a SyncEngine with every configured provider registered.

    The cache, provider clients and engine are closed on exit.
    """
    config = state.config
    cache = open_cache(config)
    providers: dict[str, Any] = {}
    engine: SyncEngine | None = None
    try:
        root = workspace_root(config, state.project_dir)
        tasks = FileTaskStore(state_dir(config, state.project_dir) / "tasks")
        discovery = BinaryDiscovery(store=cache)
        providers = build_providers(config, credentials_from_config(config), discovery=discovery)
        engine = SyncEngine(
            config.integrations,
            SyncRecordStore(cache),
            tasks,
            event_log=_event_log(root),
        )
        for provider in providers.values():
            engine.register_provider(provider)
        yield engine
    finally:
        if engine is not None:
            engine.close()
        for provider in providers.values():
            close = getattr(provider, "close", None)
            if callable(close):
                close()
        cache.close()


__all__ = [
    "CLIState",
    "get_state",
    "open_cache",
    "open_engine",
    "state_dir",
    "workspace_root",
]
