"""
Provider capability interfaces.

Providers compose capabilities rather than inherit them:

- Provider       every provider (info / execute / stream)
- CLIProvider    adds binary_path, work_dir, env and exec_args_for
- TaskProvider   adds the task-system operations used by the sync engine

A concrete adapter implements whichever protocols apply; the engine only
requires TaskProvider.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, Protocol, runtime_checkable

from zen.core.context import Context
from zen.core.errors import Result
from zen.core.providers.models import ProviderInfo
from zen.core.sync.models import (
    ExternalTaskData,
    InternalTaskData,
    ProviderHealth,
    RateLimitInfo,
)


@runtime_checkable
class Provider(Protocol):
    """Base capability set shared by CLI and API providers."""

    @property
    def name(self) -> str: ...

    def info(self, ctx: Context | None = None) -> ProviderInfo: ...

    def execute(
        self, op: str, params: Mapping[str, Any] | None = None, *, ctx: Context | None = None
    ) -> Result: ...

    def stream(
        self, op: str, params: Mapping[str, Any] | None = None, *, ctx: Context | None = None
    ) -> Iterable[str]: ...


@runtime_checkable
class CLIProvider(Provider, Protocol):
    """Provider backed by an external binary."""

    @property
    def binary_path(self) -> str: ...

    @property
    def work_dir(self) -> str | None: ...

    @property
    def env(self) -> dict[str, str]: ...

    def exec_args_for(self, op: str, params: Mapping[str, Any] | None = None) -> list[str]: ...


@runtime_checkable
class TaskProvider(Protocol):
    """Task-system operations consumed by the sync engine."""

    @property
    def name(self) -> str: ...

    def get_task(self, external_id: str, *, ctx: Context | None = None) -> ExternalTaskData: ...

    def create_task(
        self, task: Mapping[str, Any], *, ctx: Context | None = None
    ) -> ExternalTaskData: ...

    def update_task(
        self, external_id: str, task: Mapping[str, Any], *, ctx: Context | None = None
    ) -> ExternalTaskData: ...

    def search_tasks(
        self, query: Mapping[str, Any], *, ctx: Context | None = None
    ) -> list[ExternalTaskData]: ...

    def validate_connection(self, *, ctx: Context | None = None) -> None: ...

    def get_field_mapping(self) -> dict[str, str]: ...

    def map_to_internal(self, external: ExternalTaskData) -> InternalTaskData: ...

    def map_to_external(self, task: InternalTaskData) -> dict[str, Any]: ...

    def health_check(self, *, ctx: Context | None = None) -> ProviderHealth: ...

    def get_rate_limit_info(self, *, ctx: Context | None = None) -> RateLimitInfo: ...


__all__ = ["CLIProvider", "Provider", "TaskProvider"]
