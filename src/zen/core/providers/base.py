"""
Shared implementation for CLI-backed providers.

BaseCLIProvider combines BinaryDiscovery and Executor. Subclasses declare
their operations and translate ``"<provider>.<action>"`` names to argv in
``_args_for``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from zen.core.context import Context
from zen.core.errors import ErrorCode, Result, ZenError
from zen.core.providers.discovery import BinaryDiscovery
from zen.core.providers.executor import Executor, StreamReader
from zen.core.providers.models import ProviderInfo, ProviderKind

logger = logging.getLogger(__name__)


class BaseCLIProvider:
    """
    Provider wrapping one external binary.

    Args:
        name: Provider name (also the operation prefix)
        binary: Executable name looked up on PATH, or an absolute path
        operations: Supported action names (without the provider prefix)
        version_args: Arguments that make the binary print its version
        min_version: Minimum accepted version, if any
        discovery: Shared discovery cache
        executor: Executor used for every invocation
        work_dir: Working directory for commands (None inherits)
        env: Extra environment passed to every command
    """

    def __init__(
        self,
        name: str,
        binary: str,
        operations: Sequence[str],
        *,
        version_args: Sequence[str] = ("--version",),
        min_version: str | None = None,
        discovery: BinaryDiscovery | None = None,
        executor: Executor | None = None,
        work_dir: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._name = name
        self._binary = binary
        self.operations = tuple(operations)
        self.version_args = tuple(version_args)
        self.min_version = min_version
        self.executor = executor or Executor()
        self.discovery = discovery or BinaryDiscovery(executor=self.executor)
        self._work_dir = work_dir
        self._env = dict(env or {})
        self._binary_path: str | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def binary_path(self) -> str:
        """Resolved absolute binary path. Raises ZenError(not_found)."""
        if self._binary_path is None:
            try:
                self._binary_path = self.discovery.find_binary(self._binary)
            except ZenError as e:
                e.provider = self._name
                raise
        return self._binary_path

    @property
    def work_dir(self) -> str | None:
        return self._work_dir

    @property
    def env(self) -> dict[str, str]:
        return dict(self._env)

    def capabilities(self) -> dict[str, bool]:
        return {f"{self._name}.{op}": True for op in self.operations}

    def info(self, ctx: Context | None = None) -> ProviderInfo:
        result = self.discovery.discover(
            self._binary, self.version_args, self.min_version, ctx=ctx
        )
        return ProviderInfo(
            name=self._name,
            kind=ProviderKind.CLI,
            version=result.version,
            available=result.available,
            reason=result.reason,
            capabilities=self.capabilities(),
            binary_path=result.path,
        )

    def _action(self, op: str) -> str:
        prefix = f"{self._name}."
        action = op[len(prefix):] if op.startswith(prefix) else op
        if action not in self.operations:
            raise ZenError(
                ErrorCode.INVALID_OPERATION,
                f"unsupported operation {op!r}",
                provider=self._name,
                operation=op,
            )
        return action

    def exec_args_for(self, op: str, params: Mapping[str, Any] | None = None) -> list[str]:
        """Translate an operation name and params to argv (without the binary)."""
        return self._args_for(self._action(op), dict(params or {}))

    def _args_for(self, action: str, params: dict[str, Any]) -> list[str]:
        raise NotImplementedError

    def execute(
        self, op: str, params: Mapping[str, Any] | None = None, *, ctx: Context | None = None
    ) -> Result:
        args = self.exec_args_for(op, params)
        try:
            return self.executor.execute(
                self.binary_path, args, ctx=ctx, env=self._env, work_dir=self._work_dir
            )
        except ZenError as e:
            e.provider = e.provider or self._name
            e.operation = e.operation or op
            raise

    def stream(
        self, op: str, params: Mapping[str, Any] | None = None, *, ctx: Context | None = None
    ) -> StreamReader:
        args = self.exec_args_for(op, params)
        return self.executor.stream(
            self.binary_path, args, ctx=ctx, env=self._env, work_dir=self._work_dir
        )


__all__ = ["BaseCLIProvider"]
