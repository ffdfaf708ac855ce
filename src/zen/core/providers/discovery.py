"""
Binary discovery with a TTL-memoized lookup cache.

Discovery answers two questions for CLI providers: where is the binary,
and which version is it. Lookups (including misses) are cached per name
for ``ttl`` seconds so repeated provider construction does not rescan PATH.

Example:
    >>> discovery = BinaryDiscovery(ttl=300)
    >>> result = discovery.discover("git", ["--version"], min_version="2.20")
    >>> result.available, result.version
    (True, '2.39.0')
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import threading
import time
from collections.abc import Callable, Sequence

from zen.core.cache.manager import FileCacheManager
from zen.core.context import Context, ensure_context
from zen.core.errors import ErrorCode, ZenError
from zen.core.providers.executor import Executor
from zen.core.providers.models import DiscoveryResult

logger = logging.getLogger(__name__)

DEFAULT_TTL = 300.0
VERSION_TIMEOUT = 5.0

_VERSION_PATTERNS = (
    re.compile(r"v?(\d+\.\d+\.\d+(?:-[0-9A-Za-z.-]+)?)"),
    re.compile(r"v?(\d+\.\d+)"),
    re.compile(r"v?(\d+)"),
)


def _store_key(name: str) -> str:
    return f"discovery:{name}"


def parse_version(output: str) -> str:
    """
    Extract a version string from tool output.

    The ``v`` prefix is dropped; pre-release suffixes are kept.

    Raises:
        ZenError: parse_failed when no version-like token is present
    """
    text = output.strip()
    for pattern in _VERSION_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)
    raise ZenError(
        ErrorCode.PARSE_FAILED, f"no version pattern found in output: {text!r}", retryable=False
    )


def _version_parts(version: str) -> list[int]:
    version = version.strip().removeprefix("v")
    for sep in ("-", "+"):
        version = version.split(sep, 1)[0]
    try:
        parts = [int(p) for p in version.split(".")]
    except ValueError as e:
        raise ZenError(
            ErrorCode.PARSE_FAILED, f"invalid version {version!r}", cause=e, retryable=False
        )
    return parts


def validate_version(current: str, required: str) -> bool:
    """
    Return True if current >= required.

    Pre-release and build metadata are ignored. A part missing from
    current compares as less than any required part.

    Raises:
        ZenError: parse_failed if either version is not numeric
    """
    current_parts = _version_parts(current)
    required_parts = _version_parts(required)
    for i, req in enumerate(required_parts):
        if i >= len(current_parts):
            return False
        if current_parts[i] < req:
            return False
        if current_parts[i] > req:
            return True
    return True


class BinaryDiscovery:
    """
    PATH lookup and version probing, memoized per binary name.

    Args:
        ttl: Seconds a lookup stays cached (0 disables caching)
        search_path: os.pathsep-separated directories; defaults to $PATH
        executor: Executor used to run version probes
        store: Optional persistent cache shared across processes
        clock: Monotonic clock (injectable for tests)
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        *,
        search_path: str | None = None,
        executor: Executor | None = None,
        store: FileCacheManager[dict] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self.search_path = search_path
        self.executor = executor or Executor()
        self.store = store
        self._clock = clock
        self._lock = threading.Lock()
        self._paths: dict[str, tuple[str | None, float]] = {}

    def _cached(self, name: str) -> tuple[bool, str | None]:
        if self.ttl <= 0:
            return False, None
        with self._lock:
            hit = self._paths.get(name)
            if hit is None:
                return False, None
            path, stored_at = hit
            if self._clock() - stored_at >= self.ttl:
                del self._paths[name]
                return False, None
            return True, path

    def _remember(self, name: str, path: str | None) -> None:
        if self.ttl <= 0:
            return
        with self._lock:
            self._paths[name] = (path, self._clock())
        if self.store is not None:
            try:
                self.store.put(_store_key(name), {"path": path or ""}, ttl=self.ttl)
            except ZenError as e:
                logger.debug("Could not persist discovery of %s: %s", name, e)

    def _stored(self, name: str) -> tuple[bool, str | None]:
        if self.store is None or self.ttl <= 0:
            return False, None
        try:
            path = self.store.get(_store_key(name)).data.get("path") or None
        except ZenError:
            return False, None
        if path is not None and not os.access(path, os.X_OK):
            return False, None
        with self._lock:
            self._paths[name] = (path, self._clock())
        return True, path

    def find_binary(self, name: str) -> str:
        """
        Absolute path of name on the search path.

        Raises:
            ZenError: not_found (cached like a hit)
        """
        found, path = self._cached(name)
        if not found:
            found, path = self._stored(name)
        if not found:
            path = shutil.which(name, path=self.search_path or os.environ.get("PATH"))
            if path is not None:
                path = os.path.abspath(path)
            self._remember(name, path)
        if path is None:
            raise ZenError(
                ErrorCode.NOT_FOUND,
                f"binary {name!r} not found in PATH",
                operation="discover",
                retryable=False,
            )
        return path

    def get_version(
        self,
        path: str,
        version_args: Sequence[str] = ("--version",),
        *,
        timeout: float = VERSION_TIMEOUT,
        ctx: Context | None = None,
    ) -> str:
        """Run the binary with version_args and parse its combined output."""
        probe_ctx = ensure_context(ctx).with_timeout(timeout)
        result = self.executor.execute(path, list(version_args), ctx=probe_ctx)
        output = "\n".join(p for p in (result.stdout, result.stderr) if p)
        return parse_version(output)

    def discover(
        self,
        name: str,
        version_args: Sequence[str] = ("--version",),
        min_version: str | None = None,
        *,
        ctx: Context | None = None,
    ) -> DiscoveryResult:
        """
        Find name and check its version.

        "Not installed" and "too old" are reported through
        ``available=False`` with a reason; only unexpected failures raise.
        """
        try:
            path = self.find_binary(name)
        except ZenError as e:
            if e.code != ErrorCode.NOT_FOUND:
                raise
            return DiscoveryResult(name=name, available=False, reason=f"{name} not found in PATH")

        try:
            version = self.get_version(path, version_args, ctx=ctx)
        except ZenError as e:
            if e.code in (ErrorCode.PARSE_FAILED, ErrorCode.TIMEOUT):
                return DiscoveryResult(
                    name=name, available=False, path=path, reason=f"cannot determine version: {e}"
                )
            raise

        if min_version and not validate_version(version, min_version):
            return DiscoveryResult(
                name=name,
                available=False,
                path=path,
                version=version,
                reason=f"{name} {version} is older than required {min_version}",
            )
        return DiscoveryResult(name=name, available=True, path=path, version=version)

    def clear_cache(self) -> None:
        with self._lock:
            self._paths.clear()


__all__ = ["BinaryDiscovery", "parse_version", "validate_version"]
