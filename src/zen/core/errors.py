"""
Error taxonomy and the unified Result shape for zen.

Every failure raised by the core is a ZenError carrying a closed ErrorCode,
so callers branch on codes instead of message text. Result holds the
outcome of either a CLI invocation (exit code) or an HTTP call (status).

Example:
    >>> err = ZenError(ErrorCode.TIMEOUT, "request timed out", provider="jira",
    ...                operation="get_task")
    >>> str(err)
    '[jira:get_task:timeout] request timed out'
    >>> err.retryable
    True
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ErrorCode(str, Enum):
    """Closed set of error codes used across the core."""

    NOT_FOUND = "not_found"
    VERSION_MISMATCH = "version_mismatch"
    EXECUTION_FAILED = "execution_failed"
    TIMEOUT = "timeout"
    CANCELED = "canceled"
    PARSE_FAILED = "parse_failed"
    INVALID_OPERATION = "invalid_operation"
    AUTH_FAILED = "auth_failed"
    RATE_LIMITED = "rate_limited"
    NETWORK_ERROR = "network_error"
    SYNC_CONFLICT = "sync_conflict"
    INVALID_DATA = "invalid_data"
    CONFIG_ERROR = "config_error"
    PROVIDER_ERROR = "provider_error"
    ALREADY_EXISTS = "already_exists"

    # Cache specific
    INVALID_KEY = "invalid_key"
    STORAGE_FULL = "storage_full"
    CORRUPTED = "corrupted"
    PERMISSION = "permission"
    SERIALIZATION = "serialization"


RETRYABLE_CODES = frozenset(
    {
        ErrorCode.NETWORK_ERROR,
        ErrorCode.RATE_LIMITED,
        ErrorCode.TIMEOUT,
        ErrorCode.PROVIDER_ERROR,
    }
)


class ZenError(Exception):
    """
    Structured error raised by the zen core.

    Attributes:
        code: Error code from the closed ErrorCode set
        message: Human-readable message
        provider: Provider name, when the failure is provider specific
        operation: Operation name (e.g. "get_task", "git.status")
        task_id: Task the failure relates to, if any
        cause: Wrapped underlying exception
        retryable: Whether the failed call may succeed if retried
        timestamp: When the error was created (UTC)
        hint: Optional actionable hint shown by the CLI
    """

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        *,
        provider: str | None = None,
        operation: str | None = None,
        task_id: str | None = None,
        cause: BaseException | None = None,
        retryable: bool | None = None,
        hint: str | None = None,
    ) -> None:
        self.code = ErrorCode(code)
        self.message = message
        self.provider = provider
        self.operation = operation
        self.task_id = task_id
        self.cause = cause
        self.retryable = self.code in RETRYABLE_CODES if retryable is None else retryable
        self.timestamp = datetime.now(timezone.utc)
        self.hint = hint
        super().__init__(str(self))
        if cause is not None:
            self.__cause__ = cause

    def _prefix(self) -> str:
        parts = [p for p in (self.provider, self.operation) if p]
        parts.append(self.code.value)
        return "[" + ":".join(parts) + "]"

    def __str__(self) -> str:
        text = f"{self._prefix()} {self.message}"
        if self.cause is not None:
            text += f": {self.cause}"
        return text

    def __repr__(self) -> str:
        return f"ZenError(code={self.code.value!r}, message={self.message!r})"

    def to_dict(self) -> dict[str, Any]:
        """Serializable form used by json/yaml CLI output."""
        data: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.provider:
            data["provider"] = self.provider
        if self.task_id:
            data["task_id"] = self.task_id
        data["retryable"] = self.retryable
        return data


def iter_causes(err: BaseException | None):
    """Yield err and every exception reachable through its cause chain."""
    seen: set[int] = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))
        yield err
        err = err.__cause__


def is_code(err: BaseException | None, code: ErrorCode) -> bool:
    """Return True if err, or anything it wraps, is a ZenError with code."""
    return any(isinstance(e, ZenError) and e.code == code for e in iter_causes(err))


def error_code_of(err: BaseException | None) -> ErrorCode | None:
    """Return the code of the outermost ZenError in the chain."""
    for e in iter_causes(err):
        if isinstance(e, ZenError):
            return e.code
    return None


def is_retryable(err: BaseException | None) -> bool:
    """Return whether err should be retried."""
    for e in iter_causes(err):
        if isinstance(e, ZenError):
            return e.retryable
    return False


class Result(BaseModel):
    """
    Outcome of a provider call, CLI or HTTP.

    A non-zero exit code is not an execution error: the call completed and
    the command reported failure.
    """

    exit_code: int = Field(default=0, description="Process exit code or HTTP status")
    stdout: str = Field(default="", description="Captured standard output")
    stderr: str = Field(default="", description="Captured standard error")
    body: bytes = Field(default=b"", description="HTTP response body")
    headers: dict[str, str] = Field(default_factory=dict, description="HTTP headers")
    meta: dict[str, Any] = Field(default_factory=dict, description="Extra call metadata")
    duration: float = Field(default=0.0, description="Wall-clock duration in seconds")

    def success(self) -> bool:
        return self.exit_code == 0 or 200 <= self.exit_code < 300

    def is_client_error(self) -> bool:
        return 400 <= self.exit_code < 500

    def is_server_error(self) -> bool:
        return 500 <= self.exit_code < 600

    def output(self) -> str:
        """Return the HTTP body when present, otherwise stdout."""
        if self.body:
            return self.body.decode("utf-8", errors="replace")
        return self.stdout


__all__ = [
    "ErrorCode",
    "RETRYABLE_CODES",
    "ZenError",
    "Result",
    "error_code_of",
    "is_code",
    "is_retryable",
    "iter_causes",
]
