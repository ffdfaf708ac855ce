"""
Sub-process executor for CLI providers.

Security rules enforced here:
- NO shell. argv is passed as a list; nothing is interpolated.
- Minimal environment. Only PATH is carried over from the parent, plus the
  key/value pairs the caller passes explicitly.
- Values that follow sensitive flags (``--token``, ``-p`` ...) are replaced
  by ``***`` before anything is logged.

Example:
    >>> executor = Executor()
    >>> result = executor.execute("/usr/bin/git", ["--version"])
    >>> result.success(), result.stdout.startswith("git version")
    (True, True)
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
import threading
import time
from collections.abc import Iterator, Mapping, Sequence

from zen.core.context import Context, ensure_context
from zen.core.errors import ErrorCode, Result, ZenError

logger = logging.getLogger(__name__)

IS_UNIX = sys.platform != "win32"

DEFAULT_PATH = "/usr/local/bin:/usr/bin:/bin"
ENV_ALLOWLIST = ("PATH",)

SENSITIVE_FLAGS = frozenset(
    {"--password", "-p", "--token", "-t", "--secret", "-s", "--key", "-k", "--api-key", "--auth"}
)
REDACTED = "***"

_POLL_INTERVAL = 0.05


def sanitize_args(args: Sequence[str]) -> list[str]:
    """
    Return a copy of args that is safe to log.

    Example:
        >>> sanitize_args(["login", "--token", "abc123", "--api-key=xyz"])
        ['login', '--token', '***', '--api-key=***']
    """
    out: list[str] = []
    redact_next = False
    for arg in args:
        if redact_next:
            out.append(REDACTED)
            redact_next = False
            continue
        flag, sep, _ = arg.partition("=")
        if sep and flag in SENSITIVE_FLAGS:
            out.append(f"{flag}={REDACTED}")
        else:
            out.append(arg)
            redact_next = arg in SENSITIVE_FLAGS
    return out


def build_env(extra: Mapping[str, str] | None = None) -> dict[str, str]:
    """Fresh environment: allowlisted parent variables plus extra."""
    env: dict[str, str] = {}
    for key in ENV_ALLOWLIST:
        value = os.environ.get(key)
        if value:
            env[key] = value
    env.setdefault("PATH", DEFAULT_PATH)
    if extra:
        env.update({str(k): str(v) for k, v in extra.items()})
    return env


def kill_process_group(proc: subprocess.Popen) -> None:
    """Kill proc and its process group, then reap it."""
    if proc.poll() is not None:
        return
    try:
        if IS_UNIX:
            os.killpg(os.getpgid(proc.pid), signal.SIGKILL)
        else:
            proc.kill()
    except (ProcessLookupError, OSError) as e:
        logger.debug(f"Process kill failed (process may be dead): {e}")
    try:
        proc.wait(timeout=5.0)
    except subprocess.TimeoutExpired:
        logger.warning(f"Process {proc.pid} did not exit after SIGKILL")


def _popen(
    binary_path: str,
    args: Sequence[str],
    *,
    env: Mapping[str, str] | None,
    work_dir: str | None,
    merge_stderr: bool,
) -> subprocess.Popen:
    argv = [binary_path, *args]
    try:
        return subprocess.Popen(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT if merge_stderr else subprocess.PIPE,
            env=build_env(env),
            cwd=work_dir or None,
            start_new_session=IS_UNIX,
        )
    except FileNotFoundError as e:
        raise ZenError(
            ErrorCode.NOT_FOUND, f"binary not found: {binary_path}", cause=e, retryable=False
        )
    except PermissionError as e:
        raise ZenError(
            ErrorCode.EXECUTION_FAILED,
            f"binary is not executable: {binary_path}",
            cause=e,
            retryable=False,
        )
    except OSError as e:
        raise ZenError(ErrorCode.EXECUTION_FAILED, f"failed to start {binary_path}", cause=e)


class Executor:
    """
    Runs binaries without a shell.

    The executor holds no state and starts no background threads for
    ``execute``; each ``stream`` reader owns exactly one child process.
    """

    def execute(
        self,
        binary_path: str,
        args: Sequence[str],
        *,
        ctx: Context | None = None,
        env: Mapping[str, str] | None = None,
        work_dir: str | None = None,
    ) -> Result:
        """
        Run a command to completion and capture its output.

        A non-zero exit status is returned in ``Result.exit_code`` and is not
        raised.

        Raises:
            ZenError: not_found / execution_failed when the process cannot
                start, canceled / timeout when ctx finishes first
        """
        ctx = ensure_context(ctx)
        ctx.check()
        logger.debug("exec %s %s", binary_path, " ".join(sanitize_args(args)))

        started = time.monotonic()
        proc = _popen(binary_path, args, env=env, work_dir=work_dir, merge_stderr=False)
        try:
            while True:
                remaining = ctx.remaining()
                poll = _POLL_INTERVAL if remaining is None else min(_POLL_INTERVAL, remaining)
                try:
                    stdout, stderr = proc.communicate(timeout=max(poll, 0.001))
                    break
                except subprocess.TimeoutExpired:
                    if ctx.done():
                        kill_process_group(proc)
                        proc.communicate()
                        error = ctx.err() or ZenError(
                            ErrorCode.CANCELED, "operation canceled", retryable=False
                        )
                        error.operation = error.operation or os.path.basename(binary_path)
                        logger.debug("exec %s interrupted: %s", binary_path, error.code.value)
                        raise error
        finally:
            if proc.poll() is None:
                kill_process_group(proc)

        duration = time.monotonic() - started
        return Result(
            exit_code=proc.returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            duration=duration,
            meta={"binary": binary_path},
        )

    def stream(
        self,
        binary_path: str,
        args: Sequence[str],
        *,
        ctx: Context | None = None,
        env: Mapping[str, str] | None = None,
        work_dir: str | None = None,
    ) -> StreamReader:
        """
        Start a command and return a line reader over its combined output.

        stderr is merged into stdout. Close the reader (or use it as a
        context manager) to reap the child.
        """
        ctx = ensure_context(ctx)
        ctx.check()
        logger.debug("stream %s %s", binary_path, " ".join(sanitize_args(args)))
        proc = _popen(binary_path, args, env=env, work_dir=work_dir, merge_stderr=True)
        return StreamReader(proc, ctx)


class StreamReader:
    """
    Line iterator over a running child process.

    ``close()`` is idempotent: it closes the pipe, waits for the child and
    records ``exit_code``. If the context finishes while streaming, the child
    is killed and reaped.
    """

    def __init__(self, proc: subprocess.Popen, ctx: Context) -> None:
        self._proc = proc
        self._ctx = ctx
        self._closed = False
        self._lock = threading.Lock()
        self.exit_code: int | None = None
        self._watcher = threading.Thread(target=self._watch, name="zen-stream", daemon=True)
        self._watcher.start()

    def _watch(self) -> None:
        while self._proc.poll() is None:
            if self._ctx.done():
                kill_process_group(self._proc)
                return
            time.sleep(_POLL_INTERVAL)

    def __iter__(self) -> Iterator[str]:
        return self

    def __next__(self) -> str:
        stdout = self._proc.stdout
        if self._closed or stdout is None:
            raise StopIteration
        line = stdout.readline()
        if not line:
            self.close()
            raise StopIteration
        return line.decode("utf-8", errors="replace")

    def read(self) -> str:
        """Read everything that remains."""
        return "".join(self)

    def close(self) -> int | None:
        with self._lock:
            if self._closed:
                return self.exit_code
            self._closed = True
        try:
            if self._proc.stdout is not None:
                self._proc.stdout.close()
        except OSError as e:
            logger.debug(f"Closing stream pipe failed: {e}")
        try:
            self.exit_code = self._proc.wait(timeout=5.0)
        except subprocess.TimeoutExpired:
            kill_process_group(self._proc)
            self.exit_code = self._proc.returncode
        return self.exit_code

    def err(self) -> ZenError | None:
        """Context error if the stream was interrupted."""
        return self._ctx.err()

    def __enter__(self) -> StreamReader:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


__all__ = [
    "DEFAULT_PATH",
    "ENV_ALLOWLIST",
    "Executor",
    "SENSITIVE_FLAGS",
    "StreamReader",
    "build_env",
    "kill_process_group",
    "sanitize_args",
]
