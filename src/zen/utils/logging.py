"""
Logging setup, secret redaction, and the JSONL sync event journal.

Modules log through ``logging.getLogger(__name__)``; ``setup_logging`` wires
the root ``zen`` logger once per process with a redacting filter so that
credentials never reach a handler.

The event journal writes one JSON object per line to
``$XDG_DATA_HOME/zen/logs/{workspace}.jsonl``:

{
  "timestamp": "2026-01-15T12:34:56.789Z",
  "event_type": "sync_end",
  "data": { ... event-specific data ... }
}
"""

from __future__ import annotations

import json
import logging
import os
import re
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from rich.console import Console
from rich.logging import RichHandler

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LEVELS = {
    "trace": TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "panic": logging.CRITICAL,
}

SENSITIVE_KEYS = ("api_key", "token", "secret", "password", "oauth_token", "private_key")

_KV_PATTERN = re.compile(
    r"(?P<key>\b[\w.-]*(?:api_key|token|secret|password|private_key)\b)"
    r"(?P<sep>\s*[=:]\s*)(?P<value>[^\s,;]+)",
    re.IGNORECASE,
)


def is_sensitive_key(key: str) -> bool:
    """Return True for keys that name a secret (exact or as a suffix)."""
    lowered = key.lower().replace("-", "_")
    return any(lowered == s or lowered.endswith("_" + s) for s in SENSITIVE_KEYS)


def mask(value: str) -> str:
    """Keep the first and last two characters, star the rest."""
    if len(value) <= 4:
        return "***"
    return value[:2] + "*" * (len(value) - 4) + value[-2:]


def redact(key: str, value: str) -> str:
    """
    Redact value when key names a secret.

    Example:
        >>> redact("api_key", "secret123456")
        'se********56'
        >>> redact("token", "abc")
        '***'
        >>> redact("title", "hello")
        'hello'
    """
    if is_sensitive_key(key):
        return mask(str(value))
    return value


def redact_mapping(data: Any) -> Any:
    """Return a copy of data with every sensitive value masked, recursively."""
    if isinstance(data, dict):
        out: dict[Any, Any] = {}
        for k, v in data.items():
            if isinstance(k, str) and is_sensitive_key(k) and isinstance(v, (str, int)) and v != "":
                out[k] = mask(str(v))
            else:
                out[k] = redact_mapping(v)
        return out
    if isinstance(data, list):
        return [redact_mapping(v) for v in data]
    if isinstance(data, tuple):
        return tuple(redact_mapping(v) for v in data)
    return data


def redact_text(text: str) -> str:
    """Mask ``key=value`` / ``key: value`` pairs whose key names a secret."""
    return _KV_PATTERN.sub(
        lambda m: f"{m.group('key')}{m.group('sep')}{mask(m.group('value'))}", text
    )


class RedactingFilter(logging.Filter):
    """Mask secrets in log messages, args, and ``extra={"data": ...}`` payloads."""

    def filter(self, record: logging.LogRecord) -> bool:
        data = getattr(record, "data", None)
        if data is not None:
            record.data = redact_mapping(data)
        if isinstance(record.msg, str):
            try:
                message = record.getMessage()
            except (TypeError, ValueError):
                # Leave malformed records for the handler to report.
                return True
            record.msg = redact_text(message)
            record.args = None
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        data = getattr(record, "data", None)
        if isinstance(data, dict):
            payload.update(data)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(
    level: str = "info",
    fmt: str = "text",
    *,
    verbose: bool = False,
    no_color: bool = False,
) -> logging.Logger:
    """
    Configure the ``zen`` logger.

    Args:
        level: One of trace|debug|info|warn|error|fatal|panic
        fmt: "text" (rich handler on stderr) or "json"
        verbose: Force debug level
        no_color: Disable colour in text output

    Returns:
        The configured ``zen`` logger
    """
    logger = logging.getLogger("zen")
    numeric = LEVELS.get(level.lower(), logging.INFO)
    if verbose:
        numeric = min(numeric, logging.DEBUG)
    logger.setLevel(numeric)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler: logging.Handler
    if fmt == "json":
        handler = logging.StreamHandler()
        handler.setFormatter(JSONFormatter())
    else:
        console = Console(stderr=True, no_color=no_color)
        handler = RichHandler(console=console, show_path=False, rich_tracebacks=False)
    handler.addFilter(RedactingFilter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger


class EventType(str, Enum):
    """Types of events written to the sync journal."""

    SYNC_START = "sync_start"
    SYNC_END = "sync_end"
    CONFLICT = "conflict"
    CIRCUIT_OPEN = "circuit_open"
    ERROR = "error"


class LogEntry(BaseModel):
    """A single journal line."""

    model_config = ConfigDict(use_enum_values=True)

    timestamp: datetime = Field(..., description="When the event occurred (ISO 8601 format)")
    event_type: EventType = Field(..., description="Type of event")
    data: dict[str, Any] = Field(default_factory=dict, description="Event-specific data")


class SyncEventLogger:
    """
    JSONL journal of sync events.

    Example:
        journal = SyncEventLogger.init("my-workspace")
        journal.log_event(EventType.SYNC_START, {"task_id": "T1"})
    """

    def __init__(self, log_file: Path):
        self.log_file = Path(log_file)
        self.log_file.parent.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def init(workspace: str) -> SyncEventLogger:
        """
        Create a journal for a workspace under XDG_DATA_HOME.

        Raises:
            ValueError: If workspace is empty
        """
        if not workspace:
            raise ValueError("workspace cannot be empty")
        xdg_data_home = os.environ.get("XDG_DATA_HOME") or os.path.expanduser("~/.local/share")
        return SyncEventLogger(Path(xdg_data_home) / "zen" / "logs" / f"{workspace}.jsonl")

    def log_event(self, event_type: EventType, data: dict[str, Any] | None = None) -> None:
        entry = LogEntry(
            timestamp=datetime.now(timezone.utc),
            event_type=event_type,
            data=redact_mapping(data or {}),
        )
        line = entry.model_dump_json(exclude_none=True) + "\n"
        try:
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            logging.getLogger(__name__).warning("Failed to write event log %s: %s", self.log_file, e)

    def read_events(self) -> list[LogEntry]:
        if not self.log_file.exists():
            return []
        entries = []
        for line in self.log_file.read_text(encoding="utf-8").splitlines():
            if line.strip():
                entries.append(LogEntry.model_validate_json(line))
        return entries


__all__ = [
    "EventType",
    "JSONFormatter",
    "LEVELS",
    "LogEntry",
    "RedactingFilter",
    "SENSITIVE_KEYS",
    "SyncEventLogger",
    "TRACE",
    "is_sensitive_key",
    "mask",
    "redact",
    "redact_mapping",
    "redact_text",
    "setup_logging",
]
