"""Normalization helpers shared by provider adapters."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from zen.core.sync.models import DEFAULT_PRIORITY, PRIORITIES, TaskStatus


def normalize_token(value: str) -> str:
    """Lowercase and replace whitespace with underscores."""
    return "_".join(str(value).strip().lower().split())


def normalize_priority(value: str | None) -> str:
    """Accept ``P0``..``P3`` in any case, else the default priority."""
    if value:
        candidate = str(value).strip().upper()
        if candidate in PRIORITIES:
            return candidate
    return DEFAULT_PRIORITY


def external_priority(value: str | None) -> str:
    """
    Inbound priority: ``P0``..``P3`` upper-cased, anything else passed
    through as a normalized token, empty as the default priority.
    """
    if not value or not str(value).strip():
        return DEFAULT_PRIORITY
    candidate = str(value).strip().upper()
    if candidate in PRIORITIES:
        return candidate
    return normalize_token(value)


def normalize_status(value: str | None) -> str:
    """Return a known status token, defaulting to not_started."""
    token = normalize_token(value or "")
    known = {s.value for s in TaskStatus}
    return token if token in known else TaskStatus.NOT_STARTED.value


def parse_timestamp(value: Any) -> datetime | None:
    """Parse ISO-8601 (including Jira's ``+0000`` offsets); naive values are UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip().replace("Z", "+00:00")
        # Jira: 2024-01-02T03:04:05.000+0000
        if len(text) > 5 and text[-5] in "+-" and text[-4:].isdigit():
            text = f"{text[:-2]}:{text[-2:]}"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


__all__ = [
    "external_priority",
    "normalize_priority",
    "normalize_status",
    "normalize_token",
    "parse_timestamp",
]
