"""
Output rendering shared by CLI commands.

``text`` output goes through a rich Console; ``json`` and ``yaml`` are
written as plain text so they can be piped into other tools.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from typing import Any

import typer
import yaml
from pydantic import BaseModel
from rich.console import Console

OUTPUT_FORMATS = ("text", "json", "yaml")

console = Console()


def to_data(value: Any) -> Any:
    """Convert models (and containers of models) to JSON-compatible data."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, Mapping):
        return {str(k): to_data(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_data(v) for v in value]
    return value


def emit(data: Any, output_format: str) -> None:
    """Write data as JSON or YAML on stdout."""
    payload = to_data(data)
    if output_format == "yaml":
        typer.echo(yaml.safe_dump(payload, sort_keys=False, default_flow_style=False), nl=False)
    else:
        typer.echo(json.dumps(payload, indent=2, default=str))


def set_color(enabled: bool) -> None:
    console.no_color = not enabled


def format_duration(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    return f"{seconds:.2f}s"


def format_bytes(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.0f}{unit}" if unit == "B" else f"{value:.1f}{unit}"
        value /= 1024
    return f"{size}B"


def join(values: Sequence[str]) -> str:
    return ", ".join(values) if values else "-"


__all__ = [
    "OUTPUT_FORMATS",
    "console",
    "emit",
    "format_bytes",
    "format_duration",
    "join",
    "set_color",
    "to_data",
]
