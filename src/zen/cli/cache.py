"""
zen CLI - Cache maintenance commands.
"""

import typer
from rich.table import Table

from zen.cli.errors import handle_error
from zen.cli.output import console, emit, format_bytes
from zen.cli.runtime import get_state, open_cache
from zen.core.cache.manager import read_index_file
from zen.core.errors import ZenError
from zen.core.sync.records import KEY_PREFIX

app = typer.Typer(
    name="cache",
    help="Inspect and maintain the local cache",
    no_args_is_help=True,
)


@app.command("info")
def info(
    ctx: typer.Context,
    entries: bool = typer.Option(False, "--entries", "-e", help="List individual entries"),
) -> None:
    """Show cache size, entry count and hit ratio."""
    state = get_state(ctx)
    try:
        cache = open_cache(state.config, background=False)
        try:
            summary = cache.info()
        finally:
            cache.close()
    except ZenError as e:
        handle_error(e, state.output)

    raw = read_index_file(cache.root).get("entries", {}) if entries else {}

    if state.output != "text":
        data = summary.as_dict()
        if entries:
            data["entries"] = raw
        emit(data, state.output)
        return

    console.print(f"[bold]Cache:[/bold] {summary.base_path}")
    console.print(
        f"  Size: {format_bytes(summary.total_bytes)} / {format_bytes(summary.size_limit_bytes)}"
    )
    console.print(f"  Entries: {summary.entry_count}")
    console.print(
        f"  Hits: {summary.hit_count}  Misses: {summary.miss_count}  "
        f"Hit ratio: {summary.hit_ratio:.0%}"
    )
    if raw:
        table = Table(show_header=True, header_style="bold")
        table.add_column("Key")
        table.add_column("Size", justify="right")
        table.add_column("TTL", justify="right")
        for key, entry in sorted(raw.items()):
            ttl = entry.get("ttl_seconds", 0)
            table.add_row(key, format_bytes(entry.get("size", 0)), f"{ttl:.0f}s" if ttl else "-")
        console.print(table)


@app.command("clear")
def clear(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    all_entries: bool = typer.Option(
        False, "--all", help="Also remove sync records (unlinks every task)"
    ),
) -> None:
    """
    Remove cached entries.

    Sync records live in the cache too and are kept unless --all is given.
    """
    state = get_state(ctx)
    if not yes:
        what = "the whole cache including sync records" if all_entries else "cached entries"
        typer.confirm(f"Remove {what}?", abort=True)

    try:
        cache = open_cache(state.config, background=False)
        try:
            if all_entries:
                removed = cache.info().entry_count
                cache.clear()
            else:
                keys = [k for k in cache.keys() if not k.startswith(KEY_PREFIX)]
                for key in keys:
                    cache.delete(key)
                removed = len(keys)
        finally:
            cache.close()
    except ZenError as e:
        handle_error(e, state.output)

    if state.output != "text":
        emit({"removed": removed}, state.output)
    else:
        console.print(f"[green]✓[/green] Removed {removed} entr{'y' if removed == 1 else 'ies'}")


@app.command("cleanup")
def cleanup(ctx: typer.Context) -> None:
    """Evict expired entries now instead of waiting for the background sweep."""
    state = get_state(ctx)
    try:
        cache = open_cache(state.config, background=False)
        try:
            removed = cache.cleanup()
        finally:
            cache.close()
    except ZenError as e:
        handle_error(e, state.output)

    if state.output != "text":
        emit({"removed": removed}, state.output)
    else:
        console.print(f"[green]✓[/green] Evicted {removed} expired entr{'y' if removed == 1 else 'ies'}")


__all__ = ["app"]
