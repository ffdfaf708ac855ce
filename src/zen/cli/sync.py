"""
zen CLI - Sync commands for external task systems.

Provides the command surface for the SyncEngine: syncing one or all linked
tasks, inspecting sync records and managing pending conflicts.
"""

from datetime import datetime

import typer
from rich.table import Table

from zen.cli.errors import ExitCode, exit_code_for, fail, handle_error
from zen.cli.output import console, emit, format_duration, join
from zen.cli.runtime import get_state, open_engine
from zen.core.errors import ErrorCode, ZenError
from zen.core.sync.models import (
    ConflictStrategy,
    SyncDirection,
    SyncOptions,
    SyncRecord,
    SyncRecordStatus,
    SyncResult,
)

app = typer.Typer(
    name="sync",
    help="Synchronize tasks with the external task system",
    no_args_is_help=True,
)


_HINTS = {
    ErrorCode.CONFIG_ERROR.value: "Configure integrations.task_system in .zen/config.yaml",
    ErrorCode.SYNC_CONFLICT.value: "zen sync conflicts",
    ErrorCode.RATE_LIMITED.value: "Wait a moment and retry, or lower the sync frequency",
}


def _fmt_time(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


def _print_result(result: SyncResult) -> None:
    if result.success:
        prefix = "[yellow]Dry run[/yellow]" if result.metadata.get("dry_run") else "[green]✓[/green]"
        console.print(
            f"{prefix} {result.task_id} ↔ {result.external_id or '-'} "
            f"({result.direction}) in {format_duration(result.duration)}"
        )
        console.print(f"  Changed: {join(result.changed_fields)}")
    else:
        console.print(f"[red]✗[/red] {result.task_id}: {result.error}", highlight=False)
    for conflict in result.conflicts:
        console.print(
            f"  [yellow]⚠[/yellow]  {conflict.field}: local={conflict.local_value!r} "
            f"external={conflict.external_value!r} ({conflict.resolution or 'pending'})",
            highlight=False,
        )


def _result_exit(results: list[SyncResult]) -> ExitCode:
    """Exit class of the first failure; conflicts outrank other failures."""
    failures = [r for r in results if not r.success]
    if not failures:
        return ExitCode.SUCCESS
    if any(r.error_code == ErrorCode.SYNC_CONFLICT.value for r in failures):
        return ExitCode.SYNC_CONFLICT
    first = failures[0]
    provider_scoped = first.error_code == ErrorCode.NOT_FOUND.value and bool(first.external_id)
    return exit_code_for(first.error_code or None, provider="remote" if provider_scoped else None)


def _options(
    direction: SyncDirection | None,
    strategy: ConflictStrategy | None,
    dry_run: bool,
    force: bool,
    timeout: float,
    retries: int | None,
) -> SyncOptions:
    return SyncOptions(
        direction=direction,
        conflict_strategy=strategy,
        dry_run=dry_run,
        force_sync=force,
        timeout=timeout,
        retry_count=retries,
    )


@app.command("task")
def sync_task(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Local task id"),
    direction: SyncDirection | None = typer.Option(
        None, "--direction", "-d", help="pull, push or bidirectional (default: record setting)"
    ),
    strategy: ConflictStrategy | None = typer.Option(
        None, "--strategy", "-s", help="Conflict strategy (default: record setting)"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show changes without writing"),
    force: bool = typer.Option(False, "--force", help="Sync even if paused or unchanged"),
    timeout: float = typer.Option(30.0, "--timeout", help="Seconds before giving up (0 = none)"),
    retries: int | None = typer.Option(
        None, "--retries", min=0, help="Retries for transient failures (default: 3)"
    ),
) -> None:
    """
    Synchronize a single task.

    Examples:
        zen sync task T1                      # Use the record's direction
        zen sync task T1 -d pull -s timestamp
        zen sync task T1 --dry-run            # Preview only
    """
    state = get_state(ctx)
    options = _options(direction, strategy, dry_run, force, timeout, retries)
    try:
        with open_engine(state) as engine:
            result = engine.sync_task(task_id, options)
    except ZenError as e:
        handle_error(e, state.output)

    if state.output != "text":
        emit(result, state.output)
    else:
        _print_result(result)
        if not result.success:
            hint = _HINTS.get(result.error_code)
            if hint:
                console.print(f"[cyan]→ Try:[/cyan] {hint}")
    raise typer.Exit(_result_exit([result]))


@app.command("all")
def sync_all(
    ctx: typer.Context,
    direction: SyncDirection | None = typer.Option(None, "--direction", "-d"),
    strategy: ConflictStrategy | None = typer.Option(None, "--strategy", "-s"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show changes without writing"),
    force: bool = typer.Option(False, "--force", help="Include paused and backed-off records"),
    timeout: float = typer.Option(30.0, "--timeout", help="Per-task timeout in seconds"),
    retries: int | None = typer.Option(None, "--retries", min=0),
) -> None:
    """
    Synchronize every linked task.

    A failing task does not stop the run; the exit code reflects the first
    failure.
    """
    state = get_state(ctx)
    options = _options(direction, strategy, dry_run, force, timeout, retries)
    try:
        with open_engine(state) as engine:
            if not engine.is_configured():
                fail(
                    "integration not configured",
                    ErrorCode.CONFIG_ERROR,
                    state.output,
                    hint="Set integrations.task_system and configure the provider",
                )
            results = engine.sync_all_tasks(options)
    except ZenError as e:
        handle_error(e, state.output)

    if state.output != "text":
        emit(results, state.output)
    elif not results:
        console.print("[dim]No tasks due for sync[/dim]")
    else:
        for result in results:
            _print_result(result)
        ok = sum(1 for r in results if r.success)
        console.print(f"\n{ok}/{len(results)} task(s) synced")
    raise typer.Exit(_result_exit(results))


@app.command("status")
def status(ctx: typer.Context) -> None:
    """Show sync records, provider circuit state and metrics."""
    state = get_state(ctx)
    try:
        with open_engine(state) as engine:
            records = engine.list_sync_records()
            breakers = {}
            for name in engine.list_providers():
                breaker = engine.get_breaker(name)
                if breaker is not None:
                    breakers[name] = breaker.snapshot()
            data = {
                "task_system": engine.get_task_system(),
                "configured": engine.is_configured(),
                "sync_enabled": engine.is_sync_enabled(),
                "records": records,
                "providers": breakers,
                "metrics": engine.get_metrics(),
            }
    except ZenError as e:
        handle_error(e, state.output)

    if state.output != "text":
        emit(data, state.output)
        return

    system = data["task_system"] or "none"
    configured = "[green]configured[/green]" if data["configured"] else "[red]not configured[/red]"
    console.print(f"Task system: [bold]{system}[/bold] ({configured})")
    console.print(f"Sync enabled: {'yes' if data['sync_enabled'] else 'no'}")

    if not records:
        console.print("\n[dim]No linked tasks. Link one with 'zen sync link'.[/dim]")
        return

    table = Table(title="Sync records", show_header=True, header_style="bold")
    table.add_column("Task")
    table.add_column("External")
    table.add_column("System")
    table.add_column("Direction")
    table.add_column("Status")
    table.add_column("Version", justify="right")
    table.add_column("Last sync")
    table.add_column("Errors", justify="right")
    colors = {
        SyncRecordStatus.ACTIVE: "green",
        SyncRecordStatus.ERROR: "red",
        SyncRecordStatus.CONFLICT: "yellow",
    }
    for record in records:
        color = colors.get(record.status, "dim")
        table.add_row(
            record.task_id,
            record.external_id or "-",
            record.external_system or system,
            record.sync_direction.value,
            f"[{color}]{record.status.value}[/{color}]",
            str(record.version),
            _fmt_time(record.last_sync_time),
            str(record.error_count),
        )
    console.print(table)


@app.command("link")
def link(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Local task id"),
    external_id: str = typer.Argument("", help="External id (empty: create on first push)"),
    system: str | None = typer.Option(None, "--system", help="Provider (default: task system)"),
    direction: SyncDirection = typer.Option(SyncDirection.BIDIRECTIONAL, "--direction", "-d"),
    strategy: ConflictStrategy = typer.Option(ConflictStrategy.TIMESTAMP, "--strategy", "-s"),
) -> None:
    """
    Link a local task to an external task.

    Examples:
        zen sync link T1 PROJ-42
        zen sync link T2 --direction push      # Created externally on first sync
    """
    state = get_state(ctx)
    provider_name = system or state.config.integrations.task_system
    if not provider_name:
        fail(
            "no provider given and no task system configured",
            ErrorCode.CONFIG_ERROR,
            state.output,
            hint="Pass --system or set integrations.task_system",
        )
    try:
        with open_engine(state) as engine:
            engine.get_provider(provider_name)
            provider = state.config.provider(provider_name)
            record = engine.create_sync_record(
                SyncRecord(
                    task_id=task_id,
                    external_id=external_id,
                    external_system=provider_name,
                    sync_direction=direction,
                    conflict_strategy=strategy,
                    field_mappings=dict(provider.field_mapping) if provider else {},
                )
            )
    except ZenError as e:
        handle_error(e, state.output)

    if state.output != "text":
        emit(record, state.output)
    else:
        console.print(
            f"[green]✓[/green] Linked {task_id} to {provider_name}:{external_id or '(new)'}"
        )


@app.command("unlink")
def unlink(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Local task id"),
) -> None:
    """Remove the sync record of a task. The task itself is left untouched."""
    state = get_state(ctx)
    try:
        with open_engine(state) as engine:
            engine.delete_sync_record(task_id)
    except ZenError as e:
        handle_error(e, state.output)

    if state.output != "text":
        emit({"task_id": task_id, "unlinked": True}, state.output)
    else:
        console.print(f"[green]✓[/green] Unlinked {task_id}")


@app.command("conflicts")
def conflicts(
    ctx: typer.Context,
    task_id: str | None = typer.Argument(None, help="Only this task"),
) -> None:
    """
    List sync records waiting for manual conflict review.

    Conflicts are kept on the sync record; resolve them by re-running
    ``zen sync task <id> --strategy local_wins|remote_wins``.
    """
    state = get_state(ctx)
    try:
        with open_engine(state) as engine:
            records = [
                r
                for r in engine.list_sync_records()
                if r.status == SyncRecordStatus.CONFLICT and (task_id is None or r.task_id == task_id)
            ]
    except ZenError as e:
        handle_error(e, state.output)

    if state.output != "text":
        emit(records, state.output)
        return
    if not records:
        console.print("[green]No pending conflicts[/green]")
        return
    table = Table(title="Pending conflicts", show_header=True, header_style="bold")
    table.add_column("Task")
    table.add_column("External")
    table.add_column("Detail")
    table.add_column("Updated")
    for record in records:
        table.add_row(
            record.task_id,
            record.external_id or "-",
            record.last_error or "-",
            _fmt_time(record.updated_at),
        )
    console.print(table)
    raise typer.Exit(ExitCode.SYNC_CONFLICT)


__all__ = ["app"]
