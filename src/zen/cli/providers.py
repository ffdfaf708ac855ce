"""
zen CLI - Provider commands.

Lists configured providers with their discovery state and probes their
health through the sync engine.
"""

import typer
from rich.table import Table

from zen.cli.errors import ExitCode, handle_error
from zen.cli.output import console, emit, format_duration
from zen.cli.runtime import get_state, open_engine
from zen.core.errors import ZenError
from zen.core.providers.models import ProviderInfo, ProviderKind

app = typer.Typer(
    name="providers",
    help="Inspect configured task-system providers",
    no_args_is_help=True,
)


@app.command("list")
def list_providers(ctx: typer.Context) -> None:
    """
    List configured providers and whether each one is usable.

    CLI providers report the discovered binary and version; API providers
    report their base URL.
    """
    state = get_state(ctx)
    infos: list[ProviderInfo] = []
    try:
        with open_engine(state) as engine:
            for name in engine.list_providers():
                provider = engine.get_provider(name)
                info = getattr(provider, "info", None)
                if callable(info):
                    infos.append(info())
                else:
                    infos.append(ProviderInfo(name=name, kind=ProviderKind.API, available=True))
    except ZenError as e:
        handle_error(e, state.output)

    if state.output != "text":
        emit(infos, state.output)
        return

    if not infos:
        console.print("[dim]No providers configured.[/dim]")
        console.print("Add one under integrations.providers in .zen/config.yaml")
        return

    table = Table(title="Providers", show_header=True, header_style="bold")
    table.add_column("Name")
    table.add_column("Kind")
    table.add_column("Available")
    table.add_column("Version")
    table.add_column("Location")
    for info in infos:
        available = "[green]yes[/green]" if info.available else f"[red]no[/red] {info.reason}"
        table.add_row(
            info.name,
            info.kind.value,
            available,
            info.version or "-",
            info.binary_path or info.base_url or "-",
        )
    console.print(table)


@app.command("health")
def health(
    ctx: typer.Context,
    name: str | None = typer.Argument(None, help="Only probe this provider"),
) -> None:
    """
    Probe provider health now.

    Exits with 4 when any probed provider is unhealthy.
    """
    state = get_state(ctx)
    try:
        with open_engine(state) as engine:
            if name:
                results = {name: engine.check_provider_health(name)}
            else:
                results = engine.check_all_health()
    except ZenError as e:
        handle_error(e, state.output)

    if state.output != "text":
        emit(results, state.output)
    elif not results:
        console.print("[dim]No providers configured.[/dim]")
    else:
        for provider_name, result in results.items():
            if result.healthy:
                line = f"[green]✓[/green] {provider_name} ({format_duration(result.response_time)})"
                if result.rate_limit_info and result.rate_limit_info.limit:
                    info = result.rate_limit_info
                    line += f" rate limit {info.remaining}/{info.limit}"
                console.print(line)
            else:
                console.print(f"[red]✗[/red] {provider_name}: {result.last_error}", highlight=False)

    if any(not r.healthy for r in results.values()):
        raise typer.Exit(ExitCode.PROVIDER_UNAVAILABLE)


__all__ = ["app"]
