"""
zen CLI - Main application entry point.

This module sets up the Typer CLI application with all subcommands.
"""

from pathlib import Path
from typing import Any

import typer

from zen import __version__
from zen.cli import cache, providers, sync
from zen.cli.errors import handle_error
from zen.cli.output import OUTPUT_FORMATS, console, emit, set_color
from zen.cli.runtime import CLIState, get_state
from zen.core.config import load_config, load_layered_env
from zen.core.errors import ZenError
from zen.utils.logging import setup_logging

# Help panel names for command grouping
PANEL_SYNC = "Sync with External Systems"
PANEL_MAINTAIN = "Maintain Your Workspace"

app = typer.Typer(
    name="zen",
    help="Developer workflow CLI with external task synchronization",
    no_args_is_help=True,
    add_completion=True,
    context_settings={"help_option_names": ["--help", "-h"]},
)


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    no_color: bool = typer.Option(False, "--no-color", help="Disable colored output"),
    output: str | None = typer.Option(
        None, "--output", "-o", help="Output format: text, json or yaml"
    ),
    config_path: Path | None = typer.Option(
        None, "--config", "-c", help="Project config file (default: .zen/config.yaml)"
    ),
) -> None:
    """
    zen - Keep local tasks in step with Jira, GitHub and friends.

    Quick Start:
        1. Configure integrations in .zen/config.yaml
        2. zen providers list               # Check the provider is usable
        3. zen sync link T1 PROJ-42         # Link a task
        4. zen sync task T1                 # Sync it

    Exit codes:
        0 success, 1 error, 2 usage, 3 config,
        4 provider unavailable, 5 sync conflict
    """
    if output is not None and output not in OUTPUT_FORMATS:
        console.print(f"[red]Error:[/red] unknown output format '{output}'")
        raise typer.Exit(2)

    load_layered_env()

    overrides: dict[str, Any] = {}
    cli: dict[str, Any] = {}
    if verbose:
        cli["verbose"] = True
    if no_color:
        cli["no_color"] = True
    if output:
        cli["output_format"] = output
    if cli:
        overrides["cli"] = cli

    try:
        config = load_config(config_path=config_path, overrides=overrides, use_cache=False)
    except ZenError as e:
        handle_error(e, output or "text")

    set_color(not config.cli.no_color)
    setup_logging(
        config.log_level,
        config.log_format,
        verbose=config.cli.verbose,
        no_color=config.cli.no_color,
    )

    ctx.obj = CLIState(
        config=config,
        output=config.cli.output_format,
        verbose=config.cli.verbose,
    )


app.add_typer(sync.app, name="sync", rich_help_panel=PANEL_SYNC)
app.add_typer(providers.app, name="providers", rich_help_panel=PANEL_SYNC)
app.add_typer(cache.app, name="cache", rich_help_panel=PANEL_MAINTAIN)


@app.command(rich_help_panel=PANEL_MAINTAIN)
def version() -> None:
    """Show zen version and exit."""
    console.print(f"zen version {__version__}")
    raise typer.Exit(0)


@app.command("config", rich_help_panel=PANEL_MAINTAIN)
def show_config(ctx: typer.Context) -> None:
    """Print the effective configuration with secrets masked."""
    state = get_state(ctx)
    if state.config.integrations.task_system and not state.config.provider(
        state.config.integrations.task_system
    ):
        typer.echo(
            f"Warning: task system '{state.config.integrations.task_system}' "
            "has no provider settings",
            err=True,
        )
    emit(state.config.redacted(), "json" if state.output == "json" else "yaml")


def cli_main() -> None:
    """Main CLI entry point."""
    app()


__all__ = ["app", "cli_main"]
