"""
Standardized error handling and exit codes for the zen CLI.

Every command reports failures through ``fail``/``handle_error`` so the exit
code always reflects the error class and json/yaml output stays machine
readable.
"""

from enum import IntEnum
from typing import NoReturn

import typer

from zen.cli.output import console, emit
from zen.core.errors import ErrorCode, ZenError


class ExitCode(IntEnum):
    """Standard exit codes for zen CLI operations."""

    SUCCESS = 0
    """Operation completed successfully."""

    GENERAL_ERROR = 1
    """Unexpected error."""

    USER_ERROR = 2
    """Invalid usage or input."""

    CONFIG_ERROR = 3
    """Configuration is missing or invalid."""

    PROVIDER_UNAVAILABLE = 4
    """External provider could not be reached or refused the request."""

    SYNC_CONFLICT = 5
    """Synchronization left conflicts that need manual review."""


_EXIT_CODES = {
    ErrorCode.CONFIG_ERROR: ExitCode.CONFIG_ERROR,
    ErrorCode.PROVIDER_ERROR: ExitCode.PROVIDER_UNAVAILABLE,
    ErrorCode.AUTH_FAILED: ExitCode.PROVIDER_UNAVAILABLE,
    ErrorCode.NETWORK_ERROR: ExitCode.PROVIDER_UNAVAILABLE,
    ErrorCode.RATE_LIMITED: ExitCode.PROVIDER_UNAVAILABLE,
    ErrorCode.TIMEOUT: ExitCode.PROVIDER_UNAVAILABLE,
    ErrorCode.VERSION_MISMATCH: ExitCode.PROVIDER_UNAVAILABLE,
    ErrorCode.SYNC_CONFLICT: ExitCode.SYNC_CONFLICT,
    ErrorCode.INVALID_DATA: ExitCode.USER_ERROR,
    ErrorCode.INVALID_OPERATION: ExitCode.USER_ERROR,
    ErrorCode.INVALID_KEY: ExitCode.USER_ERROR,
    ErrorCode.ALREADY_EXISTS: ExitCode.USER_ERROR,
}


def exit_code_for(code: ErrorCode | str | None, *, provider: str | None = None) -> ExitCode:
    """
    Map an error code to the CLI exit class.

    ``not_found`` is a provider problem when it names a provider (missing
    binary or remote object) and a usage problem otherwise.
    """
    if code is None or code == "":
        return ExitCode.GENERAL_ERROR
    code = ErrorCode(code)
    if code == ErrorCode.NOT_FOUND:
        return ExitCode.PROVIDER_UNAVAILABLE if provider else ExitCode.USER_ERROR
    return _EXIT_CODES.get(code, ExitCode.GENERAL_ERROR)


def print_error(
    problem: str,
    *,
    reason: str | None = None,
    solution: str | None = None,
) -> None:
    """
    Print a standardized error message with actionable guidance.

    Args:
        problem: Brief description of what went wrong
        reason: Optional explanation of why it happened
        solution: Optional command or action to fix it

    Example:
        >>> print_error(
        ...     "Integration not configured",
        ...     solution="zen config set integrations.task_system jira",
        ... )
    """
    console.print(f"[red]Error:[/red] {problem}", highlight=False)

    if reason:
        console.print(f"[dim]{reason}[/dim]", highlight=False)

    if solution:
        console.print(f"[cyan]→ Try:[/cyan] {solution}", highlight=False)


def handle_error(err: ZenError, output_format: str = "text") -> NoReturn:
    """Report err in the selected output format and exit with its class."""
    if output_format in ("json", "yaml"):
        emit({"error": err.to_dict()}, output_format)
    else:
        print_error(err.message, reason=str(err.cause) if err.cause else None, solution=err.hint)
    raise typer.Exit(exit_code_for(err.code, provider=err.provider))


def fail(
    message: str,
    code: ErrorCode = ErrorCode.INVALID_DATA,
    output_format: str = "text",
    *,
    hint: str | None = None,
) -> NoReturn:
    handle_error(ZenError(code, message, hint=hint, retryable=False), output_format)


__all__ = ["ExitCode", "console", "exit_code_for", "fail", "handle_error", "print_error"]
