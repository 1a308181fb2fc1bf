"""Error and result reporting shared by the commands.

Exit codes:
    - 0: every service reached its target state
    - 1: at least one service failed, or the backend/registry was unavailable
    - 2: descriptor or configuration error (the backend was never contacted)
"""

import functools
import os
import traceback

import click
from rich.table import Table

from dockyard.base.errors import DockyardError, ExitCode, SchemaError
from dockyard.base.models import ReconcileResult
from dockyard.cli.styles import PHASE_STYLES, Messages, Styles, err_console


def print_error(error: DockyardError) -> None:
    if isinstance(error, SchemaError) and error.problems:
        err_console.print(Messages.error(str(error).splitlines()[0]), highlight=False)
        for problem in error.problems:
            err_console.print(f"   • {problem}", style=Styles.DIM, highlight=False)
    else:
        err_console.print(Messages.error(str(error)), highlight=False)


def handle_errors(func):
    """Map DockyardError onto the documented exit codes."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except DockyardError as e:
            print_error(e)
            if os.environ.get("DEBUG"):
                err_console.print(traceback.format_exc(), style=Styles.DIM, highlight=False)
            click.get_current_context().exit(int(e.exit_code))

    return wrapper


def report_result(result: ReconcileResult) -> int:
    """Print a per-service summary to stderr and return the exit code."""
    table = Table(title=f"{result.operation.value} {result.app_name}".strip(), border_style=Styles.BORDER)
    table.add_column("Service", style=Styles.LABEL)
    table.add_column("State")
    table.add_column("Detail", style=Styles.DIM)

    for name in sorted(result.phases):
        phase = result.phases[name]
        error = result.failed.get(name)
        table.add_row(
            name,
            f"[{PHASE_STYLES.get(phase, Styles.SECONDARY)}]{phase.value}[/]",
            error.reason if error is not None else "",
        )

    if result.phases:
        err_console.print(table)

    if result.ok:
        err_console.print(Messages.success(f"{result.operation.value} complete"))
        return int(ExitCode.OK)

    for name in sorted(result.failed):
        err_console.print(Messages.error(f"{name}: {result.failed[name].reason}"), highlight=False)
    return int(ExitCode.SERVICE_FAILURE)
