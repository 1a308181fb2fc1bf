"""Lifecycle commands: start, stop, restart, rebuild, destroy and poweroff.

Each command is a thin wrapper around :class:`AppManager`. The per-service
outcome is printed to stderr and the exit code reflects the worst outcome.
"""

import click

from dockyard.cli.project_utils import get_manager
from dockyard.cli.reporting import handle_errors, report_result
from dockyard.cli.styles import Messages, err_console


def _run(ctx: click.Context, verb: str) -> None:
    manager = get_manager(ctx)
    try:
        result = getattr(manager, verb)()
    except KeyboardInterrupt:
        manager.abort.set()
        raise click.Abort() from None
    ctx.exit(report_result(result))


def _confirm(yes: bool, message: str) -> None:
    if not yes and not click.confirm(message, default=False, err=True):
        err_console.print(Messages.warning("Cancelled"))
        raise click.Abort()


@click.command()
@click.pass_context
@handle_errors
def start(ctx: click.Context):
    """Start the app's services, creating containers as needed.

    Services already running are left alone.
    """
    _run(ctx, "start")


@click.command()
@click.pass_context
@handle_errors
def stop(ctx: click.Context):
    """Stop the app's services (dependents first)."""
    _run(ctx, "stop")


@click.command()
@click.pass_context
@handle_errors
def restart(ctx: click.Context):
    """Stop and then start the app's services."""
    _run(ctx, "restart")


@click.command()
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
@handle_errors
def rebuild(ctx: click.Context, yes: bool):
    """Destroy the app's containers, pull images again and start.

    Data in named volumes is kept.
    """
    _confirm(yes, "Rebuild will destroy and recreate every container of this app. Continue?")
    _run(ctx, "rebuild")


@click.command()
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
@handle_errors
def destroy(ctx: click.Context, yes: bool):
    """Stop and remove the app's containers and network.

    The app is removed from ``dockyard list`` once nothing is left.
    """
    _confirm(yes, "Destroy will remove every container of this app. Continue?")
    _run(ctx, "destroy")


@click.command()
@click.pass_context
@handle_errors
def poweroff(ctx: click.Context):
    """Stop every known app."""
    _run(ctx, "poweroff")
