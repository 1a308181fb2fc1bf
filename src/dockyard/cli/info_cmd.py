"""Query commands that print JSON: ``info`` and ``list``.

Exactly one JSON document goes to stdout; diagnostics go to stderr.
"""

import json
from contextlib import nullcontext

import click

from dockyard.cli.project_utils import get_manager
from dockyard.cli.reporting import handle_errors
from dockyard.utils.log_filter import quiet_logger

CHATTY_LOGGERS = ["loader", "graph", "inspector", "registry", "runtime", "app_manager"]


def _quiet(ctx: click.Context):
    obj = ctx.find_object(dict) or {}
    return nullcontext() if obj.get("verbose") else quiet_logger(CHATTY_LOGGERS)


def emit_json(data) -> None:
    click.echo(json.dumps(data, indent=2))


@click.command()
@click.option("--service", "-s", help="Only show this service")
@click.pass_context
@handle_errors
def info(ctx: click.Context, service: str | None):
    """Print connection info for the app's services as JSON."""
    with _quiet(ctx):
        data = get_manager(ctx).info(service)
    emit_json(data)


@click.command("list")
@click.pass_context
@handle_errors
def list_apps(ctx: click.Context):
    """Print every known app as JSON."""
    with _quiet(ctx):
        data = get_manager(ctx).list_apps()
    emit_json(data)
