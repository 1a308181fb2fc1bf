"""``dockyard share``: show the local URLs of the app's web services."""

import click

from dockyard.cli.project_utils import get_manager
from dockyard.cli.reporting import handle_errors
from dockyard.cli.styles import Messages, err_console


@click.command()
@click.option("--service", "-s", help="Only share this service")
@click.pass_context
@handle_errors
def share(ctx: click.Context, service: str | None):
    """Print the published URLs of running web services.

    One URL per line on stdout. No public tunnel is opened.
    """
    shared = get_manager(ctx).share(service)
    for entry in shared:
        click.echo(entry["url"])
    services = sorted({entry["service"] for entry in shared})
    err_console.print(Messages.success(f"{len(shared)} URL(s) for {', '.join(services)}"))
