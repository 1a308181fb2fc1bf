"""``dockyard logs``: print service logs prefixed with the container name."""

import click

from dockyard.cli.project_utils import get_manager
from dockyard.cli.reporting import handle_errors


def _parse_tail(value: str) -> int | str:
    if value == "all":
        return value
    try:
        lines = int(value)
    except ValueError:
        raise click.BadParameter("must be a number of lines or 'all'") from None
    if lines < 0:
        raise click.BadParameter("must not be negative")
    return lines


@click.command()
@click.option("--service", "-s", help="Only show logs for this service")
@click.option("--timestamps", "-t", is_flag=True, help="Show timestamps")
@click.option("--follow", "-f", is_flag=True, help="Keep streaming new output")
@click.option("--tail", default="all", show_default=True, help="Number of lines from the end")
@click.pass_context
@handle_errors
def logs(ctx: click.Context, service: str | None, timestamps: bool, follow: bool, tail: str):
    """Show logs of the app's services.

    Examples:

    \b
      $ dockyard logs
      $ dockyard logs -s redis --tail 20
      $ dockyard logs -f
    """
    tail_value = _parse_tail(tail)
    try:
        for line in get_manager(ctx).logs(service, timestamps, follow, tail_value):
            click.echo(line)
    except KeyboardInterrupt:
        pass
