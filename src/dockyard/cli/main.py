"""Main CLI entry point for Dockyard.

This module provides the main CLI group that organizes all dockyard
commands under the `dockyard` command namespace.

Performance Note: Uses lazy imports so the docker SDK is only loaded when a
command that needs it is actually invoked. This keeps `dockyard --help` fast.
"""

import importlib
import logging
import os
import sys
import traceback

import click

from dockyard import __version__
from dockyard.cli.project_utils import resolve_project_path
from dockyard.utils.logger import set_log_level

# Fix Windows console encoding to support Unicode characters (✓, ✗, ⚠️, etc.)
if sys.platform == "win32":
    try:
        import io

        if sys.stdout.encoding.lower() != "utf-8":
            sys.stdout = io.TextIOWrapper(
                sys.stdout.buffer, encoding="utf-8", errors="replace", line_buffering=True
            )
        if sys.stderr.encoding.lower() != "utf-8":
            sys.stderr = io.TextIOWrapper(
                sys.stderr.buffer, encoding="utf-8", errors="replace", line_buffering=True
            )
    except (AttributeError, OSError):
        pass


class LazyGroup(click.Group):
    """Click group that lazily loads subcommands only when invoked."""

    # command name -> (module, attribute)
    commands_map = {
        "start": ("dockyard.cli.lifecycle_cmd", "start"),
        "stop": ("dockyard.cli.lifecycle_cmd", "stop"),
        "restart": ("dockyard.cli.lifecycle_cmd", "restart"),
        "rebuild": ("dockyard.cli.lifecycle_cmd", "rebuild"),
        "destroy": ("dockyard.cli.lifecycle_cmd", "destroy"),
        "poweroff": ("dockyard.cli.lifecycle_cmd", "poweroff"),
        "info": ("dockyard.cli.info_cmd", "info"),
        "list": ("dockyard.cli.info_cmd", "list_apps"),
        "logs": ("dockyard.cli.logs_cmd", "logs"),
        "share": ("dockyard.cli.share_cmd", "share"),
    }

    def get_command(self, ctx, cmd_name):
        """Lazily import and return the command when it's invoked."""
        if cmd_name not in self.commands_map:
            return None
        module_name, attribute = self.commands_map[cmd_name]
        return getattr(importlib.import_module(module_name), attribute)

    def list_commands(self, ctx):
        """Return list of available commands (for --help)."""
        return list(self.commands_map)


@click.group(cls=LazyGroup)
@click.version_option(version=__version__, prog_name="dockyard")
@click.option(
    "--project",
    "-p",
    type=click.Path(file_okay=False, dir_okay=True),
    help="App directory (default: DOCKYARD_PROJECT env var or current directory)",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging on stderr")
@click.pass_context
def cli(ctx, project: str | None, verbose: bool):
    """Dockyard - local development environments from a .dockyard.yml.

    Declare an app's services once and start, stop, inspect and tear them
    down with one command.

    Examples:

    \b
      dockyard start                 Start the app in the current directory
      dockyard info                  Print service connection info as JSON
      dockyard logs -s redis -f      Follow one service's logs
      dockyard list                  Print every known app as JSON
      dockyard destroy -y            Remove the app's containers
      dockyard poweroff              Stop every known app
    """
    ctx.ensure_object(dict)
    ctx.obj["project"] = resolve_project_path(project)
    ctx.obj["verbose"] = verbose
    if verbose:
        set_log_level(logging.DEBUG)


def main():
    """Entry point for the dockyard CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        click.echo("\nInterrupted", err=True)
        sys.exit(130)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        if os.environ.get("DEBUG"):
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
