"""Utilities for project path resolution.

Every command acts on the app whose ``.dockyard.yml`` sits at or above the
project directory, which comes from the ``--project`` flag, the
``DOCKYARD_PROJECT`` environment variable or the working directory.
"""

import os
from pathlib import Path

import click

from dockyard.deployment.app_manager import AppManager


def resolve_project_path(project_arg: str | None = None) -> Path:
    """Resolve project directory from multiple sources.

    Resolution priority:
    1. --project CLI argument (if provided)
    2. DOCKYARD_PROJECT environment variable (if set)
    3. Current working directory (default)

    Args:
        project_arg: Project directory from --project flag (optional)

    Returns:
        Resolved project directory as Path object

    Examples:
        >>> resolve_project_path("~/src/demo")
        Path('/Users/user/src/demo')

        >>> os.environ['DOCKYARD_PROJECT'] = '/tmp/demo'
        >>> resolve_project_path()
        Path('/tmp/demo')
    """
    if project_arg:
        return Path(project_arg).expanduser().resolve()

    env_project = os.environ.get("DOCKYARD_PROJECT")
    if env_project:
        return Path(env_project).expanduser().resolve()

    return Path.cwd()


def get_manager(ctx: click.Context) -> AppManager:
    """AppManager for the project selected on the command group."""
    obj = ctx.find_object(dict) or {}
    return AppManager(obj.get("project") or resolve_project_path())
