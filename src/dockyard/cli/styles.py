"""Centralized color and style management for the Dockyard CLI.

Semantic style names (success, error, warning) map onto a theme so every
command renders status the same way.

All styled output goes to ``err_console`` on stderr; ``info`` and ``list``
keep stdout for their JSON.
"""

import sys
from dataclasses import dataclass

from rich.console import Console
from rich.theme import Theme

from dockyard.base.errors import ConfigError
from dockyard.base.models import ServicePhase
from dockyard.utils.config import get_config_value
from dockyard.utils.logger import get_logger

logger = get_logger("cli")


# ============================================================================
# THEME CONFIGURATION
# ============================================================================


@dataclass
class ColorTheme:
    """A complete color theme for the CLI.

    Status colors (error, warning, success) follow UI conventions; the rest
    give the tool its identity and can be overridden from configuration.
    """

    error: str = "#ff0000"
    warning: str = "#ffaa00"
    success: str = "#5fb878"

    primary: str = "#2f8fd8"
    accent: str = "#7fc8f8"
    command: str = "#e0b050"
    path: str = "#a2ae9d"
    info: str = "#7fc8f8"

    text_secondary: str = "#888888"
    text_dim: str = "#666666"
    border_default: str = "#555555"


DEFAULT_THEME = ColorTheme()

THEME_REGISTRY = {
    "default": DEFAULT_THEME,
    "plain": ColorTheme(
        success="green", primary="white", accent="white", command="white", path="white", info="white"
    ),
}


def _build_rich_theme(theme: ColorTheme) -> Theme:
    """Build a Rich Theme from a ColorTheme."""
    return Theme(
        {
            # Status styles
            "success": f"bold {theme.success}",
            "error": f"bold {theme.error}",
            "warning": f"bold {theme.warning}",
            "info": f"bold {theme.info}",
            # Text styles
            "primary": f"bold {theme.primary}",
            "secondary": theme.text_secondary,
            "dim": theme.text_dim,
            # Component styles
            "header": f"bold {theme.primary}",
            "label": "bold",
            "value": theme.success,
            "path": theme.path,
            "command": theme.command,
            "accent": theme.accent,
            "border": theme.border_default,
        }
    )


def load_theme_from_config() -> ColorTheme:
    """Return the theme named by ``cli.theme`` (default: ``default``)."""
    theme_name = get_config_value("cli.theme", "default")
    theme = THEME_REGISTRY.get(theme_name)
    if theme is None:
        logger.warning(f"Unknown theme '{theme_name}', using default")
        theme = DEFAULT_THEME
    return theme


def _build_console() -> Console:
    try:
        rich_theme = _build_rich_theme(load_theme_from_config())
    except ConfigError as e:
        logger.debug(f"Theme configuration unavailable: {e}")
        rich_theme = _build_rich_theme(DEFAULT_THEME)

    if sys.platform == "win32":
        return Console(theme=rich_theme, stderr=True, force_terminal=True, legacy_windows=False)
    return Console(theme=rich_theme, stderr=True)


# ============================================================================
# CONSOLE INSTANCES
# ============================================================================

err_console = _build_console()


# ============================================================================
# STYLE HELPERS
# ============================================================================


class Styles:
    """Reusable style names defined in the Rich theme."""

    SUCCESS = "success"
    ERROR = "error"

    DIM = "dim"
    SECONDARY = "secondary"

    LABEL = "label"
    BORDER = "border"


PHASE_STYLES = {
    ServicePhase.RUNNING: Styles.SUCCESS,
    ServicePhase.STOPPED: Styles.SUCCESS,
    ServicePhase.REMOVED: Styles.SUCCESS,
    ServicePhase.FAILED: Styles.ERROR,
}


class Messages:
    """Pre-formatted message helpers for common patterns."""

    @staticmethod
    def success(text: str) -> str:
        return f"[success]✓ {text}[/success]"

    @staticmethod
    def error(text: str) -> str:
        return f"[error]✗ {text}[/error]"

    @staticmethod
    def warning(text: str) -> str:
        return f"[warning]⚠️  {text}[/warning]"
