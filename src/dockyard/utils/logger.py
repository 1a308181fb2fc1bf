"""
Component Logger Framework

Provides colored logging for Dockyard components with:
- Unified API for all components (loader, graph, reconciler, registry, ...)
- Rich terminal output with component-specific colors
- Output on standard error, so standard output stays machine-parseable
- Graceful fallbacks when configuration is unavailable

Usage:
    logger = get_logger("reconciler")
    logger.key_info("Starting app 'demo'")
    logger.info("Creating container demo_node_1")
    logger.debug("Detailed trace")
    logger.success("All services running")
    logger.warning("Something to note")
    logger.error("Something went wrong")
    logger.timing("Start took 2.5 seconds")

    # Custom loggers with explicit parameters
    logger = get_logger(name="custom_component", color="blue")
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

from dockyard.utils.config import get_config_value


class ComponentLogger:
    """
    Rich-formatted logger for Dockyard components with color coding and message hierarchy.

    Message Types:
    - key_info: Important operational information
    - info: Normal operational messages
    - debug: Detailed tracing information
    - warning: Warning messages
    - error: Error messages
    - success: Success messages
    - timing: Timing information
    """

    def __init__(self, base_logger: logging.Logger, component_name: str, color: str = "white"):
        """
        Initialize component logger.

        Args:
            base_logger: Underlying Python logger
            component_name: Name of the component (e.g., 'reconciler', 'registry')
            color: Rich color name for this component
        """
        self.base_logger = base_logger
        self.component_name = component_name
        self.color = color

    def _format_message(self, message: str, style: str, emoji: str = "") -> str:
        """Format message with Rich markup and emoji prefix."""
        prefix = f"{emoji}{self.component_name.replace('_', ' ').title()}: "
        if style:
            return f"[{style}]{prefix}{message}[/{style}]"
        return f"{prefix}{message}"

    def key_info(self, message: str) -> None:
        """Important operational information."""
        style = f"bold {self.color}" if self.color != "white" else "bold white"
        self.base_logger.info(self._format_message(message, style))

    def info(self, message: str) -> None:
        """Info message."""
        self.base_logger.info(self._format_message(message, self.color))

    def debug(self, message: str) -> None:
        """Debug message - detailed technical info."""
        style = f"dim {self.color}" if self.color != "white" else "dim white"
        self.base_logger.debug(self._format_message(message, style, "🔍 "))

    def warning(self, message: str) -> None:
        """Warning message."""
        self.base_logger.warning(self._format_message(message, "bold yellow", "⚠️  "))

    def error(self, message: str, exc_info: bool = False) -> None:
        """Error message.

        Args:
            message: Error message
            exc_info: Whether to include exception traceback
        """
        self.base_logger.error(self._format_message(message, "bold red", "❌ "), exc_info=exc_info)

    def success(self, message: str) -> None:
        """Success message."""
        self.base_logger.info(self._format_message(message, "bold green", "✅ "))

    def timing(self, message: str) -> None:
        """Timing information."""
        self.base_logger.info(self._format_message(message, "bold white", "🕒 "))

    # Compatibility methods - delegate to base logger
    def critical(self, message: str, *args, **kwargs) -> None:
        formatted = self._format_message(message, "bold red", "❌ ")
        self.base_logger.critical(formatted, *args, **kwargs)

    def exception(self, message: str, *args, **kwargs) -> None:
        formatted = self._format_message(message, "bold red", "❌ ")
        self.base_logger.exception(formatted, *args, **kwargs)

    def log(self, level: int, message: str, *args, **kwargs) -> None:
        self.base_logger.log(level, message, *args, **kwargs)

    @property
    def level(self) -> int:
        return self.base_logger.level

    @property
    def name(self) -> str:
        return self.base_logger.name

    def setLevel(self, level: int) -> None:
        self.base_logger.setLevel(level)

    def isEnabledFor(self, level: int) -> bool:
        return self.base_logger.isEnabledFor(level)


def _setup_rich_logging(level: int | None = None) -> None:
    """Configure Rich logging for the root logger (called once)."""
    root_logger = logging.getLogger()

    # Prevent duplicate handler registration
    for handler in root_logger.handlers:
        if isinstance(handler, RichHandler):
            return

    try:
        rich_tracebacks = get_config_value("logging.rich_tracebacks", True)
        show_full_paths = get_config_value("logging.show_full_paths", False)
        if level is None:
            level = logging.getLevelName(str(get_config_value("logging.level", "INFO")).upper())
    except Exception:
        # Secure defaults when configuration system is unavailable
        rich_tracebacks = True
        show_full_paths = False

    if not isinstance(level, int):
        level = logging.INFO

    root_logger.setLevel(level)

    # stderr only: stdout carries JSON for `info` and `list`
    console = Console(stderr=True, width=120)

    handler = RichHandler(
        console=console,
        rich_tracebacks=rich_tracebacks,
        markup=True,
        show_path=show_full_paths,
        show_time=True,
        show_level=True,
        tracebacks_show_locals=False,
    )
    root_logger.addHandler(handler)

    # Reduce third-party library noise to focus on application-specific issues
    for lib in ["docker", "urllib3", "requests"]:
        logging.getLogger(lib).setLevel(logging.WARNING)


def set_log_level(level: int) -> None:
    """Change the root log level (used by the CLI ``--verbose`` flag)."""
    _setup_rich_logging()
    logging.getLogger().setLevel(level)


def get_logger(
    component_name: str | None = None,
    level: int | None = None,
    *,
    name: str | None = None,
    color: str | None = None,
) -> ComponentLogger:
    """
    Get a component logger.

    Args:
        component_name: Component name (e.g., 'reconciler', 'registry')
        level: Logging level for the root logger on first setup
        name: Direct logger name (keyword-only, bypasses color lookup)
        color: Direct color specification (keyword-only)

    Returns:
        ComponentLogger instance

    Examples:
        >>> logger = get_logger("reconciler")
        >>> logger.info("Planning actions")

        >>> logger = get_logger(name="test_logger", color="blue")
    """
    _setup_rich_logging(level)

    if name is not None:
        return ComponentLogger(logging.getLogger(name), name, color or "white")

    if component_name is None:
        raise ValueError(
            "Component name is required. Usage: get_logger('component_name') or "
            "get_logger(name='custom_name', color='blue')"
        )

    base_logger = logging.getLogger(component_name)

    try:
        color = get_config_value(f"logging.colors.{component_name}") or "white"
    except Exception:
        # Logging must keep working even with a broken configuration
        color = "white"

    return ComponentLogger(base_logger, component_name, color)
