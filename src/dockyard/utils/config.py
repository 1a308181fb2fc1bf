"""
Configuration System

Global settings for Dockyard. Features:
- Optional single-file YAML loading from the Dockyard home directory
- Environment variable resolution (${VAR}, ${VAR:-default}, $VAR)
- Built-in defaults overlaid by the user's file, then by env overrides
- Dot-notation access through ``get`` / ``get_config_value``

The configuration is process-wide and cached; ``reset_config()`` drops the
cache so tests and long-running callers can reload it.
"""

import copy
import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

from dockyard.base.errors import ConfigError

# Use standard logging (not get_logger) to avoid circular imports with logger.py
# The short name 'CONFIG' enables easy filtering: quiet_logger(['CONFIG'])
logger = logging.getLogger("CONFIG")

CONFIG_FILENAME = "config.yml"

DEFAULT_CONFIG: dict[str, Any] = {
    "runtime": {
        "backend": "docker",
        "base_url": None,
        "timeout": 60,
    },
    "reconciler": {
        "max_retries": 2,
        "retry_backoff": 0.5,
        "max_workers": 1,
    },
    "services": {
        "merge_policy": "extend",
    },
    "registry": {
        "path": None,
    },
    "cli": {
        "theme": "default",
    },
    "logging": {
        "level": "INFO",
        "rich_tracebacks": True,
        "show_full_paths": False,
        "colors": {
            "loader": "cyan",
            "graph": "magenta",
            "inspector": "blue",
            "reconciler": "green",
            "registry": "yellow",
            "app_manager": "white",
            "runtime": "bright_blue",
            "cli": "white",
        },
    },
}

_ENV_PATTERN = re.compile(r"\$\{([^}:]+)(?::-(.*?))?\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def get_home_dir() -> Path:
    """Return the Dockyard home directory (``$DOCKYARD_HOME`` or ``~/.dockyard``)."""
    env_home = os.environ.get("DOCKYARD_HOME")
    if env_home:
        return Path(env_home).expanduser()
    return Path.home() / ".dockyard"


def resolve_env_vars(data: Any) -> Any:
    """Recursively resolve environment variables in configuration data.

    Supports both simple and bash-style default value syntax:
    - ${VAR_NAME} - simple substitution
    - ${VAR_NAME:-default_value} - with default value
    - $VAR_NAME - simple substitution without braces

    Unknown variables without a default are left untouched.
    """
    if isinstance(data, dict):
        return {key: resolve_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [resolve_env_vars(item) for item in data]
    elif isinstance(data, str):

        def replace_env_var(match):
            if match.group(1):  # ${VAR_NAME:-default} or ${VAR_NAME}
                var_name = match.group(1)
                default_value = match.group(2)
            else:  # $VAR_NAME
                var_name = match.group(3)
                default_value = None

            env_value = os.environ.get(var_name)
            if env_value is None:
                if default_value is not None:
                    return default_value
                logger.debug(f"Environment variable '{var_name}' not found, keeping original value")
                return match.group(0)
            return env_value

        return _ENV_PATTERN.sub(replace_env_var, data)
    else:
        return data


def deep_update_dict(source_dict: dict, update_dict: dict) -> dict:
    """Recursively merge ``update_dict`` into ``source_dict`` in place.

    Nested mappings are merged; any other value (lists included) replaces the
    existing one. Returns ``source_dict`` for convenience.
    """
    for key, value in update_dict.items():
        if isinstance(value, dict) and isinstance(source_dict.get(key), dict):
            deep_update_dict(source_dict[key], value)
        else:
            source_dict[key] = value
    return source_dict


class ConfigBuilder:
    """
    Configuration builder for Dockyard's global settings.

    The file is optional: without one, the built-in defaults apply. A file
    that exists but cannot be parsed is a hard error, since silently ignoring
    it would run the user's environment with settings they did not ask for.
    """

    def __init__(self, config_path: str | Path | None = None):
        """
        Initialize configuration builder.

        Args:
            config_path: Path to the YAML file. If None, uses ``$DOCKYARD_CONFIG``
                or ``<home>/config.yml``.

        Raises:
            ConfigError: If the file exists but is not a valid YAML mapping.
        """
        if config_path is None:
            env_path = os.environ.get("DOCKYARD_CONFIG")
            config_path = Path(env_path) if env_path else get_home_dir() / CONFIG_FILENAME

        self.config_path = Path(config_path).expanduser()
        self.raw_config = self._load_config()

    def _load_yaml_file(self, file_path: Path) -> dict[str, Any]:
        """Load and validate a YAML configuration file."""
        try:
            with open(file_path) as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Error parsing configuration {file_path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Could not read configuration {file_path}: {e}") from e

        if config is None:
            logger.warning(f"Configuration file is empty: {file_path}")
            return {}

        if not isinstance(config, dict):
            raise ConfigError(f"Configuration file must contain a mapping: {file_path}")

        return config

    def _load_config(self) -> dict[str, Any]:
        config = copy.deepcopy(DEFAULT_CONFIG)

        if self.config_path.exists():
            user_config = resolve_env_vars(self._load_yaml_file(self.config_path))
            deep_update_dict(config, user_config)
            logger.debug(f"Loaded configuration from {self.config_path}")
        else:
            logger.debug(f"No configuration file at {self.config_path}, using defaults")

        # Environment overrides (highest priority)
        env_backend = os.environ.get("DOCKYARD_BACKEND")
        if env_backend:
            config["runtime"]["backend"] = env_backend.strip().lower()

        if not config["registry"].get("path"):
            config["registry"]["path"] = str(get_home_dir() / "registry.json")

        return config

    def get(self, path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation path."""
        keys = path.split(".")
        value = self.raw_config

        try:
            for key in keys:
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default


# =============================================================================
# GLOBAL CONFIGURATION
# =============================================================================

_default_config: ConfigBuilder | None = None


def get_config() -> ConfigBuilder:
    """Return the process-wide configuration, loading it on first use."""
    global _default_config

    if _default_config is None:
        _default_config = ConfigBuilder()
    return _default_config


def reset_config() -> None:
    """Drop the cached configuration so the next access reloads it."""
    global _default_config
    _default_config = None


def get_config_value(path: str, default: Any = None) -> Any:
    """
    Get a specific configuration value by dot-separated path.

    Args:
        path: Dot-separated configuration path (e.g., "reconciler.max_retries")
        default: Default value to return if path is not found

    Returns:
        The configuration value at the specified path, or default if not found

    Raises:
        ValueError: If path is empty or None

    Examples:
        >>> retries = get_config_value("reconciler.max_retries", 2)
        >>> backend = get_config_value("runtime.backend", "docker")
    """
    if not path:
        raise ValueError("Configuration path cannot be empty or None")

    return get_config().get(path, default)
