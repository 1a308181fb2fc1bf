"""Descriptor Loading and Validation.

This module finds an app's ``.dockyard.yml`` descriptor and turns it into an
immutable :class:`~dockyard.base.models.AppDescriptor`. Loading is a pure
read: nothing on disk or in the container runtime is touched.

Key Features:
    - Upward search from the working directory to the nearest descriptor
    - Optional ``.dockyard.local.yml`` overrides deep-merged over the main file
    - Environment variable expansion in string values
    - Schema validation that reports every problem at once

Examples:
    Minimal descriptor::

        # .dockyard.yml
        name: demo
        services:
          node:
            type: node:8.9
          redis:
            type: redis:4.0

        >>> descriptor = load_descriptor("/path/to/demo/src")
        >>> descriptor.root_path       # directory holding .dockyard.yml
        >>> descriptor.service_names() # ['node', 'redis']

    Local overrides::

        # .dockyard.local.yml (not committed)
        services:
          node:
            ports: ["3000:3000"]

.. seealso::
   :func:`dockyard.deployment.graph.build_graph` : Consumes the descriptor
"""

import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from dockyard.base.errors import DescriptorNotFound, DescriptorParseError, SchemaError
from dockyard.base.models import AppDescriptor, ServiceDecl, project_slug
from dockyard.utils.config import deep_update_dict, resolve_env_vars
from dockyard.utils.logger import get_logger

logger = get_logger("loader")

DESCRIPTOR_FILENAMES = (".dockyard.yml", ".dockyard.yaml")
LOCAL_OVERRIDE_FILENAME = ".dockyard.local.yml"

APP_NAME_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9._-]*$"
SERVICE_NAME_PATTERN = r"^[a-z0-9][a-z0-9_-]*$"


class ServiceDeclModel(BaseModel):
    """Schema of one entry under ``services``; every other key is an option."""

    model_config = ConfigDict(extra="allow")

    type: str = Field(min_length=1)

    @field_validator("type")
    @classmethod
    def _strip_type(cls, value: str) -> str:
        value = value.strip()
        if not value or value.startswith(":"):
            raise ValueError("type must look like '<kind>' or '<kind>:<version>'")
        return value


class DescriptorModel(BaseModel):
    """Schema of the descriptor document."""

    model_config = ConfigDict(extra="allow")

    name: str = Field(pattern=APP_NAME_PATTERN)
    services: dict[str, ServiceDeclModel] = Field(min_length=1)

    @field_validator("name")
    @classmethod
    def _name_has_slug(cls, value: str) -> str:
        if not project_slug(value):
            raise ValueError("name must contain at least one letter or digit")
        return value

    @field_validator("services", mode="before")
    @classmethod
    def _services_is_mapping(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            raise ValueError("services must be a mapping of service name to definition")
        return value

    @field_validator("services")
    @classmethod
    def _service_names_are_valid(cls, value: dict[str, ServiceDeclModel]) -> dict:
        bad = [name for name in value if not re.match(SERVICE_NAME_PATTERN, str(name))]
        if bad:
            raise ValueError(
                f"invalid service name(s) {', '.join(map(str, bad))}: "
                "use lowercase letters, digits, '-' and '_'"
            )
        return value


def find_descriptor(start_path: str | Path) -> Path:
    """Return the nearest descriptor at or above ``start_path``.

    :raises DescriptorNotFound: If no directory up to the filesystem root has one
    """
    start = Path(start_path).expanduser().resolve()
    if start.is_file():
        start = start.parent

    for directory in (start, *start.parents):
        for filename in DESCRIPTOR_FILENAMES:
            candidate = directory / filename
            if candidate.is_file():
                return candidate

    raise DescriptorNotFound(start, DESCRIPTOR_FILENAMES)


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise DescriptorParseError(path, str(e)) from e
    except OSError as e:
        raise DescriptorParseError(path, e.strerror or str(e)) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise DescriptorParseError(path, "top level must be a mapping")
    return data


def _format_validation_error(error: ValidationError) -> list[str]:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "<root>"
        message = item["msg"]
        if item["type"] == "missing":
            message = "is required"
        problems.append(f"{location}: {message}")
    return problems


def parse_descriptor(data: dict[str, Any], root_path: Path, source: Path | None = None) -> AppDescriptor:
    """Validate raw descriptor data and build the typed model.

    :raises SchemaError: Listing every schema violation found
    """
    label = str(source) if source else "descriptor"
    try:
        model = DescriptorModel.model_validate(data)
    except ValidationError as e:
        raise SchemaError(f"Invalid {label}", _format_validation_error(e)) from e

    services = {}
    for service_name, decl in model.services.items():
        options = dict(decl.model_extra or {})
        services[service_name] = ServiceDecl(name=service_name, type=decl.type, options=options)

    return AppDescriptor(
        name=model.name,
        root_path=root_path,
        services=services,
        descriptor_path=source,
    )


def load_descriptor(root_path: str | Path) -> AppDescriptor:
    """Find, read, merge, expand and validate the descriptor for ``root_path``.

    :raises DescriptorNotFound: No descriptor at or above ``root_path``
    :raises DescriptorParseError: Malformed YAML
    :raises SchemaError: Missing/invalid ``name`` or ``services``
    """
    descriptor_path = find_descriptor(root_path)
    app_root = descriptor_path.parent
    data = _read_yaml(descriptor_path)

    local_path = app_root / LOCAL_OVERRIDE_FILENAME
    if local_path.is_file():
        logger.debug(f"Merging local overrides from {local_path}")
        deep_update_dict(data, _read_yaml(local_path))

    data = resolve_env_vars(data)
    descriptor = parse_descriptor(data, app_root, descriptor_path)

    logger.debug(
        f"Loaded app '{descriptor.name}' from {descriptor_path} "
        f"({len(descriptor.services)} services)"
    )
    return descriptor
