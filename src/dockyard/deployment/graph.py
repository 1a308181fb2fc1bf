"""Service Graph Construction.

This module expands each declared service of an :class:`AppDescriptor` into
a runnable :class:`ServiceSpec` and assembles them into a validated,
acyclic :class:`ServiceGraph`.

The build process for every service:
    1. Resolve ``type`` (``"<kind>[:<version>]"``) against the kind table
    2. Start from the kind's defaults (image, ports, volumes, env, command)
    3. Merge the service's options on top according to the merge policy
    4. Collect dependency edges (``depends_on``, ``links``, webserver ``backend``)

After all services are built, every edge is checked to point at a declared
service and the edges are searched for cycles.

Merge Policies:
    - ``EXTEND`` (default): default ports/volumes are kept; an explicit entry
      replaces the default that targets the same container port or path.
    - ``REPLACE``: an explicit ``ports``/``volumes`` list discards the defaults.

    Environment variables always merge key by key, explicit values winning.

Examples:
    >>> graph = build_graph(load_descriptor("."))
    >>> graph.topological_order()
    ['db', 'node', 'nginx']
    >>> graph.specs["node"].image
    'node:8.9'

.. seealso::
   :mod:`dockyard.deployment.service_types` : Kind defaults
   :mod:`dockyard.deployment.reconciler` : Consumes the graph
"""

import re
import shlex
from enum import Enum
from pathlib import Path
from typing import Any

from dockyard.base.errors import CyclicDependency, SchemaError, UnknownServiceType
from dockyard.base.models import (
    AppDescriptor,
    PortMapping,
    ServiceDecl,
    ServiceGraph,
    ServiceSpec,
    VolumeMapping,
)
from dockyard.deployment.service_types import ServiceKind, ServiceRole, get_defaults
from dockyard.utils.config import get_config_value
from dockyard.utils.logger import get_logger

logger = get_logger("graph")

VERSION_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")

KNOWN_OPTIONS = frozenset(
    {
        "image",
        "environment",
        "env",
        "ports",
        "volumes",
        "command",
        "working_dir",
        "depends_on",
        "links",
        "backend",
    }
)

LABEL_PREFIX = "dockyard"


class MergePolicy(str, Enum):
    EXTEND = "extend"
    REPLACE = "replace"

    @classmethod
    def from_config(cls) -> "MergePolicy":
        value = str(get_config_value("services.merge_policy", cls.EXTEND.value)).lower()
        try:
            return cls(value)
        except ValueError:
            logger.warning(f"Unknown services.merge_policy '{value}', using 'extend'")
            return cls.EXTEND


# =============================================================================
# OPTION PARSING
# =============================================================================


def _parse_port_number(value: Any, service_name: str, raw: Any) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise SchemaError(f"Service '{service_name}' has an invalid port '{raw}'") from None
    if not 1 <= port <= 65535:
        raise SchemaError(f"Service '{service_name}' port {port} is out of range (1-65535)")
    return port


def parse_port(raw: Any, service_name: str) -> PortMapping:
    """Parse ``"container"``, ``"host:container"`` or ``"ip:host:container"``, each with an optional ``/proto``."""
    if isinstance(raw, int) and not isinstance(raw, bool):
        return PortMapping(container_port=_parse_port_number(raw, service_name, raw))

    if not isinstance(raw, str) or not raw.strip():
        raise SchemaError(f"Service '{service_name}' has an invalid port '{raw}'")

    text = raw.strip()
    protocol = "tcp"
    if "/" in text:
        text, protocol = text.rsplit("/", 1)
        protocol = protocol.lower()
        if protocol not in ("tcp", "udp", "sctp"):
            raise SchemaError(f"Service '{service_name}' port '{raw}' has unknown protocol")

    parts = text.split(":")
    if len(parts) == 1:
        return PortMapping(_parse_port_number(parts[0], service_name, raw), protocol=protocol)
    if len(parts) == 2:
        host, container = parts
        return PortMapping(
            container_port=_parse_port_number(container, service_name, raw),
            host_port=_parse_port_number(host, service_name, raw) if host else None,
            protocol=protocol,
        )
    if len(parts) == 3:
        host_ip, host, container = parts
        return PortMapping(
            container_port=_parse_port_number(container, service_name, raw),
            host_port=_parse_port_number(host, service_name, raw) if host else None,
            protocol=protocol,
            host_ip=host_ip,
        )
    raise SchemaError(f"Service '{service_name}' has an invalid port '{raw}'")


def parse_volume(raw: Any, service_name: str, root_path: Path, project: str) -> VolumeMapping:
    """Parse ``"source:target[:mode]"``.

    Bind sources (``.``, ``~`` or ``/`` prefixed) resolve against the app root;
    any other source is a named volume prefixed with the project slug.
    """
    if not isinstance(raw, str) or raw.count(":") not in (1, 2):
        raise SchemaError(
            f"Service '{service_name}' has an invalid volume '{raw}' (expected source:target[:mode])"
        )

    source, target, *rest = raw.split(":")
    mode = rest[0] if rest else "rw"
    if not source or not target.startswith("/"):
        raise SchemaError(
            f"Service '{service_name}' volume '{raw}' needs a source and an absolute target"
        )

    source = source.replace("{service}", service_name)
    if source.startswith("~"):
        source = str(Path(source).expanduser())
    elif source.startswith("."):
        source = str((root_path / source).resolve())
    elif not source.startswith("/"):
        source = f"{project}_{source}"

    return VolumeMapping(source=source, target=target, mode=mode)


def _as_list(value: Any, option: str, service_name: str) -> list:
    if value is None:
        return []
    if isinstance(value, (str, int)):
        return [value]
    if isinstance(value, list):
        return value
    raise SchemaError(f"Service '{service_name}' option '{option}' must be a list")


def _merge_keyed(defaults: list, explicit: list | None, key, policy: MergePolicy) -> tuple:
    if explicit is None:
        return tuple(defaults)
    if policy is MergePolicy.REPLACE:
        return tuple(explicit)

    merged = {key(item): item for item in defaults}
    for item in explicit:
        merged[key(item)] = item
    return tuple(merged.values())


def _parse_command(value: Any, service_name: str) -> tuple[str, ...] | None:
    if value is None:
        return None
    if isinstance(value, str):
        return tuple(shlex.split(value))
    if isinstance(value, list):
        return tuple(str(part) for part in value)
    raise SchemaError(f"Service '{service_name}' option 'command' must be a string or list")


def _environment(options: dict[str, Any], service_name: str) -> dict[str, str]:
    env = options.get("environment", options.get("env"))
    if env is None:
        return {}
    if isinstance(env, list):
        # docker-compose style ["KEY=value", ...]
        pairs = {}
        for item in env:
            key, _, value = str(item).partition("=")
            pairs[key] = value
        return pairs
    if not isinstance(env, dict):
        raise SchemaError(f"Service '{service_name}' option 'environment' must be a mapping")
    return {str(k): "" if v is None else str(v) for k, v in env.items()}


def _dependency_names(decl: ServiceDecl, role: ServiceRole) -> list[str]:
    options = decl.options
    names: list[str] = []

    for item in _as_list(options.get("depends_on"), "depends_on", decl.name):
        names.append(str(item))

    for item in _as_list(options.get("links"), "links", decl.name):
        # "service:alias" links the service under another hostname
        names.append(str(item).split(":", 1)[0])

    backend = options.get("backend")
    if backend is not None:
        if role is ServiceRole.WEBSERVER:
            names.append(str(backend))
        else:
            logger.debug(f"Ignoring 'backend' on non-webserver service '{decl.name}'")

    return list(dict.fromkeys(names))


# =============================================================================
# SPEC CONSTRUCTION
# =============================================================================


def build_spec(
    decl: ServiceDecl,
    app_name: str,
    project: str,
    root_path: Path,
    policy: MergePolicy = MergePolicy.EXTEND,
) -> ServiceSpec:
    """Expand one declaration into a runnable spec (edges not yet validated)."""
    kind = ServiceKind.parse(decl.kind)
    if kind is None:
        raise UnknownServiceType(decl.name, decl.type, ServiceKind.names())

    defaults = get_defaults(kind)
    version = decl.version or defaults.default_version
    if not VERSION_PATTERN.match(version):
        raise UnknownServiceType(decl.name, decl.type)

    options = decl.options
    for key in options:
        if key not in KNOWN_OPTIONS:
            logger.debug(f"Ignoring unknown option '{key}' on service '{decl.name}'")

    image = str(options.get("image") or f"{defaults.repository}:{version}")

    default_ports = [parse_port(p, decl.name) for p in defaults.ports]
    explicit_ports = None
    if "ports" in options:
        explicit_ports = [parse_port(p, decl.name) for p in _as_list(options["ports"], "ports", decl.name)]
    ports = _merge_keyed(default_ports, explicit_ports, lambda p: p.key, policy)

    default_volumes = [parse_volume(v, decl.name, root_path, project) for v in defaults.volumes]
    explicit_volumes = None
    if "volumes" in options:
        explicit_volumes = [
            parse_volume(v, decl.name, root_path, project)
            for v in _as_list(options["volumes"], "volumes", decl.name)
        ]
    volumes = _merge_keyed(default_volumes, explicit_volumes, lambda v: v.target, policy)

    env = {"DOCKYARD": "ON", "DOCKYARD_APP": app_name, "DOCKYARD_SERVICE": decl.name}
    env.update(defaults.env)
    env.update(_environment(options, decl.name))

    command = _parse_command(options.get("command"), decl.name)
    if command is None:
        command = defaults.command

    labels = {
        f"{LABEL_PREFIX}.app": app_name,
        f"{LABEL_PREFIX}.project": project,
        f"{LABEL_PREFIX}.root": str(root_path),
        f"{LABEL_PREFIX}.service": decl.name,
        f"{LABEL_PREFIX}.type": f"{kind.value}:{version}",
    }

    return ServiceSpec(
        service_name=decl.name,
        kind=kind.value,
        version=version,
        image=image,
        env=env,
        ports=ports,
        volumes=volumes,
        depends_on=frozenset(_dependency_names(decl, defaults.role)),
        command=command,
        working_dir=options.get("working_dir") or defaults.working_dir,
        labels=labels,
    )


def find_cycle(specs: dict[str, ServiceSpec]) -> list[str] | None:
    """Depth-first search for a dependency cycle.

    Returns the cycle as a path that starts and ends on the same service,
    or None if the edges form a DAG.
    """
    white, grey, black = 0, 1, 2
    color = dict.fromkeys(specs, white)
    declared = list(specs)
    stack: list[str] = []

    def visit(name: str) -> list[str] | None:
        color[name] = grey
        stack.append(name)
        for dep in sorted(specs[name].depends_on, key=declared.index):
            if color[dep] == grey:
                return stack[stack.index(dep) :] + [dep]
            if color[dep] == white:
                cycle = visit(dep)
                if cycle:
                    return cycle
        stack.pop()
        color[name] = black
        return None

    for name in declared:
        if color[name] == white:
            cycle = visit(name)
            if cycle:
                return cycle
    return None


def build_graph(descriptor: AppDescriptor, merge_policy: MergePolicy | None = None) -> ServiceGraph:
    """Build the validated service graph for an app.

    :param descriptor: Loaded app descriptor
    :param merge_policy: Option merge policy; defaults to ``services.merge_policy``
    :raises UnknownServiceType: A service type or version is not recognised
    :raises SchemaError: Invalid options or dependencies on undeclared services
    :raises CyclicDependency: The dependency edges contain a cycle
    """
    policy = merge_policy or MergePolicy.from_config()
    project = descriptor.project
    root_path = Path(descriptor.root_path)

    specs = {
        name: build_spec(decl, descriptor.name, project, root_path, policy)
        for name, decl in descriptor.services.items()
    }

    problems = []
    for name, spec in specs.items():
        for dep in sorted(spec.depends_on):
            if dep == name:
                problems.append(f"{name}: cannot depend on itself")
            elif dep not in specs:
                problems.append(f"{name}: depends on undeclared service '{dep}'")
    if problems:
        raise SchemaError(f"Invalid dependencies in app '{descriptor.name}'", problems)

    cycle = find_cycle(specs)
    if cycle:
        raise CyclicDependency(cycle)

    graph = ServiceGraph(app_name=descriptor.name, root_path=root_path, specs=specs)
    logger.debug(f"Built graph for '{descriptor.name}': {' -> '.join(graph.topological_order())}")
    return graph
