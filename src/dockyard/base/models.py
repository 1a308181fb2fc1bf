"""Data model for apps, services and reconciliation results.

Lifecycles:
    - ``AppDescriptor`` and ``ServiceGraph`` are request-scoped: built fresh
      for every command and discarded afterwards.
    - ``ObservedState`` is a point-in-time snapshot and is never mutated; each
      backend query produces a new one.
    - ``AppRecord`` is the only durable entity and lives in the app registry.
"""

import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

_SLUG_STRIP = re.compile(r"[^a-z0-9]")


def project_slug(app_name: str) -> str:
    """Backend-safe prefix for an app: lowercase, alphanumerics only.

    >>> project_slug("lando-test")
    'landotest'
    """
    return _SLUG_STRIP.sub("", app_name.lower())


def container_name(project: str, service_name: str) -> str:
    """Deterministic backend name for a service: ``{project}_{service}_1``."""
    return f"{project}_{service_name}_1"


def network_name(project: str) -> str:
    return f"{project}_default"


# =============================================================================
# DESCRIPTOR
# =============================================================================


@dataclass(frozen=True)
class ServiceDecl:
    """A declared service: intent only, not directly runnable."""

    name: str
    type: str
    options: dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> str:
        return self.type.split(":", 1)[0].strip().lower()

    @property
    def version(self) -> str | None:
        if ":" not in self.type:
            return None
        version = self.type.split(":", 1)[1].strip()
        return version or None


@dataclass(frozen=True)
class AppDescriptor:
    """An app as declared in its descriptor file."""

    name: str
    root_path: Path
    services: dict[str, ServiceDecl]
    descriptor_path: Path | None = None

    @property
    def project(self) -> str:
        return project_slug(self.name)

    def service_names(self) -> list[str]:
        return list(self.services)


# =============================================================================
# SERVICE GRAPH
# =============================================================================


@dataclass(frozen=True)
class PortMapping:
    container_port: int
    host_port: int | None = None
    protocol: str = "tcp"
    host_ip: str = ""

    @property
    def key(self) -> str:
        return f"{self.container_port}/{self.protocol}"

    def __str__(self) -> str:
        if self.host_port is None:
            return self.key
        prefix = f"{self.host_ip}:" if self.host_ip else ""
        return f"{prefix}{self.host_port}:{self.key}"


@dataclass(frozen=True)
class VolumeMapping:
    source: str
    target: str
    mode: str = "rw"

    @property
    def is_bind(self) -> bool:
        return self.source.startswith(("/", ".", "~"))

    def __str__(self) -> str:
        return f"{self.source}:{self.target}:{self.mode}"


@dataclass(frozen=True)
class ServiceSpec:
    """Normalized, runnable form of a ServiceDecl."""

    service_name: str
    kind: str
    version: str
    image: str
    env: dict[str, str] = field(default_factory=dict)
    ports: tuple[PortMapping, ...] = ()
    volumes: tuple[VolumeMapping, ...] = ()
    depends_on: frozenset[str] = frozenset()
    command: tuple[str, ...] | None = None
    working_dir: str | None = None
    labels: dict[str, str] = field(default_factory=dict)

    @property
    def type(self) -> str:
        return f"{self.kind}:{self.version}" if self.version else self.kind


@dataclass(frozen=True)
class ServiceGraph:
    """Desired state of an app: one spec per service, in declaration order.

    The dependency edges are validated to be acyclic when the graph is built.
    """

    app_name: str
    root_path: Path
    specs: dict[str, ServiceSpec]

    @property
    def project(self) -> str:
        return project_slug(self.app_name)

    @property
    def network(self) -> str:
        return network_name(self.project)

    def __iter__(self) -> Iterator[ServiceSpec]:
        return iter(self.specs.values())

    def __len__(self) -> int:
        return len(self.specs)

    def service_names(self) -> list[str]:
        return list(self.specs)

    def container_name(self, service_name: str) -> str:
        return container_name(self.project, service_name)

    def dependents(self, service_name: str) -> list[str]:
        """Services that directly depend on ``service_name``, in declaration order."""
        return [name for name, spec in self.specs.items() if service_name in spec.depends_on]

    def topological_order(self) -> list[str]:
        """Dependencies before dependents; ties broken by declaration order."""
        declared = list(self.specs)
        remaining = {name: set(spec.depends_on) & set(declared) for name, spec in self.specs.items()}
        order: list[str] = []

        while remaining:
            ready = [name for name in declared if name in remaining and not remaining[name]]
            if not ready:
                # build_graph rejects cycles; this guards hand-assembled graphs
                raise ValueError(f"Dependency cycle among: {', '.join(sorted(remaining))}")
            chosen = ready[0]
            order.append(chosen)
            del remaining[chosen]
            for deps in remaining.values():
                deps.discard(chosen)

        return order

    def reverse_order(self) -> list[str]:
        """Dependents before dependencies."""
        return list(reversed(self.topological_order()))

    @classmethod
    def from_names(cls, app_name: str, root_path: Path, service_names: list[str]) -> "ServiceGraph":
        """Bare graph with no images or edges, for stopping apps whose descriptor is gone."""
        specs = {
            name: ServiceSpec(service_name=name, kind="unknown", version="", image="")
            for name in service_names
        }
        return cls(app_name=app_name, root_path=Path(root_path), specs=specs)


# =============================================================================
# OBSERVED STATE
# =============================================================================


class ServiceStatus(str, Enum):
    RUNNING = "running"
    EXITED = "exited"
    MISSING = "missing"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ObservedState:
    service_name: str
    container_name: str
    exists: bool
    status: ServiceStatus
    container_id: str | None = None
    published_ports: dict[str, int] = field(default_factory=dict)
    error: Exception | None = None

    @property
    def is_running(self) -> bool:
        return self.status is ServiceStatus.RUNNING

    @classmethod
    def missing(cls, service_name: str, name: str) -> "ObservedState":
        return cls(service_name, name, exists=False, status=ServiceStatus.MISSING)


# =============================================================================
# REGISTRY RECORD
# =============================================================================


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass(frozen=True)
class AppRecord:
    name: str
    root_path: str
    services: tuple[str, ...] = ()
    updated_at: str = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "root": self.root_path,
            "services": list(self.services),
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AppRecord":
        return cls(
            name=data["name"],
            root_path=data.get("root", ""),
            services=tuple(dict.fromkeys(data.get("services", []))),
            updated_at=data.get("updated_at") or _utcnow(),
        )


# =============================================================================
# RECONCILIATION
# =============================================================================


class Operation(str, Enum):
    START = "start"
    STOP = "stop"
    DESTROY = "destroy"
    RESTART = "restart"
    REBUILD = "rebuild"
    POWEROFF = "poweroff"


class ServicePhase(str, Enum):
    PLANNED = "planned"
    CREATING = "creating"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    REMOVING = "removing"
    REMOVED = "removed"
    FAILED = "failed"


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation pass.

    ``actions`` records every backend mutation issued, in order, as
    ``(verb, service)`` pairs; skipped no-ops do not appear.
    """

    operation: Operation
    app_name: str = ""
    succeeded: set[str] = field(default_factory=set)
    failed: dict[str, Exception] = field(default_factory=dict)
    phases: dict[str, ServicePhase] = field(default_factory=dict)
    actions: list[tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def merge(self, other: "ReconcileResult", keep_failures: bool = False) -> "ReconcileResult":
        """Fold a later pass into this one; the later outcome wins per service.

        With ``keep_failures`` a service that already failed stays failed even
        if the later pass succeeded for it, as a composite operation only
        succeeds when every step did.
        """
        kept = set(self.failed) - set(other.failed) if keep_failures else set()
        succeeded = other.succeeded - kept
        for name in succeeded:
            self.failed.pop(name, None)
        for name in other.failed:
            self.succeeded.discard(name)
        self.succeeded |= succeeded
        self.failed.update(other.failed)
        self.phases.update({name: phase for name, phase in other.phases.items() if name not in kept})
        self.actions.extend(other.actions)
        return self
