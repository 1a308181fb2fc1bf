"""App lifecycle management.

:class:`AppManager` is the single entry point the CLI talks to. Each verb
loads the app descriptor, builds the service graph, observes the backend and
hands the rest to the :class:`Reconciler`:

    descriptor -> graph -> observed state -> reconcile -> ReconcileResult

Descriptor and graph errors are raised before the container backend is ever
contacted, so a broken ``.dockyard.yml`` never touches running containers.

Lifecycle verbs hold the per-app registry lock for their whole duration.

Examples:
    >>> manager = AppManager("/src/demo")
    >>> result = manager.start()
    >>> result.ok
    True
    >>> manager.info()["redis"]["internal_connection"]
    {'host': 'redis', 'port': 6379}

.. seealso::
   :mod:`dockyard.cli.lifecycle_cmd` : Click commands wrapping this class
"""

import queue
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from dockyard.base.errors import (
    BackendError,
    ConfigError,
    ContainerNotFound,
    SchemaError,
    ShareUnavailable,
)
from dockyard.base.models import (
    AppRecord,
    ObservedState,
    Operation,
    PortMapping,
    ReconcileResult,
    ServiceGraph,
    ServiceSpec,
)
from dockyard.deployment.backend import ContainerBackend
from dockyard.deployment.graph import build_graph
from dockyard.deployment.inspector import StateInspector
from dockyard.deployment.loader import load_descriptor
from dockyard.deployment.reconciler import Reconciler
from dockyard.deployment.registry import AppRegistry
from dockyard.deployment.runtime_helper import get_backend, require_backend
from dockyard.deployment.service_types import ServiceKind, ServiceRole, get_defaults
from dockyard.utils.logger import get_logger

logger = get_logger("app_manager")

WEB_ROLES = (ServiceRole.WEBSERVER, ServiceRole.RUNTIME, ServiceRole.TOOL)


def _role(spec: ServiceSpec) -> ServiceRole | None:
    kind = ServiceKind.parse(spec.kind)
    return get_defaults(kind).role if kind else None


def _connection(spec: ServiceSpec) -> tuple[int | None, PortMapping | None]:
    """Port other services connect to, and the mapping that publishes it."""
    kind = ServiceKind.parse(spec.kind)
    port = get_defaults(kind).connection_port if kind else None
    if port is None:
        mapping = spec.ports[0] if spec.ports else None
        return (mapping.container_port if mapping else None), mapping
    return port, next((p for p in spec.ports if p.container_port == port), None)


def _urls(spec: ServiceSpec, state: ObservedState | None) -> list[str]:
    if state is None or not state.is_running or _role(spec) not in WEB_ROLES:
        return []
    return [
        f"http://localhost:{state.published_ports[p.key]}"
        for p in spec.ports
        if p.protocol == "tcp" and p.key in state.published_ports
    ]


class AppManager:
    """Lifecycle verbs for the app rooted at (or above) ``project_path``."""

    def __init__(
        self,
        project_path: str | Path = ".",
        backend: ContainerBackend | None = None,
        registry: AppRegistry | None = None,
        reconciler_options: dict[str, Any] | None = None,
    ):
        """
        :param project_path: Directory at or below the app's ``.dockyard.yml``
        :param backend: Container backend; defaults to :func:`get_backend`
        :param registry: App registry; defaults to ``registry.path``
        :param reconciler_options: Extra keyword arguments for :class:`Reconciler`
        """
        self.project_path = Path(project_path)
        self.registry = registry or AppRegistry()
        self.reconciler_options = dict(reconciler_options or {})
        self.abort = threading.Event()
        self._backend = backend
        self._backend_checked = False

    @property
    def backend(self) -> ContainerBackend:
        """The container backend, verified reachable on first use."""
        if self._backend is None:
            self._backend = get_backend()
        if not self._backend_checked:
            require_backend(self._backend)
            self._backend_checked = True
        return self._backend

    def load_graph(self) -> ServiceGraph:
        """Load the descriptor and build its graph. Never touches the backend."""
        return build_graph(load_descriptor(self.project_path))

    def _reconciler(self) -> Reconciler:
        return Reconciler(self.backend, registry=self.registry, abort=self.abort, **self.reconciler_options)

    def _observe(self, graph: ServiceGraph, include_leftovers: bool = False) -> dict[str, ObservedState]:
        inspector = StateInspector(self.backend)
        observed = inspector.observe(graph)
        if include_leftovers:
            for name, state in inspector.observe_project(graph.project).items():
                if name not in observed:
                    logger.debug(f"Found container {state.container_name} of undeclared service '{name}'")
                    observed[name] = state
        return observed

    def _lifecycle(self, operation: Operation, include_leftovers: bool = False) -> ReconcileResult:
        graph = self.load_graph()
        logger.key_info(f"{operation.value.capitalize()} app '{graph.app_name}'")
        with self.registry.app_lock(graph.app_name):
            observed = self._observe(graph, include_leftovers)
            return self._reconciler().apply(graph, observed, operation)

    # =========================================================================
    # LIFECYCLE VERBS
    # =========================================================================

    def start(self) -> ReconcileResult:
        return self._lifecycle(Operation.START)

    def stop(self) -> ReconcileResult:
        return self._lifecycle(Operation.STOP)

    def restart(self) -> ReconcileResult:
        return self._lifecycle(Operation.RESTART)

    def rebuild(self) -> ReconcileResult:
        """Destroy, then start from a graph rebuilt from the descriptor."""
        graph = self.load_graph()
        logger.key_info(f"Rebuild app '{graph.app_name}'")
        with self.registry.app_lock(graph.app_name):
            observed = self._observe(graph, include_leftovers=True)
            return self._reconciler().rebuild(graph, observed, reload=self.load_graph)

    def destroy(self) -> ReconcileResult:
        return self._lifecycle(Operation.DESTROY, include_leftovers=True)

    def poweroff(self) -> ReconcileResult:
        """Stop every registered app, plus the current one if it is not registered.

        Result keys are qualified as ``app/service``.
        """
        graphs: dict[str, ServiceGraph] = {}
        try:
            current = self.load_graph()
            graphs[current.app_name] = current
        except ConfigError as e:
            logger.debug(f"No current app for poweroff: {e}")

        for record in self.registry.list():
            if record.name not in graphs:
                graphs[record.name] = self._graph_for_record(record)

        result = ReconcileResult(operation=Operation.POWEROFF)
        for app_name, graph in graphs.items():
            logger.key_info(f"Powering off app '{app_name}'")
            with self.registry.app_lock(app_name):
                observed = self._observe(graph, include_leftovers=True)
                app_result = self._reconciler().apply(graph, observed, Operation.POWEROFF)
            _merge_qualified(result, app_result, app_name)
        return result

    def _graph_for_record(self, record: AppRecord) -> ServiceGraph:
        try:
            graph = build_graph(load_descriptor(record.root_path))
            if graph.app_name == record.name:
                return graph
            logger.warning(f"Descriptor at {record.root_path} now names '{graph.app_name}'")
        except ConfigError as e:
            logger.warning(f"Cannot load '{record.name}' from {record.root_path}: {e}")
        return ServiceGraph.from_names(record.name, Path(record.root_path), list(record.services))

    # =========================================================================
    # QUERIES
    # =========================================================================

    def info(self, service: str | None = None) -> dict[str, dict[str, Any]]:
        """Connection details and status per service, keyed by service name."""
        graph = self.load_graph()
        names = self._select(graph, service)
        observed = StateInspector(self.backend).observe(graph, names)

        info = {}
        for name in names:
            spec = graph.specs[name]
            state = observed[name]
            port, mapping = _connection(spec)
            info[name] = {
                "service": name,
                "type": spec.kind,
                "version": spec.version,
                "image": spec.image,
                "container": state.container_name,
                "status": state.status.value,
                "internal_connection": {
                    "host": name,
                    "port": port,
                },
                "external_connection": {
                    "host": "localhost",
                    "port": state.published_ports.get(mapping.key) if mapping else None,
                },
                "urls": _urls(spec, state),
            }
        return info

    def list_apps(self) -> list[dict[str, Any]]:
        return [
            {"name": r.name, "root": r.root_path, "services": list(r.services)}
            for r in self.registry.list()
        ]

    def logs(
        self,
        service: str | None = None,
        timestamps: bool = False,
        follow: bool = False,
        tail: int | str = "all",
    ) -> Iterator[str]:
        """Yield ``"<container> | <line>"`` for each selected service.

        Without ``follow`` services are printed one after another; with it,
        lines from all services are interleaved as they arrive.
        """
        graph = self.load_graph()
        names = self._select(graph, service)
        observed = StateInspector(self.backend).observe(graph, names)
        containers = [observed[n].container_name for n in names if observed[n].exists]
        for name in names:
            if not observed[name].exists:
                logger.warning(f"Service '{name}' has no container; run start first")

        if not follow or len(containers) <= 1:
            for container in containers:
                try:
                    for line in self.backend.stream_logs(container, timestamps, follow, tail):
                        yield f"{container} | {line}"
                except ContainerNotFound:
                    logger.warning(f"Container {container} disappeared")
            return

        yield from self._follow(containers, timestamps, tail)

    def _follow(self, containers: list[str], timestamps: bool, tail: int | str) -> Iterator[str]:
        lines: queue.Queue = queue.Queue()
        done = object()

        def pump(container: str) -> None:
            try:
                for line in self.backend.stream_logs(container, timestamps, True, tail):
                    lines.put(f"{container} | {line}")
            except BackendError as e:
                logger.warning(f"Log stream for {container} ended: {e}")
            finally:
                lines.put(done)

        for container in containers:
            threading.Thread(target=pump, args=(container,), daemon=True, name=f"logs-{container}").start()

        remaining = len(containers)
        while remaining:
            item = lines.get()
            if item is done:
                remaining -= 1
            else:
                yield item

    def share(self, service: str | None = None) -> list[dict[str, str]]:
        """Locally published URLs of running web-facing services.

        :raises ShareUnavailable: If no selected service publishes a web port
        """
        graph = self.load_graph()
        names = self._select(graph, service)
        observed = StateInspector(self.backend).observe(graph, names)

        shared = [
            {"service": name, "url": url}
            for name in names
            for url in _urls(graph.specs[name], observed[name])
        ]
        if not shared:
            target = f"service '{service}'" if service else f"app '{graph.app_name}'"
            raise ShareUnavailable(f"No running web service with a published port in {target}")
        return shared

    @staticmethod
    def _select(graph: ServiceGraph, service: str | None) -> list[str]:
        if service is None:
            return graph.service_names()
        if service not in graph.specs:
            raise SchemaError(
                f"Unknown service '{service}' in app '{graph.app_name}'",
                [f"known services: {', '.join(graph.service_names())}"],
            )
        return [service]


def _merge_qualified(target: ReconcileResult, source: ReconcileResult, app_name: str) -> None:
    def q(name: str) -> str:
        return f"{app_name}/{name}"

    target.succeeded |= {q(n) for n in source.succeeded}
    target.failed.update({q(n): e for n, e in source.failed.items()})
    target.phases.update({q(n): p for n, p in source.phases.items()})
    target.actions.extend((verb, q(n)) for verb, n in source.actions)
