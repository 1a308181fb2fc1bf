"""Observed state of an app's services.

The inspector asks the backend about each service's container by its
deterministic name and reports a point-in-time :class:`ObservedState`. It
never mutates the backend.
"""

from dockyard.base.errors import BackendError, ContainerNotFound
from dockyard.base.models import ObservedState, ServiceGraph, ServiceStatus, container_name
from dockyard.deployment.backend import ContainerBackend, ContainerInfo
from dockyard.utils.logger import get_logger

logger = get_logger("inspector")

SERVICE_LABEL = "dockyard.service"
PROJECT_LABEL = "dockyard.project"


class StateInspector:
    def __init__(self, backend: ContainerBackend):
        self.backend = backend

    def observe(
        self, graph: ServiceGraph, service_names: list[str] | None = None
    ) -> dict[str, ObservedState]:
        """Observe ``service_names`` (default: every service in the graph).

        A backend error for one service yields ``UNKNOWN`` with the error
        attached; the remaining services are still observed.
        """
        names = service_names if service_names is not None else graph.service_names()
        return {name: self.observe_service(graph.project, name) for name in names}

    def observe_service(self, project: str, service_name: str) -> ObservedState:
        name = container_name(project, service_name)
        try:
            info = self.backend.inspect_container(name)
        except ContainerNotFound:
            return ObservedState.missing(service_name, name)
        except BackendError as e:
            logger.warning(f"Could not inspect {name}: {e}")
            return ObservedState(service_name, name, exists=False, status=ServiceStatus.UNKNOWN, error=e)

        return _from_info(service_name, info)

    def observe_project(self, project: str) -> dict[str, ObservedState]:
        """Every container labelled with ``project``, keyed by service name.

        Picks up containers of services that are no longer declared.
        """
        observed = {}
        for info in self.backend.list_containers({PROJECT_LABEL: project}):
            service_name = info.labels.get(SERVICE_LABEL) or info.name
            observed[service_name] = _from_info(service_name, info)
        return observed


def _from_info(service_name: str, info: ContainerInfo) -> ObservedState:
    return ObservedState(
        service_name=service_name,
        container_name=info.name,
        exists=True,
        status=info.status,
        container_id=info.id,
        published_ports=dict(info.published_ports),
    )
