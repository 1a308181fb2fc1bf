"""Container backend protocol.

Everything the orchestrator does to containers goes through a
:class:`ContainerBackend`. The protocol is synchronous and speaks in container
names: names are deterministic (``{project}_{service}_1``) and every runtime
accepts a name wherever it accepts an id.

Error contract for implementations:
    - A missing container raises :class:`~dockyard.base.errors.ContainerNotFound`
    - Timeouts, connection resets and server errors raise
      :class:`~dockyard.base.errors.BackendTransientError`
    - Requests that can never succeed raise
      :class:`~dockyard.base.errors.BackendFatalError`
    - An unreachable runtime raises
      :class:`~dockyard.base.errors.BackendUnavailable`

.. seealso::
   :class:`dockyard.deployment.docker_backend.DockerBackend`
   :class:`dockyard.deployment.memory_backend.MemoryBackend`
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass, field

from dockyard.base.models import ServiceSpec, ServiceStatus

_RUNNING_STATES = {"running", "restarting", "paused"}
_EXITED_STATES = {"created", "exited", "dead", "removing"}


def status_from_runtime(state: str | None) -> ServiceStatus:
    """Map a runtime container state string onto a ServiceStatus."""
    state = (state or "").lower()
    if state in _RUNNING_STATES:
        return ServiceStatus.RUNNING
    if state in _EXITED_STATES:
        return ServiceStatus.EXITED
    return ServiceStatus.UNKNOWN


@dataclass(frozen=True)
class ContainerInfo:
    """What a backend reports about one container."""

    name: str
    id: str
    state: str
    image: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    # "3000/tcp" -> host port
    published_ports: dict[str, int] = field(default_factory=dict)

    @property
    def status(self) -> ServiceStatus:
        return status_from_runtime(self.state)


class ContainerBackend(ABC):
    """Synchronous interface to a container runtime."""

    name = "abstract"

    @abstractmethod
    def ping(self) -> None:
        """Raise BackendUnavailable if the runtime cannot be reached."""

    @abstractmethod
    def list_containers(self, filters: dict[str, str] | None = None) -> list[ContainerInfo]:
        """List containers (running or not) whose labels match every filter."""

    @abstractmethod
    def inspect_container(self, name: str) -> ContainerInfo:
        pass

    @abstractmethod
    def image_exists(self, image: str) -> bool:
        pass

    @abstractmethod
    def pull_image(self, image: str) -> None:
        pass

    @abstractmethod
    def create_container(self, spec: ServiceSpec, name: str, network: str) -> str:
        """Create (but do not start) a container for ``spec``; return its id.

        The container joins ``network`` with the service name as alias.
        """

    @abstractmethod
    def start_container(self, name: str) -> None:
        pass

    @abstractmethod
    def stop_container(self, name: str, timeout: int = 10) -> None:
        pass

    @abstractmethod
    def remove_container(self, name: str) -> None:
        pass

    @abstractmethod
    def stream_logs(
        self,
        name: str,
        timestamps: bool = False,
        follow: bool = False,
        tail: int | str = "all",
    ) -> Iterator[str]:
        """Yield log lines (without trailing newline) for a container."""

    @abstractmethod
    def ensure_network(self, name: str, labels: dict[str, str] | None = None) -> None:
        """Create the network if it does not exist yet."""

    @abstractmethod
    def remove_network(self, name: str) -> None:
        """Remove the network; a missing network is not an error."""

    def close(self) -> None:
        """Release client resources. Optional."""
