"""In-process container backend.

Keeps containers, images and networks in dictionaries so the orchestrator can
run without a container runtime. Selected with ``runtime.backend: memory`` and
used throughout the test suite.

Fault injection::

    backend = MemoryBackend()
    backend.inject("start_container", "demo_redis_1", BackendTransientError("reset"), times=2)
    backend.inject("create_container", "demo_node_1", BackendFatalError("bad image"))

Every call is appended to ``backend.calls`` as ``(method, target)``.
"""

import itertools
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field

from dockyard.base.errors import BackendFatalError, BackendUnavailable, ContainerNotFound
from dockyard.base.models import ServiceSpec
from dockyard.deployment.backend import ContainerBackend, ContainerInfo


@dataclass
class _Fault:
    error: BaseException | None
    times: int | None
    callback: Callable[[], None] | None = None


@dataclass
class _Container:
    id: str
    name: str
    image: str
    labels: dict[str, str]
    network: str
    ports: dict[str, int]
    state: str = "created"
    logs: list[str] = field(default_factory=list)


class MemoryBackend(ContainerBackend):
    """Container backend that never leaves the process."""

    name = "memory"
    FIRST_HOST_PORT = 32768

    def __init__(self, images: list[str] | None = None, available: bool = True):
        self.containers: dict[str, _Container] = {}
        self.images: set[str] = set(images or [])
        self.networks: dict[str, dict[str, str]] = {}
        self.available = available
        self.calls: list[tuple[str, str]] = []
        self._faults: dict[tuple[str, str | None], list[_Fault]] = {}
        self._ids = itertools.count(1)
        self._host_ports = itertools.count(self.FIRST_HOST_PORT)
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # fault injection
    # ------------------------------------------------------------------

    def inject(
        self,
        method: str,
        target: str | None = None,
        error: BaseException | None = None,
        times: int | None = 1,
        callback: Callable[[], None] | None = None,
    ) -> None:
        """Make ``method`` fail (or run ``callback``) for ``target``.

        ``target`` of None matches every call to ``method``. ``times`` of None
        keeps the fault armed forever.
        """
        with self._lock:
            self._faults.setdefault((method, target), []).append(_Fault(error, times, callback))

    def calls_to(self, method: str) -> list[str]:
        return [target for name, target in self.calls if name == method]

    def _record(self, method: str, target: str) -> None:
        with self._lock:
            self.calls.append((method, target))
            fault = None
            for key in ((method, target), (method, None)):
                queue = self._faults.get(key)
                if queue:
                    fault = queue[0]
                    if fault.times is not None:
                        fault.times -= 1
                        if fault.times <= 0:
                            queue.pop(0)
                    break

        if fault is None:
            return
        if fault.callback is not None:
            fault.callback()
        if fault.error is not None:
            raise fault.error

    def _get(self, name: str) -> _Container:
        container = self.containers.get(name)
        if container is None:
            raise ContainerNotFound(name)
        return container

    @staticmethod
    def _info(container: _Container) -> ContainerInfo:
        published = container.ports if container.state in ("running", "paused") else {}
        return ContainerInfo(
            name=container.name,
            id=container.id,
            state=container.state,
            image=container.image,
            labels=dict(container.labels),
            published_ports=dict(published),
        )

    # ------------------------------------------------------------------
    # ContainerBackend
    # ------------------------------------------------------------------

    def ping(self) -> None:
        self._record("ping", "")
        if not self.available:
            raise BackendUnavailable("In-memory backend marked unavailable")

    def list_containers(self, filters: dict[str, str] | None = None) -> list[ContainerInfo]:
        self._record("list_containers", "")
        filters = filters or {}
        with self._lock:
            return [
                self._info(c)
                for c in self.containers.values()
                if all(c.labels.get(k) == v for k, v in filters.items())
            ]

    def inspect_container(self, name: str) -> ContainerInfo:
        self._record("inspect_container", name)
        with self._lock:
            return self._info(self._get(name))

    def image_exists(self, image: str) -> bool:
        self._record("image_exists", image)
        return image in self.images

    def pull_image(self, image: str) -> None:
        self._record("pull_image", image)
        if not image or image.startswith(":"):
            raise BackendFatalError(f"Invalid image reference '{image}'")
        with self._lock:
            self.images.add(image)

    def create_container(self, spec: ServiceSpec, name: str, network: str) -> str:
        self._record("create_container", name)
        with self._lock:
            if name in self.containers:
                raise BackendFatalError(f"Conflict: container name {name} is already in use")
            if spec.image not in self.images:
                raise BackendFatalError(f"No such image: {spec.image}")
            ports = {
                mapping.key: mapping.host_port or next(self._host_ports)
                for mapping in spec.ports
            }
            container = _Container(
                id=f"mem{next(self._ids):08d}",
                name=name,
                image=spec.image,
                labels=dict(spec.labels),
                network=network,
                ports=ports,
            )
            self.containers[name] = container
            return container.id

    def start_container(self, name: str) -> None:
        self._record("start_container", name)
        with self._lock:
            container = self._get(name)
            if container.network and container.network not in self.networks:
                raise BackendFatalError(f"network {container.network} not found")
            container.state = "running"

    def stop_container(self, name: str, timeout: int = 10) -> None:
        self._record("stop_container", name)
        with self._lock:
            container = self._get(name)
            if container.state in ("running", "paused", "restarting"):
                container.state = "exited"

    def remove_container(self, name: str) -> None:
        self._record("remove_container", name)
        with self._lock:
            container = self._get(name)
            if container.state == "running":
                raise BackendFatalError(f"cannot remove running container {name}")
            del self.containers[name]

    def stream_logs(
        self,
        name: str,
        timestamps: bool = False,
        follow: bool = False,
        tail: int | str = "all",
    ) -> Iterator[str]:
        self._record("stream_logs", name)
        with self._lock:
            lines = list(self._get(name).logs)
        if tail != "all":
            lines = lines[-int(tail) :] if int(tail) > 0 else []
        for index, line in enumerate(lines):
            yield f"1970-01-01T00:00:{index:02d}Z {line}" if timestamps else line

    def ensure_network(self, name: str, labels: dict[str, str] | None = None) -> None:
        self._record("ensure_network", name)
        with self._lock:
            self.networks.setdefault(name, dict(labels or {}))

    def remove_network(self, name: str) -> None:
        self._record("remove_network", name)
        with self._lock:
            self.networks.pop(name, None)

    # ------------------------------------------------------------------
    # helpers for callers that seed state
    # ------------------------------------------------------------------

    def add_logs(self, name: str, *lines: str) -> None:
        with self._lock:
            self._get(name).logs.extend(lines)

    def state_of(self, name: str) -> str | None:
        with self._lock:
            container = self.containers.get(name)
            return container.state if container else None
