"""Docker Engine backend built on the docker SDK.

Talks to the daemon through ``docker.DockerClient``. Exceptions raised by the
SDK (and by ``requests`` underneath it) are translated into the backend error
families so the reconciler can decide what to retry:

=====================================  ==============================
SDK / transport error                  Backend error
=====================================  ==============================
``docker.errors.NotFound``             ``ContainerNotFound``
``docker.errors.ImageNotFound``        ``BackendFatalError``
``docker.errors.APIError`` (5xx)       ``BackendTransientError``
``docker.errors.APIError`` (4xx)       ``BackendFatalError``
``requests`` timeouts / resets         ``BackendTransientError``
client cannot be constructed           ``BackendUnavailable``
=====================================  ==============================
"""

from collections.abc import Iterator
from contextlib import contextmanager

import docker
import requests
from docker.errors import APIError, DockerException, ImageNotFound, NotFound

from dockyard.base.errors import (
    BackendFatalError,
    BackendTransientError,
    BackendUnavailable,
    ContainerNotFound,
)
from dockyard.base.models import ServiceSpec
from dockyard.deployment.backend import ContainerBackend, ContainerInfo
from dockyard.utils.logger import get_logger

logger = get_logger("runtime")


@contextmanager
def _translate_errors(target: str = ""):
    """Re-raise SDK and transport exceptions as backend errors."""
    try:
        yield
    except ImageNotFound as e:
        raise BackendFatalError(f"Image not found: {e.explanation or e}") from e
    except NotFound as e:
        raise ContainerNotFound(target) from e
    except APIError as e:
        message = e.explanation or str(e)
        if e.is_server_error():
            raise BackendTransientError(message) from e
        raise BackendFatalError(message) from e
    except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
        raise BackendTransientError(f"Docker daemon did not respond: {e}") from e
    except DockerException as e:
        raise BackendFatalError(str(e)) from e


def _published_ports(attrs: dict) -> dict[str, int]:
    ports = (attrs.get("NetworkSettings") or {}).get("Ports") or {}
    published = {}
    for key, bindings in ports.items():
        for binding in bindings or []:
            host_port = binding.get("HostPort")
            if host_port:
                published[key] = int(host_port)
                break
    return published


def _to_info(container) -> ContainerInfo:
    attrs = container.attrs or {}
    state = (attrs.get("State") or {}).get("Status") or container.status
    image = (attrs.get("Config") or {}).get("Image", "")
    return ContainerInfo(
        name=container.name,
        id=container.id,
        state=state,
        image=image,
        labels=dict(container.labels or {}),
        published_ports=_published_ports(attrs),
    )


class DockerBackend(ContainerBackend):
    """ContainerBackend for a local or remote Docker Engine."""

    name = "docker"

    def __init__(self, base_url: str | None = None, timeout: int = 60, client=None):
        """Create the SDK client.

        :param base_url: Daemon URL; ``None`` uses ``DOCKER_HOST`` / the default socket
        :param timeout: Per-request timeout in seconds
        :param client: Pre-built ``docker.DockerClient`` (tests)
        :raises BackendUnavailable: If the client cannot be constructed
        """
        self.timeout = timeout
        if client is not None:
            self.client = client
            return
        try:
            if base_url:
                self.client = docker.DockerClient(base_url=base_url, timeout=timeout)
            else:
                self.client = docker.from_env(timeout=timeout)
        except DockerException as e:
            raise BackendUnavailable(f"Cannot connect to the Docker daemon: {e}") from e

    def ping(self) -> None:
        try:
            self.client.ping()
        except (DockerException, requests.exceptions.RequestException) as e:
            raise BackendUnavailable(f"Cannot connect to the Docker daemon: {e}") from e

    def list_containers(self, filters: dict[str, str] | None = None) -> list[ContainerInfo]:
        label_filters = [f"{key}={value}" for key, value in (filters or {}).items()]
        with _translate_errors():
            containers = self.client.containers.list(all=True, filters={"label": label_filters})
        return [_to_info(c) for c in containers]

    def inspect_container(self, name: str) -> ContainerInfo:
        with _translate_errors(name):
            return _to_info(self.client.containers.get(name))

    def image_exists(self, image: str) -> bool:
        try:
            with _translate_errors(image):
                self.client.images.get(image)
            return True
        except (ContainerNotFound, BackendFatalError):
            return False

    def pull_image(self, image: str) -> None:
        repository, _, tag = image.rpartition(":")
        if not repository or "/" in tag:
            repository, tag = image, "latest"
        logger.info(f"Pulling {repository}:{tag}")
        with _translate_errors(image):
            self.client.images.pull(repository, tag=tag)

    def create_container(self, spec: ServiceSpec, name: str, network: str) -> str:
        api = self.client.api
        port_bindings = {}
        for mapping in spec.ports:
            if mapping.host_ip:
                port_bindings[mapping.key] = (mapping.host_ip, mapping.host_port)
            else:
                port_bindings[mapping.key] = mapping.host_port
        binds = {v.source: {"bind": v.target, "mode": v.mode} for v in spec.volumes}

        with _translate_errors(name):
            host_config = api.create_host_config(port_bindings=port_bindings, binds=binds)
            networking_config = api.create_networking_config(
                {network: api.create_endpoint_config(aliases=[spec.service_name])}
            )
            response = api.create_container(
                image=spec.image,
                name=name,
                command=list(spec.command) if spec.command else None,
                environment=dict(spec.env),
                labels=dict(spec.labels),
                working_dir=spec.working_dir,
                hostname=spec.service_name,
                ports=[(m.container_port, m.protocol) for m in spec.ports],
                host_config=host_config,
                networking_config=networking_config,
            )
        return response["Id"]

    def start_container(self, name: str) -> None:
        with _translate_errors(name):
            self.client.api.start(name)

    def stop_container(self, name: str, timeout: int = 10) -> None:
        with _translate_errors(name):
            self.client.api.stop(name, timeout=timeout)

    def remove_container(self, name: str) -> None:
        with _translate_errors(name):
            self.client.api.remove_container(name, v=True)

    def stream_logs(
        self,
        name: str,
        timestamps: bool = False,
        follow: bool = False,
        tail: int | str = "all",
    ) -> Iterator[str]:
        with _translate_errors(name):
            stream = self.client.api.logs(
                name, stream=True, follow=follow, timestamps=timestamps, tail=tail
            )
            buffer = ""
            for chunk in stream:
                buffer += chunk.decode("utf-8", errors="replace")
                *lines, buffer = buffer.split("\n")
                yield from lines
            if buffer:
                yield buffer

    def ensure_network(self, name: str, labels: dict[str, str] | None = None) -> None:
        with _translate_errors(name):
            # names filter is a substring match
            if any(network.name == name for network in self.client.networks.list(names=[name])):
                return
            logger.debug(f"Creating network {name}")
            self.client.networks.create(name, driver="bridge", labels=dict(labels or {}))

    def remove_network(self, name: str) -> None:
        with _translate_errors(name):
            for network in self.client.networks.list(names=[name]):
                if network.name == name:
                    network.remove()

    def close(self) -> None:
        self.client.close()
