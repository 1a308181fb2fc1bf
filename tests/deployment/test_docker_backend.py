"""Unit tests for the Docker backend, with the SDK client mocked out."""

from unittest.mock import MagicMock, patch

import pytest
import requests
from docker.errors import APIError, DockerException, ImageNotFound, NotFound

from dockyard.base.errors import (
    BackendFatalError,
    BackendTransientError,
    BackendUnavailable,
    ContainerNotFound,
)
from dockyard.base.models import PortMapping, ServiceSpec, ServiceStatus, VolumeMapping
from dockyard.deployment.docker_backend import DockerBackend


def api_error(status: int, message: str = "boom") -> APIError:
    response = MagicMock()
    response.status_code = status
    response.reason = message
    return APIError(message, response=response, explanation=message)


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def backend(client):
    return DockerBackend(client=client)


class TestConstruction:
    """Client construction and ping."""

    @patch("docker.from_env")
    def test_uses_environment_by_default(self, mock_from_env):
        DockerBackend(timeout=30)

        mock_from_env.assert_called_once_with(timeout=30)

    @patch("docker.DockerClient")
    def test_base_url(self, mock_client):
        DockerBackend(base_url="tcp://build:2375")

        mock_client.assert_called_once_with(base_url="tcp://build:2375", timeout=60)

    @patch("docker.from_env")
    def test_unreachable_daemon(self, mock_from_env):
        mock_from_env.side_effect = DockerException("socket missing")

        with pytest.raises(BackendUnavailable, match="socket missing"):
            DockerBackend()

    def test_ping_failure(self, backend, client):
        client.ping.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(BackendUnavailable):
            backend.ping()


class TestErrorTranslation:
    """SDK exceptions map onto backend error families."""

    def test_not_found(self, backend, client):
        client.containers.get.side_effect = NotFound("gone")

        with pytest.raises(ContainerNotFound) as exc_info:
            backend.inspect_container("demo_node_1")

        assert exc_info.value.name == "demo_node_1"

    def test_server_error_is_transient(self, backend, client):
        client.api.start.side_effect = api_error(500, "driver failed")

        with pytest.raises(BackendTransientError, match="driver failed"):
            backend.start_container("demo_node_1")

    def test_client_error_is_fatal(self, backend, client):
        client.api.create_container.side_effect = api_error(400, "invalid reference format")
        spec = ServiceSpec(service_name="node", kind="node", version="18", image="node:18")

        with pytest.raises(BackendFatalError, match="invalid reference format"):
            backend.create_container(spec, "demo_node_1", "demo_default")

    def test_timeout_is_transient(self, backend, client):
        client.api.stop.side_effect = requests.exceptions.ReadTimeout("read timed out")

        with pytest.raises(BackendTransientError):
            backend.stop_container("demo_node_1")

    def test_missing_image_on_pull_is_fatal(self, backend, client):
        client.images.pull.side_effect = ImageNotFound("no such image")

        with pytest.raises(BackendFatalError):
            backend.pull_image("nope:1")


class TestOperations:
    """Calls issued against the SDK."""

    def test_inspect_reports_state_and_ports(self, backend, client):
        container = MagicMock()
        container.name = "demo_redis_1"
        container.id = "abc123"
        container.labels = {"dockyard.service": "redis"}
        container.attrs = {
            "State": {"Status": "running"},
            "Config": {"Image": "redis:4.0"},
            "NetworkSettings": {"Ports": {"6379/tcp": [{"HostIp": "0.0.0.0", "HostPort": "32770"}], "1/udp": None}},
        }
        client.containers.get.return_value = container

        info = backend.inspect_container("demo_redis_1")

        assert info.status is ServiceStatus.RUNNING
        assert info.image == "redis:4.0"
        assert info.published_ports == {"6379/tcp": 32770}

    def test_list_filters_by_label(self, backend, client):
        client.containers.list.return_value = []

        backend.list_containers({"dockyard.project": "demo"})

        client.containers.list.assert_called_once_with(all=True, filters={"label": ["dockyard.project=demo"]})

    def test_image_exists(self, backend, client):
        assert backend.image_exists("redis:4.0") is True

        client.images.get.side_effect = ImageNotFound("missing")
        assert backend.image_exists("redis:4.0") is False

    @pytest.mark.parametrize(
        "image, repository, tag",
        [
            ("redis:4.0", "redis", "4.0"),
            ("redis", "redis", "latest"),
            ("registry.local:5000/team/app", "registry.local:5000/team/app", "latest"),
            ("registry.local:5000/team/app:2", "registry.local:5000/team/app", "2"),
        ],
    )
    def test_pull_splits_tag(self, backend, client, image, repository, tag):
        backend.pull_image(image)

        client.images.pull.assert_called_once_with(repository, tag=tag)

    def test_create_container(self, backend, client):
        client.api.create_container.return_value = {"Id": "c0ffee"}
        spec = ServiceSpec(
            service_name="node",
            kind="node",
            version="18",
            image="node:18",
            env={"DOCKYARD": "ON"},
            ports=(PortMapping(3000), PortMapping(9229, host_port=9229, host_ip="127.0.0.1")),
            volumes=(VolumeMapping("/src/demo", "/app"),),
            command=("tail", "-f", "/dev/null"),
            working_dir="/app",
            labels={"dockyard.service": "node"},
        )

        assert backend.create_container(spec, "demo_node_1", "demo_default") == "c0ffee"

        client.api.create_host_config.assert_called_once_with(
            port_bindings={"3000/tcp": None, "9229/tcp": ("127.0.0.1", 9229)},
            binds={"/src/demo": {"bind": "/app", "mode": "rw"}},
        )
        client.api.create_endpoint_config.assert_called_once_with(aliases=["node"])
        kwargs = client.api.create_container.call_args.kwargs
        assert kwargs["name"] == "demo_node_1"
        assert kwargs["command"] == ["tail", "-f", "/dev/null"]
        assert kwargs["ports"] == [(3000, "tcp"), (9229, "tcp")]
        assert kwargs["environment"] == {"DOCKYARD": "ON"}

    def test_remove_drops_anonymous_volumes(self, backend, client):
        backend.remove_container("demo_node_1")

        client.api.remove_container.assert_called_once_with("demo_node_1", v=True)

    def test_stream_logs_splits_chunks_into_lines(self, backend, client):
        client.api.logs.return_value = iter([b"one\ntw", b"o\nthree"])

        lines = list(backend.stream_logs("demo_node_1", tail=10))

        assert lines == ["one", "two", "three"]
        client.api.logs.assert_called_once_with(
            "demo_node_1", stream=True, follow=False, timestamps=False, tail=10
        )

    def test_ensure_network_creates_once(self, backend, client):
        client.networks.list.return_value = []

        backend.ensure_network("demo_default", {"dockyard.project": "demo"})

        client.networks.create.assert_called_once_with(
            "demo_default", driver="bridge", labels={"dockyard.project": "demo"}
        )

        client.networks.create.reset_mock()
        existing = MagicMock()
        existing.name = "demo_default"
        client.networks.list.return_value = [existing]
        backend.ensure_network("demo_default")
        client.networks.create.assert_not_called()

    def test_ensure_network_ignores_similarly_named_network(self, backend, client):
        other = MagicMock()
        other.name = "myweb_default"
        client.networks.list.return_value = [other]

        backend.ensure_network("web_default")

        client.networks.create.assert_called_once_with("web_default", driver="bridge", labels={})

    def test_remove_network_matches_exact_name(self, backend, client):
        exact, similar = MagicMock(), MagicMock()
        exact.name, similar.name = "demo_default", "demo_default2"
        client.networks.list.return_value = [exact, similar]

        backend.remove_network("demo_default")

        exact.remove.assert_called_once()
        similar.remove.assert_not_called()
