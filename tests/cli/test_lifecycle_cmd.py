"""Tests for the lifecycle commands and their exit codes."""

import json

from dockyard.base.errors import BackendFatalError
from dockyard.cli.main import cli
from dockyard.deployment import runtime_helper
from dockyard.deployment.memory_backend import MemoryBackend
from tests.conftest import write_descriptor


def invoke(runner, demo_app, *args, **kwargs):
    return runner.invoke(cli, ["-p", str(demo_app), *args], **kwargs)


class TestStartCommand:
    """dockyard start"""

    def test_start_succeeds(self, runner, demo_app, installed_backend):
        result = invoke(runner, demo_app, "start")

        assert result.exit_code == 0, result.output
        assert installed_backend.state_of("demo_node_1") == "running"
        assert "start complete" in result.stderr

    def test_start_twice_is_idempotent(self, runner, demo_app, installed_backend):
        invoke(runner, demo_app, "start")
        created = installed_backend.calls_to("create_container")

        result = invoke(runner, demo_app, "start")

        assert result.exit_code == 0
        assert installed_backend.calls_to("create_container") == created

    def test_service_failure_exits_1(self, runner, demo_app, installed_backend):
        installed_backend.inject("create_container", "demo_redis_1", BackendFatalError("No such image"))

        result = invoke(runner, demo_app, "start")

        assert result.exit_code == 1
        assert "redis" in result.stderr
        assert "No such image" in result.stderr

    def test_schema_error_exits_2_without_backend(self, runner, tmp_path, installed_backend):
        app = write_descriptor(tmp_path / "bad", "name: bad\nservices:\n  web:\n    type: cobol\n")

        result = invoke(runner, app, "start")

        assert result.exit_code == 2
        assert "cobol" in result.stderr
        assert installed_backend.calls == []

    def test_missing_descriptor_exits_2(self, runner, tmp_path, installed_backend):
        empty = tmp_path / "empty"
        empty.mkdir()

        result = invoke(runner, empty, "start")

        assert result.exit_code == 2
        assert ".dockyard.yml" in result.stderr

    def test_unreachable_backend_exits_1(self, runner, demo_app):
        runtime_helper.set_backend(MemoryBackend(available=False))

        result = invoke(runner, demo_app, "start")

        assert result.exit_code == 1
        assert "unavailable" in result.stderr

    def test_project_from_environment(self, runner, demo_app, installed_backend, monkeypatch):
        monkeypatch.setenv("DOCKYARD_PROJECT", str(demo_app))

        result = runner.invoke(cli, ["start"])

        assert result.exit_code == 0
        assert installed_backend.state_of("demo_redis_1") == "running"

    def test_interrupt_aborts(self, runner, demo_app, installed_backend):
        installed_backend.inject("pull_image", None, KeyboardInterrupt())

        result = invoke(runner, demo_app, "start")

        assert result.exit_code == 1
        assert "demo_node_1" not in installed_backend.containers


class TestOtherLifecycleCommands:
    """stop, restart, rebuild, destroy and poweroff."""

    def test_stop(self, runner, demo_app, installed_backend):
        invoke(runner, demo_app, "start")

        result = invoke(runner, demo_app, "stop")

        assert result.exit_code == 0
        assert installed_backend.state_of("demo_node_1") == "exited"

    def test_restart(self, runner, demo_app, installed_backend):
        invoke(runner, demo_app, "start")

        result = invoke(runner, demo_app, "restart")

        assert result.exit_code == 0
        assert installed_backend.calls_to("stop_container") == ["demo_redis_1", "demo_node_1"]

    def test_destroy_requires_confirmation(self, runner, demo_app, installed_backend):
        invoke(runner, demo_app, "start")

        result = invoke(runner, demo_app, "destroy", input="n\n")

        assert result.exit_code == 1
        assert installed_backend.state_of("demo_node_1") == "running"

    def test_destroy_with_yes(self, runner, demo_app, installed_backend):
        invoke(runner, demo_app, "start")

        result = invoke(runner, demo_app, "destroy", "--yes")

        assert result.exit_code == 0
        assert installed_backend.containers == {}
        listed = invoke(runner, demo_app, "list")
        assert listed.stdout.strip() == "[]"

    def test_destroy_confirmed_interactively(self, runner, demo_app, installed_backend):
        invoke(runner, demo_app, "start")

        result = invoke(runner, demo_app, "destroy", input="y\n")

        assert result.exit_code == 0
        assert installed_backend.containers == {}

    def test_rebuild(self, runner, demo_app, installed_backend):
        invoke(runner, demo_app, "start")
        pulls = len(installed_backend.calls_to("pull_image"))

        result = invoke(runner, demo_app, "rebuild", "-y")

        assert result.exit_code == 0
        assert len(installed_backend.calls_to("pull_image")) == pulls + 2

    def test_poweroff(self, runner, demo_app, installed_backend):
        invoke(runner, demo_app, "start")

        result = invoke(runner, demo_app, "poweroff")

        assert result.exit_code == 0
        assert "demo/node" in result.stderr
        assert all(c.state == "exited" for c in installed_backend.containers.values())


def test_demo_scenario_end_to_end(runner, demo_app, installed_backend):
    """start -> list -> info -> destroy -y on the node + redis demo app."""
    assert invoke(runner, demo_app, "start").exit_code == 0

    listed = json.loads(invoke(runner, demo_app, "list").stdout)
    assert [{"name": a["name"], "services": a["services"]} for a in listed] == [
        {"name": "demo", "services": ["node", "redis"]}
    ]

    info = json.loads(invoke(runner, demo_app, "info").stdout)
    assert set(info) == {"node", "redis"}

    assert invoke(runner, demo_app, "destroy", "-y").exit_code == 0
    assert json.loads(invoke(runner, demo_app, "list").stdout) == []
    assert not [name for name in installed_backend.containers if name.startswith("demo_")]
