"""Tests for the JSON query commands: info and list."""

import json

from dockyard.cli.main import cli


class TestInfoCommand:
    """dockyard info"""

    def test_info_prints_json_only_on_stdout(self, runner, demo_app, installed_backend):
        runner.invoke(cli, ["-p", str(demo_app), "start"])

        result = runner.invoke(cli, ["-p", str(demo_app), "info"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["redis"]["internal_connection"]["host"] == "redis"
        assert data["redis"]["internal_connection"]["port"] == 6379
        assert data["redis"]["status"] == "running"
        assert data["node"]["urls"] == [f"http://localhost:{data['node']['external_connection']['port']}"]

    def test_info_single_service(self, runner, demo_app, installed_backend):
        result = runner.invoke(cli, ["-p", str(demo_app), "info", "-s", "redis"])

        assert result.exit_code == 0
        assert list(json.loads(result.stdout)) == ["redis"]

    def test_info_unknown_service(self, runner, demo_app, installed_backend):
        result = runner.invoke(cli, ["-p", str(demo_app), "info", "--service", "ghost"])

        assert result.exit_code == 2
        assert result.stdout == ""
        assert "ghost" in result.stderr


class TestListCommand:
    """dockyard list"""

    def test_empty_registry(self, runner, tmp_path, installed_backend):
        result = runner.invoke(cli, ["-p", str(tmp_path), "list"])

        assert result.exit_code == 0
        assert json.loads(result.stdout) == []

    def test_lists_started_app(self, runner, demo_app, installed_backend):
        runner.invoke(cli, ["-p", str(demo_app), "start"])

        result = runner.invoke(cli, ["list"])

        apps = json.loads(result.stdout)
        assert [app["name"] for app in apps] == ["demo"]
        assert apps[0]["services"] == ["node", "redis"]

    def test_corrupt_registry_exits_1(self, runner, tmp_path, isolated_home):
        isolated_home.mkdir(parents=True, exist_ok=True)
        (isolated_home / "registry.json").write_text("{")

        result = runner.invoke(cli, ["-p", str(tmp_path), "list"])

        assert result.exit_code == 1
        assert "corrupt" in result.stderr
