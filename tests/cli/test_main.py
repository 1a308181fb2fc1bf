"""Tests for main CLI entry point.

Tests the main CLI group, lazy command loading and project resolution.
"""

from pathlib import Path
from unittest import mock

import pytest

from dockyard import __version__
from dockyard.cli.main import LazyGroup, cli, main
from dockyard.cli.project_utils import resolve_project_path


class TestLazyGroup:
    """Test the LazyGroup command loading mechanism."""

    def test_get_command_imports_module(self):
        """get_command imports the command's module on demand."""
        group = LazyGroup(name="test")
        ctx = mock.Mock()

        with mock.patch("importlib.import_module") as mock_import:
            mock_module = mock.Mock()
            mock_import.return_value = mock_module

            cmd = group.get_command(ctx, "info")

        mock_import.assert_called_once_with("dockyard.cli.info_cmd")
        assert cmd is mock_module.info

    def test_get_command_returns_none_for_invalid_command(self):
        group = LazyGroup(name="test")

        assert group.get_command(mock.Mock(), "nonexistent_command") is None

    def test_list_commands(self):
        commands = LazyGroup(name="test").list_commands(mock.Mock())

        for expected in ("start", "stop", "restart", "rebuild", "destroy", "poweroff", "info", "list", "logs", "share"):
            assert expected in commands

    def test_every_command_resolves(self):
        """Every mapped command imports and is a click command."""
        group = LazyGroup(name="test")
        for name in group.list_commands(mock.Mock()):
            cmd = group.get_command(mock.Mock(), name)
            assert cmd is not None
            assert cmd.name == name


class TestCliGroup:
    """Top-level options."""

    def test_help_lists_commands(self, runner):
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "poweroff" in result.output
        assert "share" in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_unknown_command(self, runner):
        result = runner.invoke(cli, ["launch"])

        assert result.exit_code == 2

    def test_verbose_sets_debug(self, runner, demo_app, installed_backend):
        with mock.patch("dockyard.cli.main.set_log_level") as mock_level:
            result = runner.invoke(cli, ["-v", "-p", str(demo_app), "list"])

        assert result.exit_code == 0
        mock_level.assert_called_once()


class TestResolveProjectPath:
    def test_argument_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DOCKYARD_PROJECT", "/somewhere/else")

        assert resolve_project_path(str(tmp_path)) == tmp_path.resolve()

    def test_environment_variable(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DOCKYARD_PROJECT", str(tmp_path))

        assert resolve_project_path() == tmp_path.resolve()

    def test_defaults_to_cwd(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        assert resolve_project_path() == Path.cwd()


class TestMain:
    """The console-script entry point."""

    def test_keyboard_interrupt_exits_130(self):
        with mock.patch("dockyard.cli.main.cli", side_effect=KeyboardInterrupt):
            with pytest.raises(SystemExit) as exc_info:
                main()

        assert exc_info.value.code == 130

    def test_unexpected_error_exits_1(self, capsys):
        with mock.patch("dockyard.cli.main.cli", side_effect=RuntimeError("kaboom")):
            with pytest.raises(SystemExit) as exc_info:
                main()

        assert exc_info.value.code == 1
        assert "kaboom" in capsys.readouterr().err
