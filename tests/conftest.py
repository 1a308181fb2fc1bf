"""
Pytest configuration and shared test utilities.

Every test runs with an isolated Dockyard home directory, a fresh
configuration cache and no cached container backend, so nothing leaks
between tests or touches the developer's real registry.
"""

import textwrap
from pathlib import Path

import pytest

from dockyard.deployment import runtime_helper
from dockyard.deployment.app_manager import AppManager
from dockyard.deployment.memory_backend import MemoryBackend
from dockyard.deployment.registry import AppRegistry
from dockyard.utils.config import reset_config

DEMO_DESCRIPTOR = """
name: demo
services:
  node:
    type: node:8.9
  redis:
    type: redis:4.0
"""


def write_descriptor(directory: Path, content: str, filename: str = ".dockyard.yml") -> Path:
    """Write a descriptor (dedented) into ``directory`` and return the directory."""
    directory.mkdir(parents=True, exist_ok=True)
    (directory / filename).write_text(textwrap.dedent(content))
    return directory


def no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Point DOCKYARD_HOME at a temp dir and clear env overrides and caches."""
    home = tmp_path / "dockyard-home"
    monkeypatch.setenv("DOCKYARD_HOME", str(home))
    for var in ("DOCKYARD_BACKEND", "DOCKYARD_CONFIG", "DOCKYARD_PROJECT", "DEBUG"):
        monkeypatch.delenv(var, raising=False)
    reset_config()
    runtime_helper.set_backend(None)
    yield home
    reset_config()
    runtime_helper.set_backend(None)


@pytest.fixture
def demo_app(tmp_path) -> Path:
    """App directory holding the two-service demo descriptor (node + redis)."""
    return write_descriptor(tmp_path / "demo", DEMO_DESCRIPTOR)


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def registry(isolated_home) -> AppRegistry:
    return AppRegistry(isolated_home / "registry.json")


@pytest.fixture
def manager(demo_app, backend, registry) -> AppManager:
    """AppManager for the demo app on the in-memory backend, without retry delays."""
    return AppManager(
        demo_app,
        backend=backend,
        registry=registry,
        reconciler_options={"sleep": no_sleep},
    )
