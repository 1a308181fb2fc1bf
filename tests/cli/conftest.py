"""Shared fixtures for CLI tests.

Commands build their own AppManager, so the in-memory backend is installed as
the process-wide backend instead of being passed in.
"""

import pytest
from click.testing import CliRunner

from dockyard.deployment import runtime_helper


@pytest.fixture
def runner():
    """Provide a Click CLI runner for testing."""
    return CliRunner()


@pytest.fixture
def installed_backend(backend):
    """The test's MemoryBackend, installed for get_backend()."""
    runtime_helper.set_backend(backend)
    return backend
