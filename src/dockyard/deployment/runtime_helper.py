"""Container backend selection for Docker and the in-memory runtime.

Picks the backend named by ``DOCKYARD_BACKEND`` or ``runtime.backend`` and
checks that it answers before any command touches it.

Examples:
    Basic usage::

        from dockyard.deployment.runtime_helper import get_backend

        backend = get_backend()
        # Returns: DockerBackend or MemoryBackend
"""

import platform

from dockyard.base.errors import BackendUnavailable, ConfigError
from dockyard.deployment.backend import ContainerBackend
from dockyard.utils.config import get_config_value
from dockyard.utils.logger import get_logger

logger = get_logger("runtime")

SUPPORTED_BACKENDS = ("docker", "memory")

# Module-level cache for the selected backend
_cached_backend: ContainerBackend | None = None


def get_backend(name: str | None = None) -> ContainerBackend:
    """Get the container backend for this process.

    Uses ``name`` if given, else ``runtime.backend`` (which ``DOCKYARD_BACKEND``
    overrides). Result is cached after first construction.

    Args:
        name: Optional backend name, bypassing configuration

    Returns:
        A connected ContainerBackend

    Raises:
        ConfigError: If the backend name is not supported
        BackendUnavailable: If the runtime cannot be reached
    """
    global _cached_backend

    if _cached_backend is not None and name in (None, _cached_backend.name):
        return _cached_backend

    backend_name = (name or get_config_value("runtime.backend", "docker")).strip().lower()

    if backend_name == "memory":
        from dockyard.deployment.memory_backend import MemoryBackend

        backend = MemoryBackend()
    elif backend_name == "docker":
        from dockyard.deployment.docker_backend import DockerBackend

        try:
            backend = DockerBackend(
                base_url=get_config_value("runtime.base_url"),
                timeout=int(get_config_value("runtime.timeout", 60)),
            )
        except BackendUnavailable as e:
            raise BackendUnavailable(f"{e}\n\n{_get_docker_not_running_message()}") from e
    else:
        raise ConfigError(
            f"Unsupported runtime.backend '{backend_name}' "
            f"(supported: {', '.join(SUPPORTED_BACKENDS)})"
        )

    logger.debug(f"Using {backend.name} backend")
    _cached_backend = backend
    return backend


def set_backend(backend: ContainerBackend | None) -> None:
    """Install (or with None, forget) the process-wide backend."""
    global _cached_backend
    _cached_backend = backend


def verify_backend_is_running(backend: ContainerBackend) -> tuple[bool, str]:
    """Verify that the container runtime is actually answering.

    Args:
        backend: Backend to check

    Returns:
        Tuple of (is_running: bool, error_message: str)
        If running: (True, "")
        If not running: (False, helpful error message)
    """
    try:
        backend.ping()
        return True, ""
    except BackendUnavailable as e:
        if backend.name == "docker":
            return False, f"{e}\n\n{_get_docker_not_running_message()}"
        return False, str(e)


def require_backend(backend: ContainerBackend) -> None:
    """Raise BackendUnavailable with platform help text if ``backend`` is down."""
    running, message = verify_backend_is_running(backend)
    if not running:
        raise BackendUnavailable(message)


def _get_docker_not_running_message() -> str:
    """Get platform-specific message for Docker not running."""
    system = platform.system()

    if system == "Darwin":  # macOS
        return (
            "Docker Desktop is not running.\n\n"
            "To fix this:\n"
            "1. Open Docker Desktop from Applications\n"
            "2. Wait for Docker to start (whale icon in menu bar should be steady)\n"
            "3. Try your command again"
        )
    elif system == "Windows":
        return (
            "Docker Desktop is not running.\n\n"
            "To fix this:\n"
            "1. Start Docker Desktop from the Start menu\n"
            "2. Wait for Docker to start (system tray icon should be running)\n"
            "3. Try your command again"
        )
    else:  # Linux
        return (
            "Docker daemon is not running.\n\n"
            "To fix this:\n"
            "1. Start Docker: sudo systemctl start docker\n"
            "2. Check status: sudo systemctl status docker\n\n"
            "If permission issues, add user to docker group:\n"
            "sudo usermod -aG docker $USER\n"
            "(then log out and back in)"
        )
