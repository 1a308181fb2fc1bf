"""Error Classification for Dockyard.

This module defines the exception hierarchy shared by every layer of the
orchestrator. Errors are grouped by where they arise and how the command
layer reacts to them:

Error Families:
    - **ConfigError**: The descriptor or the global configuration is missing,
      malformed, or describes an impossible service graph. Raised before the
      container backend is contacted; the CLI exits with status 2.
    - **BackendError**: A container runtime call failed. Transient failures
      (timeouts, connection resets, server errors) are retried by the
      reconciler; fatal failures (invalid image, bad request) are not.
    - **ServiceFailed**: The per-service outcome recorded by the reconciler
      when an action could not be completed, including failures propagated
      along dependency edges.
    - **RegistryError**: The durable app registry could not be read or
      written. Already-completed backend actions are never rolled back.

.. note::
   Every ``ServiceFailed`` carries a human-readable ``reason``. The command
   layer prints one line per failed service and never drops a failure.

.. seealso::
   :mod:`dockyard.deployment.reconciler` : Collects per-service failures
   :mod:`dockyard.cli.main` : Maps error families to exit codes
"""

from enum import Enum


class ExitCode(int, Enum):
    """Process exit codes used by every CLI command."""

    OK = 0
    SERVICE_FAILURE = 1
    CONFIG_ERROR = 2


class DockyardError(Exception):
    """Base class for all Dockyard errors."""

    exit_code = ExitCode.SERVICE_FAILURE


# =============================================================================
# CONFIGURATION & DESCRIPTOR ERRORS
# =============================================================================


class ConfigError(DockyardError):
    """Bad or missing descriptor/configuration. Never reaches the backend."""

    exit_code = ExitCode.CONFIG_ERROR


class DescriptorNotFound(ConfigError):
    """No descriptor file exists at or above the requested directory."""

    def __init__(self, start_path, filenames):
        self.start_path = start_path
        self.filenames = tuple(filenames)
        super().__init__(
            f"No {' or '.join(self.filenames)} found in {start_path} or any parent directory"
        )


class DescriptorParseError(ConfigError):
    """The descriptor file is not valid YAML."""

    def __init__(self, path, detail: str):
        self.path = path
        self.detail = detail
        super().__init__(f"Could not parse {path}: {detail}")


class SchemaError(ConfigError):
    """The descriptor parsed, but its content is invalid.

    ``problems`` holds every violation found, so users can fix them in one pass.
    """

    def __init__(self, message: str, problems: list[str] | None = None):
        self.problems = list(problems or [])
        if self.problems:
            message = message + ":\n" + "\n".join(f"  - {p}" for p in self.problems)
        super().__init__(message)


class UnknownServiceType(ConfigError):
    """A service declares a type (or version) that has no known defaults."""

    def __init__(self, service_name: str, service_type: str, known: list[str] | None = None):
        self.service_name = service_name
        self.service_type = service_type
        self.known = list(known or [])
        message = f"Service '{service_name}' has unknown type '{service_type}'"
        if self.known:
            message += f" (known types: {', '.join(self.known)})"
        super().__init__(message)


class CyclicDependency(ConfigError):
    """The service dependency edges contain a cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = list(cycle)
        super().__init__(f"Cyclic service dependency: {' -> '.join(self.cycle)}")


# =============================================================================
# BACKEND ERRORS
# =============================================================================


class BackendError(DockyardError):
    """A container runtime call failed."""


class BackendTransientError(BackendError):
    """Timeouts, connection resets and server-side errors. Eligible for retry."""


class BackendFatalError(BackendError):
    """Errors that will not go away on retry, e.g. an invalid image reference."""


class ContainerNotFound(BackendError):
    """The named container does not exist."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No such container: {name}")


class BackendUnavailable(BackendError):
    """The container runtime cannot be reached at all."""


# =============================================================================
# PER-SERVICE OUTCOMES
# =============================================================================


class ServiceFailed(DockyardError):
    """A service did not reach the terminal state requested by an operation."""

    def __init__(self, service_name: str, reason: str, cause: BaseException | None = None):
        self.service_name = service_name
        self.reason = reason
        self.cause = cause
        super().__init__(f"{service_name}: {reason}")


class DependencyFailed(ServiceFailed):
    """A dependency failed, so the service was never attempted."""

    def __init__(self, service_name: str, dependency: str):
        self.dependency = dependency
        super().__init__(service_name, f"dependency '{dependency}' failed")


class DependencyHeld(ServiceFailed):
    """A dependent could not be stopped, so this service is held running."""

    def __init__(self, service_name: str, dependent: str):
        self.dependent = dependent
        super().__init__(service_name, f"held running: dependent '{dependent}' did not stop")


class OperationAborted(ServiceFailed):
    """The operation was aborted before this service's action was issued."""

    def __init__(self, service_name: str):
        super().__init__(service_name, "aborted before action was issued")


# =============================================================================
# REGISTRY & FACADE ERRORS
# =============================================================================


class RegistryError(DockyardError):
    """The durable app registry could not be read or written."""


class AppNotFound(DockyardError):
    """No registry entry exists for the requested app."""

    def __init__(self, app_name: str):
        self.app_name = app_name
        super().__init__(f"App '{app_name}' is not registered")


class ShareUnavailable(DockyardError):
    """No running service publishes a port that could be shared."""
