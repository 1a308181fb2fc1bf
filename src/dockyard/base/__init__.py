"""Core types shared across Dockyard: data model and error hierarchy."""

from .errors import (
    AppNotFound,
    BackendError,
    BackendFatalError,
    BackendTransientError,
    BackendUnavailable,
    ConfigError,
    ContainerNotFound,
    CyclicDependency,
    DependencyFailed,
    DependencyHeld,
    DescriptorNotFound,
    DescriptorParseError,
    DockyardError,
    ExitCode,
    OperationAborted,
    RegistryError,
    SchemaError,
    ServiceFailed,
    ShareUnavailable,
    UnknownServiceType,
)

__all__ = [
    "AppNotFound",
    "BackendError",
    "BackendFatalError",
    "BackendTransientError",
    "BackendUnavailable",
    "ConfigError",
    "ContainerNotFound",
    "CyclicDependency",
    "DependencyFailed",
    "DependencyHeld",
    "DescriptorNotFound",
    "DescriptorParseError",
    "DockyardError",
    "ExitCode",
    "OperationAborted",
    "RegistryError",
    "SchemaError",
    "ServiceFailed",
    "ShareUnavailable",
    "UnknownServiceType",
]
