"""Dockyard - local multi-service development environments.

This package contains:
- Descriptor loading and service graph construction
- Container state inspection and reconciliation
- The persisted app registry
- The ``dockyard`` command-line interface
"""

# Version information
__version__ = "0.4.2"

__all__ = ["__version__"]
