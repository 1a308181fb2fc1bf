"""Descriptor loading, graph building and container reconciliation."""

from .app_manager import AppManager
from .graph import MergePolicy, build_graph
from .inspector import StateInspector
from .loader import find_descriptor, load_descriptor
from .reconciler import Reconciler
from .registry import AppRegistry

__all__ = [
    "AppManager",
    "AppRegistry",
    "MergePolicy",
    "Reconciler",
    "StateInspector",
    "build_graph",
    "find_descriptor",
    "load_descriptor",
]
