"""Command line interface for Dockyard."""
