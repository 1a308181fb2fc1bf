"""Shared utilities: configuration, logging, and log filtering."""
