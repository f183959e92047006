"""
StorageForge CLI Module.

Provides command-line interface for StorageForge operations.
"""

from storageforge.cli.main import cli, main

__all__ = ["main", "cli"]
