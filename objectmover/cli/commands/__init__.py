"""CLI command modules."""

from objectmover.cli.commands import config, storage

__all__ = [
    "config",
    "storage",
]
