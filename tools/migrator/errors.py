"""Exceptions raised by the migrator."""

from __future__ import annotations


class MigrationError(Exception):
    """Base class for every error the migrator raises on purpose."""


class ConfigError(MigrationError):
    """The configuration file is missing or invalid."""


class ConnectivityError(MigrationError):
    """A source or target database could not be reached."""

    def __init__(self, side: str, cause: BaseException) -> None:
        super().__init__(f"Failed to connect to {side} database: {cause}")
        self.side = side
        self.cause = cause


class ProgressError(MigrationError):
    """The checkpoint file is unreadable, or an update would move it backwards."""


class ThreadMapConflict(ProgressError):
    """A thread mapping would be overwritten with a different target id."""
