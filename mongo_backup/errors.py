"""Exception hierarchy shared by the backup and restore engine."""

from __future__ import annotations


class BackupError(RuntimeError):
    """Raised when backup or restore operations cannot be completed."""


class ConfigurationError(BackupError):
    """Connection, SSH or configuration data is missing or ambiguous."""


class SelectionError(BackupError):
    """Invalid combination of selection mode, collections and time filter."""


class CatalogFetchError(BackupError):
    """Listing the live collection catalog failed."""


class BuildError(BackupError):
    """The dump or restore command cannot be assembled."""


class ExecutionError(BackupError):
    """The external dump/restore process or SSH session failed.

    ``command`` holds the redacted command line that was attempted so the
    operator can reproduce it manually.
    """

    def __init__(
        self,
        message: str,
        *,
        command: str | None = None,
        exit_code: int | None = None,
        stderr: str | None = None,
    ) -> None:
        super().__init__(message)
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr

    def __str__(self) -> str:
        base = super().__str__()
        if self.command:
            return f"{base} (command: {self.command})"
        return base


class MetadataError(BackupError):
    """A backup sidecar file is missing or corrupt."""


__all__ = [
    "BackupError",
    "BuildError",
    "CatalogFetchError",
    "ConfigurationError",
    "ExecutionError",
    "MetadataError",
    "SelectionError",
]
