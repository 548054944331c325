"""Point-in-time MongoDB backup and restore driven by mongodump/mongorestore."""

from .errors import (
    BackupError,
    BuildError,
    CatalogFetchError,
    ConfigurationError,
    ExecutionError,
    MetadataError,
    SelectionError,
)
from .models import (
    AppConfig,
    BackupRecord,
    ConnectionDescriptor,
    ResolvedSelection,
    RestoreOptions,
    SelectionIntent,
    SelectionMode,
    SSHDescriptor,
)
from .selection import resolve_selection
from .service import BackupResult, BackupService, RestoreResult

__version__ = "0.1.0"

__all__ = [
    "AppConfig",
    "BackupError",
    "BackupRecord",
    "BackupResult",
    "BackupService",
    "BuildError",
    "CatalogFetchError",
    "ConfigurationError",
    "ConnectionDescriptor",
    "ExecutionError",
    "MetadataError",
    "ResolvedSelection",
    "RestoreOptions",
    "RestoreResult",
    "SSHDescriptor",
    "SelectionError",
    "SelectionIntent",
    "SelectionMode",
    "resolve_selection",
]
