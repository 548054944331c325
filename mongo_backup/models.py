"""Pydantic models and value objects used throughout the engine.

Adds a compatibility shim for ``enum.StrEnum`` on Python < 3.11.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
try:  # Python 3.11+
    from enum import StrEnum as _StrEnum
except ImportError:  # Python 3.10 fallback
    class _StrEnum(str, Enum):
        pass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class SelectionMode(_StrEnum):
    """Which collections a backup targets."""

    ALL = "all"
    INCLUDE = "include"
    EXCLUDE = "exclude"


class SSHDescriptor(BaseModel):
    """SSH jump host used to reach the database server."""

    host: str
    port: int = 22
    username: str
    password: str | None = None
    private_key: str | None = Field(default=None, alias="privateKey")
    passphrase: str | None = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class HostEntry(BaseModel):
    host: str
    port: int | None = None


class ConnectionDescriptor(BaseModel):
    """Named MongoDB connection as declared in the configuration file."""

    name: str
    uri: str | None = None
    database: str | None = None
    host: str | None = None
    port: int | None = None
    hosts: list[HostEntry] | None = None
    username: str | None = None
    password: str | None = None
    authentication_database: str | None = Field(default=None, alias="authenticationDatabase")
    auth_source: str | None = Field(default=None, alias="authSource")
    auth_database_name: str | None = Field(default=None, alias="authDatabase")
    replica_set: str | None = Field(default=None, alias="replicaSet")
    options: dict[str, Any] = Field(default_factory=dict)
    ssh: SSHDescriptor | None = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @property
    def auth_database(self) -> str | None:
        return self.authentication_database or self.auth_source or self.auth_database_name


class BackupPreset(BaseModel):
    """Stored backup intent that can be replayed by name."""

    name: str
    source_name: str = Field(alias="sourceName")
    description: str | None = None
    selection_mode: SelectionMode = Field(default=SelectionMode.ALL, alias="selectionMode")
    collections: list[str] = Field(default_factory=list)
    query_start_time: str | None = Field(default=None, alias="queryStartTime")
    created_at: str | None = Field(default=None, alias="createdAt")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class RestoreOptions(BaseModel):
    drop: bool = False


class RestorePreset(BaseModel):
    """Stored restore target, optionally restricted to archives matching a pattern."""

    name: str
    target_name: str = Field(alias="targetName")
    backup_pattern: str | None = Field(default=None, alias="backupPattern")
    options: RestoreOptions = Field(default_factory=RestoreOptions)
    description: str | None = None
    created_at: str | None = Field(default=None, alias="createdAt")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class AppConfig(BaseModel):
    """Top level configuration file contents."""

    backup_dir: str = Field(default="./backups", alias="backupDir")
    filename_format: str = Field(default="backup_{datetime}_{source}.gz", alias="filenameFormat")
    mongodump_path: str = Field(default="mongodump", alias="mongodumpPath")
    mongorestore_path: str = Field(default="mongorestore", alias="mongorestorePath")
    connections: list[ConnectionDescriptor] = Field(default_factory=list)
    backup_presets: list[BackupPreset] = Field(default_factory=list, alias="backupPresets")
    restore_presets: list[RestorePreset] = Field(default_factory=list, alias="restorePresets")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("connections")
    @classmethod
    def _unique_names(cls, value: list[ConnectionDescriptor]) -> list[ConnectionDescriptor]:
        seen: set[str] = set()
        for conn in value:
            if conn.name in seen:
                raise ValueError(f"duplicate connection name: {conn.name}")
            seen.add(conn.name)
        return value

    def get_connection(self, name: str) -> ConnectionDescriptor | None:
        return next((conn for conn in self.connections if conn.name == name), None)

    def get_backup_preset(self, name: str) -> BackupPreset | None:
        return next((p for p in self.backup_presets if p.name == name), None)

    def get_restore_preset(self, name: str) -> RestorePreset | None:
        return next((p for p in self.restore_presets if p.name == name), None)


@dataclass(slots=True, frozen=True)
class SelectionIntent:
    """What the operator asked for, before any catalog lookup."""

    mode: SelectionMode
    collections: tuple[str, ...] = ()

    @classmethod
    def of(cls, mode: SelectionMode | str, collections: list[str] | tuple[str, ...] | None = None) -> "SelectionIntent":
        return cls(mode=SelectionMode(mode), collections=tuple(collections or ()))


@dataclass(slots=True, frozen=True)
class ResolvedSelection:
    """Concrete filter parameters handed to the dump tool."""

    mode: SelectionMode
    included: tuple[str, ...] = ()
    excluded: tuple[str, ...] = ()
    time_filter: datetime | None = field(default=None)

    def __post_init__(self) -> None:
        if self.included and self.excluded:
            raise ValueError("included and excluded collections are mutually exclusive")
        if self.time_filter is not None and (
            self.mode != SelectionMode.INCLUDE or len(self.included) != 1
        ):
            raise ValueError("a time filter requires include mode with exactly one collection")
        if self.mode == SelectionMode.ALL and (self.included or self.excluded):
            raise ValueError("mode 'all' carries no collection lists")


class BackupRecord(BaseModel):
    """Sidecar metadata describing what an archive contains.

    Unknown fields are preserved so newer writers stay readable.
    """

    source: str
    database: str | None = None
    selection_mode: SelectionMode = Field(default=SelectionMode.ALL, alias="selectionMode")
    included_collections: list[str] | None = Field(default=None, alias="includedCollections")
    excluded_collections: list[str] | None = Field(default=None, alias="excludedCollections")
    timestamp: int
    date: str | None = None
    archive_path: str = Field(alias="archivePath")
    preset_name: str | None = Field(default=None, alias="presetName")
    query_start_time: str | None = Field(default=None, alias="queryStartTime")

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @model_validator(mode="after")
    def _require_identity(self) -> "BackupRecord":
        if not self.source or not self.archive_path or not self.timestamp:
            raise ValueError("source, timestamp and archivePath are required")
        return self
