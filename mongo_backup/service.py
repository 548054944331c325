"""Backup and restore orchestration.

A backup flows through selection resolution, command building, the
execution strategy picked for the source and finally the metadata sidecar.
A restore reverses it: sidecar, namespace mapping, command building and
execution against the target.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import structlog

from .catalog import catalog_lookup_for
from .commands import build_dump_args, build_restore_args
from .connection import source_database
from .errors import BackupError, ConfigurationError, MetadataError, SelectionError
from .execution import ExecutionStrategy, remove_partial_archive, select_strategy
from .filenames import backup_path, list_archives
from .metadata import build_record, load_record, write_record
from .models import (
    AppConfig,
    BackupRecord,
    ConnectionDescriptor,
    ResolvedSelection,
    RestoreOptions,
    SelectionIntent,
    SelectionMode,
)
from .selection import CatalogLookup, resolve_selection, validate_time_filter
from .settings import EngineSettings, get_settings
from .timefilter import object_id_from_datetime, parse_since


logger = structlog.get_logger(__name__)


@dataclass(slots=True, frozen=True)
class BackupResult:
    """Payload returned after a successful backup run."""

    archive_path: Path
    metadata_path: Path
    record: BackupRecord
    selection: ResolvedSelection
    size_bytes: int


@dataclass(slots=True, frozen=True)
class RestoreResult:
    archive_path: Path
    target: str
    record: BackupRecord


class BackupService:
    """Run backups and restores for the connections of one configuration."""

    def __init__(
        self,
        config: AppConfig,
        settings: EngineSettings | None = None,
        *,
        catalog_lookup_factory: Callable[[ConnectionDescriptor], CatalogLookup] | None = None,
        strategy_factory: Callable[[ConnectionDescriptor], ExecutionStrategy] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config
        self.settings = settings or get_settings()
        self._catalog_lookup_factory = catalog_lookup_factory or (
            lambda descriptor: catalog_lookup_for(descriptor, self.settings)
        )
        self._strategy_factory = strategy_factory or (
            lambda descriptor: select_strategy(descriptor, self.settings)
        )
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def backup_dir(self) -> Path:
        return Path(self.config.backup_dir).expanduser().resolve()

    def connection(self, name: str) -> ConnectionDescriptor:
        descriptor = self.config.get_connection(name)
        if descriptor is None:
            raise ConfigurationError(f"connection {name!r} not found in configuration")
        return descriptor

    def backup(
        self,
        source_name: str,
        intent: SelectionIntent,
        time_filter: datetime | None = None,
        *,
        preset_name: str | None = None,
    ) -> BackupResult:
        """Back up ``source_name`` according to ``intent``."""

        source = self.connection(source_name)
        validate_time_filter(intent, time_filter)
        if time_filter is not None:
            object_id_from_datetime(time_filter)

        log = logger.bind(source=source.name, mode=intent.mode.value, preset=preset_name)
        log.info("backup_started", collections=list(intent.collections))

        selection = resolve_selection(intent, self._catalog_lookup_factory(source), time_filter)
        invocation = build_dump_args(source, selection, self.config.mongodump_path)

        now = self._clock()
        archive = backup_path(
            self.config.backup_dir,
            self.config.filename_format,
            source.name,
            now.astimezone(),
        )
        strategy = self._strategy_factory(source)
        strategy.backup(invocation, archive)

        record = build_record(
            source=source.name,
            database=source_database(source),
            intent=intent,
            archive_path=archive,
            created_at=now,
            preset_name=preset_name,
            query_start_time=time_filter,
        )
        try:
            sidecar = write_record(archive, record)
        except OSError as exc:
            remove_partial_archive(archive)
            raise MetadataError(f"failed to write metadata for {archive}: {exc}") from exc

        size_bytes = archive.stat().st_size
        log.info("backup_completed", archive=str(archive), size_bytes=size_bytes)
        return BackupResult(
            archive_path=archive,
            metadata_path=sidecar,
            record=record,
            selection=selection,
            size_bytes=size_bytes,
        )

    def backup_from_preset(self, preset_name: str) -> BackupResult:
        """Replay the stored backup preset ``preset_name``."""

        preset = self.config.get_backup_preset(preset_name)
        if preset is None:
            raise ConfigurationError(f"backup preset {preset_name!r} not found in configuration")

        intent = SelectionIntent.of(preset.selection_mode, preset.collections)
        time_filter: datetime | None = None
        if preset.query_start_time:
            if intent.mode == SelectionMode.INCLUDE and len(intent.collections) == 1:
                try:
                    time_filter = parse_since(preset.query_start_time)
                except SelectionError as exc:
                    logger.warning(
                        "preset_time_filter_invalid",
                        preset=preset.name,
                        value=preset.query_start_time,
                        error=str(exc),
                    )
            else:
                logger.warning(
                    "preset_time_filter_ignored",
                    preset=preset.name,
                    mode=intent.mode.value,
                    collections=len(intent.collections),
                )
        return self.backup(preset.source_name, intent, time_filter, preset_name=preset.name)

    def restore(
        self,
        archive_name: str,
        target_name: str,
        options: RestoreOptions | None = None,
    ) -> RestoreResult:
        """Restore ``archive_name`` from the backup directory into ``target_name``."""

        target = self.connection(target_name)
        record = load_record(self.backup_dir, archive_name)
        archive = self.backup_dir / record.archive_path
        if not archive.is_file():
            raise BackupError(f"backup archive file not found: {archive}")

        log = logger.bind(target=target.name, archive=str(archive))
        log.info(
            "restore_started",
            source=record.source,
            source_database=record.database,
            target_database=target.database,
        )
        invocation = build_restore_args(target, record, options, self.config.mongorestore_path)
        strategy = self._strategy_factory(target)
        strategy.restore(invocation, archive)
        log.info("restore_completed")
        return RestoreResult(archive_path=archive, target=target.name, record=record)

    def restore_from_preset(
        self,
        preset_name: str,
        archive_name: str | None = None,
        options: RestoreOptions | None = None,
    ) -> RestoreResult:
        """Restore using a stored preset; picks the newest matching archive by default.

        ``options`` replaces the preset's stored restore options when given.
        """

        preset = self.config.get_restore_preset(preset_name)
        if preset is None:
            raise ConfigurationError(f"restore preset {preset_name!r} not found in configuration")

        if archive_name is None:
            candidates = list_archives(self.backup_dir, preset.backup_pattern)
            if not candidates:
                raise BackupError(
                    f"no backup archive matches preset {preset.name!r} "
                    f"(pattern {preset.backup_pattern or '*'})"
                )
            archive_name = candidates[0]
            logger.info("restore_preset_archive_selected", preset=preset.name, archive=archive_name)
        return self.restore(archive_name, preset.target_name, options or preset.options)

    def list_backups(self) -> list[str]:
        """Archive names in the backup directory, newest first."""

        return list_archives(self.backup_dir)
