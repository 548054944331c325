"""Sidecar metadata recorded next to every archive."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import structlog
from pydantic import ValidationError

from .errors import MetadataError
from .models import BackupRecord, SelectionIntent
from .selection import collections_for_record


logger = structlog.get_logger(__name__)

REQUIRED_FIELDS = ("source", "timestamp", "archivePath")


def metadata_path(archive_path: str | Path) -> Path:
    """Return ``<archive>.json``."""

    archive = Path(archive_path)
    return archive.with_name(f"{archive.name}.json")


def build_record(
    *,
    source: str,
    database: str | None,
    intent: SelectionIntent,
    archive_path: str | Path,
    created_at: datetime | None = None,
    preset_name: str | None = None,
    query_start_time: datetime | None = None,
) -> BackupRecord:
    """Return the record for a finished backup; stores the operator's intent."""

    now = created_at or datetime.now(timezone.utc)
    included, excluded = collections_for_record(intent)
    return BackupRecord(
        source=source,
        database=database,
        selection_mode=intent.mode,
        included_collections=included,
        excluded_collections=excluded,
        timestamp=int(now.timestamp() * 1000),
        date=now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        archive_path=Path(archive_path).name,
        preset_name=preset_name,
        query_start_time=(
            query_start_time.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
            if query_start_time is not None
            else None
        ),
    )


def write_record(archive_path: str | Path, record: BackupRecord) -> Path:
    """Write ``record`` as UTF-8 JSON next to ``archive_path``."""

    path = metadata_path(archive_path)
    payload = record.model_dump(mode="json", by_alias=True, exclude_none=True)
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info("metadata_written", path=str(path))
    return path


def load_record(backup_dir: str | Path, archive_name: str) -> BackupRecord:
    """Load and validate the sidecar for ``archive_name`` in ``backup_dir``.

    Restore must not guess what an archive contains, so a missing file or a
    missing required field is fatal.
    """

    path = metadata_path(Path(backup_dir) / Path(archive_name).name)
    if not path.is_file():
        logger.warning("metadata_missing", path=str(path))
        raise MetadataError(f"metadata file not found: {path}")

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.error("metadata_unreadable", path=str(path), error=str(exc))
        raise MetadataError(f"failed to load or parse metadata file {path}") from exc

    if not isinstance(payload, dict):
        raise MetadataError(f"metadata file {path} does not contain an object")
    missing = [name for name in REQUIRED_FIELDS if not payload.get(name)]
    if missing:
        logger.error("metadata_fields_missing", path=str(path), missing=missing)
        raise MetadataError(
            f"metadata file {path} is missing required fields ({', '.join(missing)})"
        )

    try:
        record = BackupRecord.model_validate(payload)
    except ValidationError as exc:
        raise MetadataError(f"metadata file {path} is invalid: {exc}") from exc
    return record.model_copy(update={"archive_path": Path(record.archive_path).name})
