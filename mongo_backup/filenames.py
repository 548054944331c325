"""Archive naming and backup directory helpers."""

from __future__ import annotations

import fnmatch
from datetime import datetime
from pathlib import Path

import structlog


logger = structlog.get_logger(__name__)

ARCHIVE_SUFFIX = ".gz"


def format_backup_filename(template: str, source: str, now: datetime) -> str:
    """Fill ``{date}``, ``{time}``, ``{datetime}`` and ``{source}`` in ``template``.

    ``{{name}}`` placeholders are accepted as well.
    """

    values = {
        "date": now.strftime("%d-%m-%Y"),
        "time": now.strftime("%H-%M"),
        "datetime": now.strftime("%Y-%m-%d_%H-%M-%S"),
        "source": source.replace("/", "_").replace("\\", "_"),
    }
    name = template
    for key, value in values.items():
        name = name.replace(f"{{{{{key}}}}}", value).replace(f"{{{key}}}", value)
    return name


def ensure_backup_dir(backup_dir: str | Path) -> Path:
    path = Path(backup_dir).expanduser().resolve()
    if not path.exists():
        path.mkdir(parents=True, exist_ok=True)
        logger.info("backup_dir_created", path=str(path))
    return path


def backup_path(backup_dir: str | Path, template: str, source: str, now: datetime) -> Path:
    """Return the absolute archive path for a new backup of ``source``."""

    return ensure_backup_dir(backup_dir) / format_backup_filename(template, source, now)


def list_archives(backup_dir: str | Path, pattern: str | None = None) -> list[str]:
    """Return archive names in ``backup_dir``, newest first.

    ``pattern`` is a shell-style glob matched against the file name.
    """

    path = Path(backup_dir).expanduser()
    if not path.is_dir():
        return []

    entries: list[tuple[float, str]] = []
    for item in path.iterdir():
        name = item.name
        if not name.endswith(ARCHIVE_SUFFIX) or name.startswith(".") or not item.is_file():
            continue
        if pattern and not fnmatch.fnmatch(name, pattern):
            continue
        try:
            mtime = item.stat().st_mtime
        except OSError as exc:
            logger.warning("archive_stat_failed", path=str(item), error=str(exc))
            mtime = 0.0
        entries.append((mtime, name))
    entries.sort(key=lambda entry: (entry[0], entry[1]), reverse=True)
    return [name for _, name in entries]
