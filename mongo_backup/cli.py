"""Command line entry point.

Usage::

  python -m mongo_backup backup --source prod --mode include --collections users,orders
  python -m mongo_backup backup --source prod --mode include --collections events --since 1d
  python -m mongo_backup backup --preset nightly
  python -m mongo_backup restore --file backup_2024-01-05_03-00-00_prod.gz --target staging --drop
  python -m mongo_backup list
"""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

import structlog

from .config import load_config
from .errors import BackupError
from .models import RestoreOptions, SelectionIntent, SelectionMode
from .observability.logging import configure_logging
from .service import BackupService
from .settings import get_settings
from .timefilter import parse_since


logger = structlog.get_logger(__name__)


def _collections(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="mongo-backup", description="MongoDB backup and restore")
    p.add_argument("--config", help="path to the JSON configuration file")
    p.add_argument("--log-level", default=None)
    sub = p.add_subparsers(dest="command", required=True)

    b = sub.add_parser("backup", help="create a backup archive")
    origin = b.add_mutually_exclusive_group(required=True)
    origin.add_argument("--source", help="connection name to back up")
    origin.add_argument("--preset", help="backup preset name")
    b.add_argument(
        "--mode",
        choices=[mode.value for mode in SelectionMode],
        default=SelectionMode.ALL.value,
    )
    b.add_argument("--collections", type=_collections, default=[], help="comma separated names")
    b.add_argument("--since", help="ISO 8601 instant or relative duration (1d, 3h, 2w, 1M, 1y)")

    r = sub.add_parser("restore", help="restore a backup archive")
    r.add_argument("--file", dest="archive", help="archive file name in the backup directory")
    target = r.add_mutually_exclusive_group(required=True)
    target.add_argument("--target", help="connection name to restore into")
    target.add_argument("--preset", help="restore preset name")
    r.add_argument(
        "--drop",
        action="store_true",
        help="drop existing collections first; overrides the preset options",
    )

    sub.add_parser("list", help="list backup archives, newest first")
    return p


def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    config = load_config(args.config, settings)
    service = BackupService(config, settings)

    if args.command == "backup":
        if args.preset:
            result = service.backup_from_preset(args.preset)
        else:
            intent = SelectionIntent.of(args.mode, args.collections)
            since = parse_since(args.since) if args.since else None
            result = service.backup(args.source, intent, since)
        print(result.archive_path)
        return 0

    if args.command == "restore":
        if args.preset:
            overrides = RestoreOptions(drop=True) if args.drop else None
            result = service.restore_from_preset(args.preset, args.archive, overrides)
        else:
            if not args.archive:
                raise BackupError("--file is required for restore when no preset is used")
            result = service.restore(args.archive, args.target, RestoreOptions(drop=args.drop))
        print(f"restored {result.archive_path.name} into {result.target}")
        return 0

    for name in service.list_backups():
        print(name)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level or get_settings().log_level)
    try:
        return run(args)
    except BackupError as exc:
        logger.error("command_failed", command=args.command, error=str(exc))
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
