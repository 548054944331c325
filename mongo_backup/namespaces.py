"""Restore namespace remapping."""

from __future__ import annotations

import structlog

from .errors import BuildError


logger = structlog.get_logger(__name__)


def namespace_flags(
    source_db: str | None,
    target_db: str | None,
    *,
    target_has_uri: bool = False,
    target_name: str = "",
) -> list[str]:
    """Return the ``mongorestore`` flags mapping ``source_db.*`` onto ``target_db.*``.

    Without a recorded source database no safe remap exists, so the restore
    falls back to a plain ``--db`` on the target.
    """

    if not source_db:
        logger.warning(
            "restore_source_database_unknown",
            target=target_name,
            target_database=target_db,
        )
        if target_db:
            return [f"--db={target_db}"]
        if target_has_uri:
            return []
        raise BuildError(
            f"[{target_name}] target database name is required for restore when the "
            "source database is unknown and no URI is configured"
        )

    if target_db:
        logger.info("restore_namespace_mapped", source_database=source_db, target_database=target_db)
        return [f"--nsFrom={source_db}.*", f"--nsTo={target_db}.*"]

    if target_has_uri:
        return []
    raise BuildError(
        f"[{target_name}] target database name is required for restore if URI is not provided"
    )
