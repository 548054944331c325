"""Assemble ``mongodump`` / ``mongorestore`` flag vectors.

Flag order is connection, database, collection filters, then compression
and scan hints. The archive flag is added by the execution strategy, since
only it knows whether the archive is a local path or the process's stdout.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

import structlog

from .connection import ResolvedConnection, resolve_connection
from .errors import BuildError
from .models import BackupRecord, ConnectionDescriptor, ResolvedSelection, RestoreOptions, SelectionMode
from .namespaces import namespace_flags
from .observability.logging import redact_args
from .timefilter import build_time_query


logger = structlog.get_logger(__name__)


@dataclass(slots=True, frozen=True)
class CommandInvocation:
    """A fully built external command, minus its archive flag."""

    binary: str
    args: tuple[str, ...]
    connection: str
    query: str | None = None

    def with_args(self, *extra: str) -> "CommandInvocation":
        return replace(self, args=(*self.args, *extra))

    def render(self) -> str:
        return redact_args(self.binary, self.args)


def connection_flags(resolved: ResolvedConnection) -> list[str]:
    """Return ``--uri`` or the discrete ``--host``/credential flags."""

    if resolved.uri:
        return [f"--uri={resolved.uri}"]
    if not resolved.host:
        raise BuildError(f"[{resolved.name}] no connection field (uri or host) available")

    flags = [f"--host={resolved.host}"]
    if resolved.port:
        flags.append(f"--port={resolved.port}")
    if resolved.username:
        flags.append(f"--username={resolved.username}")
        if resolved.password:
            flags.append(f"--password={resolved.password}")
        if resolved.auth_database:
            flags.append(f"--authenticationDatabase={resolved.auth_database}")
    return flags


def build_dump_args(
    descriptor: ConnectionDescriptor,
    selection: ResolvedSelection,
    binary: str = "mongodump",
) -> CommandInvocation:
    """Return the ``mongodump`` invocation for ``selection`` against ``descriptor``."""

    resolved = resolve_connection(descriptor)
    args = connection_flags(resolved)

    if resolved.database:
        args.append(f"--db={resolved.database}")
    elif not resolved.uses_uri:
        raise BuildError(
            f"[{descriptor.name}] database name ('database') is required when no URI is used"
        )
    elif selection.mode != SelectionMode.ALL:
        raise BuildError(
            f"[{descriptor.name}] database name ('database') is required to filter collections"
        )

    query: str | None = None
    if selection.time_filter is not None:
        collection = selection.included[0]
        query = build_time_query(selection.time_filter)
        args.extend(["--collection", collection, "--query", query])
        logger.info(
            "time_filter_applied",
            connection=descriptor.name,
            collection=collection,
            since=selection.time_filter.isoformat(),
        )
    elif selection.mode == SelectionMode.INCLUDE:
        for name in selection.included:
            args.extend(["--collection", name])
    elif selection.mode == SelectionMode.EXCLUDE:
        for name in selection.excluded:
            args.extend(["--excludeCollection", name])
        logger.info("dump_mode_exclude", connection=descriptor.name, count=len(selection.excluded))
    else:
        logger.info("dump_mode_all", connection=descriptor.name)

    args.append("--gzip")
    if query is None:
        args.append("--forceTableScan")

    return CommandInvocation(binary=binary, args=tuple(args), connection=descriptor.name, query=query)


def build_restore_args(
    descriptor: ConnectionDescriptor,
    record: BackupRecord,
    options: RestoreOptions | None = None,
    binary: str = "mongorestore",
) -> CommandInvocation:
    """Return the ``mongorestore`` invocation restoring ``record`` into ``descriptor``."""

    opts = options or RestoreOptions()
    resolved = resolve_connection(descriptor)
    args = connection_flags(resolved)
    args.extend(
        namespace_flags(
            record.database,
            descriptor.database,
            target_has_uri=resolved.uses_uri,
            target_name=descriptor.name,
        )
    )
    if opts.drop:
        logger.info("restore_drop_enabled", target=descriptor.name)
        args.append("--drop")
    args.append("--gzip")
    return CommandInvocation(binary=binary, args=tuple(args), connection=descriptor.name)
