"""Live collection catalog listing."""

from __future__ import annotations

from contextlib import ExitStack, contextmanager
from typing import Callable, Iterator

import structlog
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from .connection import DEFAULT_MONGO_PORT, build_mongo_uri, resolve_connection
from .errors import BackupError, CatalogFetchError, ConfigurationError
from .models import ConnectionDescriptor
from .settings import EngineSettings, get_settings
from .ssh import forward_local_port, open_ssh_client


logger = structlog.get_logger(__name__)


@contextmanager
def open_catalog(
    descriptor: ConnectionDescriptor,
    settings: EngineSettings | None = None,
    *,
    client_factory: Callable[..., MongoClient] | None = None,
) -> Iterator[MongoClient]:
    """Yield a pymongo client for ``descriptor``.

    When the descriptor declares SSH the client goes through a local port
    forward. Client and tunnel are closed on every exit path.
    """

    cfg = settings or get_settings()
    resolved = resolve_connection(descriptor)
    factory = client_factory or MongoClient

    with ExitStack() as stack:
        if resolved.ssh is not None:
            ssh_client = stack.enter_context(
                open_ssh_client(resolved.ssh, timeout=cfg.ssh_timeout, name=descriptor.name)
            )
            local_port = stack.enter_context(
                forward_local_port(ssh_client, resolved.host, resolved.port or DEFAULT_MONGO_PORT)
            )
            uri = build_mongo_uri(resolved, host="127.0.0.1", port=local_port, direct=True)
        else:
            uri = build_mongo_uri(resolved)

        client = factory(uri, serverSelectionTimeoutMS=cfg.catalog_timeout_ms)
        stack.callback(client.close)
        yield client


def list_collections(
    descriptor: ConnectionDescriptor,
    database: str | None = None,
    settings: EngineSettings | None = None,
    *,
    client_factory: Callable[..., MongoClient] | None = None,
) -> list[str]:
    """Return collection names currently present in the source database."""

    db_name = database or descriptor.database
    try:
        with open_catalog(descriptor, settings, client_factory=client_factory) as client:
            db = client[db_name] if db_name else client.get_default_database()
            names = db.list_collection_names()
    except ConfigurationError:
        raise
    except (PyMongoError, BackupError, OSError) as exc:
        logger.error(
            "catalog_fetch_failed",
            connection=descriptor.name,
            database=db_name,
            error=str(exc),
        )
        raise CatalogFetchError(
            f"[{descriptor.name}] error getting collection list for database {db_name!r}: {exc}"
        ) from exc

    # mongodump never dumps system collections
    collections = [name for name in names if not name.startswith("system.")]
    logger.info("catalog_listed", connection=descriptor.name, database=db_name, count=len(collections))
    return collections


def catalog_lookup_for(
    descriptor: ConnectionDescriptor,
    settings: EngineSettings | None = None,
) -> Callable[[], list[str]]:
    """Return the zero-argument lookup used by the selection resolver."""

    return lambda: list_collections(descriptor, settings=settings)
