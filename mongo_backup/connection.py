"""Turn named connection descriptors into something a client or CLI tool can use."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal
from urllib.parse import quote_plus, urlencode

import structlog
from pymongo.errors import InvalidURI, ConfigurationError as PyMongoConfigurationError
from pymongo.uri_parser import parse_uri

from .errors import ConfigurationError
from .models import ConnectionDescriptor, SSHDescriptor


logger = structlog.get_logger(__name__)

DEFAULT_MONGO_PORT = 27017

StrategyKind = Literal["local", "ssh"]


@dataclass(slots=True, frozen=True)
class ResolvedConnection:
    """Either a URI, or discrete host/credential fields, plus the SSH hop."""

    name: str
    uri: str | None = None
    host: str | None = None
    port: int | None = None
    username: str | None = None
    password: str | None = None
    auth_database: str | None = None
    database: str | None = None
    ssh: SSHDescriptor | None = None

    @property
    def uses_uri(self) -> bool:
        return self.uri is not None


def select_strategy_kind(descriptor: ConnectionDescriptor) -> StrategyKind:
    """Pick the execution variant for ``descriptor``."""

    return "ssh" if descriptor.ssh is not None else "local"


def _split_host(entry: str, default_port: int | None) -> tuple[str, int | None]:
    host, sep, port = entry.strip().rpartition(":")
    if not sep or "]" in port:
        return entry.strip(), default_port
    try:
        return host, int(port)
    except ValueError as exc:
        raise ConfigurationError(f"invalid port in host entry: {entry!r}") from exc


def _host_entries(descriptor: ConnectionDescriptor) -> list[tuple[str, int | None]]:
    if descriptor.hosts:
        return [(h.host, h.port or descriptor.port) for h in descriptor.hosts]
    if descriptor.host:
        return [_split_host(part, descriptor.port) for part in descriptor.host.split(",") if part.strip()]
    return []


def _host_string(entries: list[tuple[str, int | None]], replica_set: str | None) -> str:
    joined = ",".join(f"{host}:{port}" if port else host for host, port in entries)
    return f"{replica_set}/{joined}" if replica_set else joined


def _parse_uri(descriptor: ConnectionDescriptor) -> dict[str, Any]:
    try:
        return parse_uri(descriptor.uri, validate=False, warn=True)
    except (InvalidURI, PyMongoConfigurationError, ValueError) as exc:
        raise ConfigurationError(
            f"[{descriptor.name}] failed to parse MongoDB URI: {exc}"
        ) from exc


def resolve_connection(descriptor: ConnectionDescriptor) -> ResolvedConnection:
    """Resolve ``descriptor`` for the execution strategy it will be used with.

    Without SSH an explicit URI wins. With SSH the URI's transport details
    are ignored and host, port, credentials and auth database are extracted
    into discrete fields, since the tool runs on the far side of the hop.
    """

    has_hosts = bool(descriptor.hosts) or bool(descriptor.host)
    if not descriptor.uri and not has_hosts:
        raise ConfigurationError(
            f"[{descriptor.name}] connection must define 'uri', 'hosts' or 'host'"
        )

    if descriptor.ssh is None:
        if descriptor.uri:
            return ResolvedConnection(
                name=descriptor.name,
                uri=descriptor.uri,
                database=descriptor.database,
            )
        entries = _host_entries(descriptor)
        single = len(entries) == 1 and not descriptor.replica_set
        return ResolvedConnection(
            name=descriptor.name,
            host=entries[0][0] if single else _host_string(entries, descriptor.replica_set),
            port=entries[0][1] if single else None,
            username=descriptor.username,
            password=descriptor.password,
            auth_database=descriptor.auth_database or descriptor.database,
            database=descriptor.database,
        )

    resolve_ssh_auth(descriptor.ssh, name=descriptor.name, read_key=False)

    host: str | None = None
    port: int | None = None
    username = descriptor.username
    password = descriptor.password
    auth_database = descriptor.auth_database
    database = descriptor.database

    entries = _host_entries(descriptor)
    if entries:
        host, port = entries[0]
    elif descriptor.uri:
        parsed = _parse_uri(descriptor)
        nodes = parsed.get("nodelist") or []
        if not nodes:
            raise ConfigurationError(f"[{descriptor.name}] no host found in MongoDB URI")
        host, port = nodes[0]
        logger.warning(
            "ssh_host_extracted_from_uri",
            connection=descriptor.name,
            host=host,
            port=port,
        )
        username = username or parsed.get("username")
        password = password or parsed.get("password")
        auth_database = auth_database or (parsed.get("options") or {}).get("authsource")
        database = database or parsed.get("database")

    if descriptor.uri and entries and not (username and auth_database):
        # explicit hosts with credentials kept only in the URI
        parsed = _parse_uri(descriptor)
        username = username or parsed.get("username")
        password = password or parsed.get("password")
        auth_database = auth_database or (parsed.get("options") or {}).get("authsource")

    if username and not password:
        logger.warning("ssh_password_missing", connection=descriptor.name, username=username)
    if username and not auth_database:
        logger.warning("ssh_auth_database_missing", connection=descriptor.name, username=username)

    return ResolvedConnection(
        name=descriptor.name,
        host=host,
        port=port,
        username=username,
        password=password,
        auth_database=auth_database,
        database=database,
        ssh=descriptor.ssh,
    )


def source_database(descriptor: ConnectionDescriptor) -> str | None:
    """Return the database a backup of ``descriptor`` reads from."""

    if descriptor.database:
        return descriptor.database
    if descriptor.uri:
        try:
            return _parse_uri(descriptor).get("database")
        except ConfigurationError as exc:
            logger.warning("source_database_unknown", connection=descriptor.name, error=str(exc))
    return None


def expand_key_path(path: str) -> Path:
    return Path(os.path.expanduser(path))


def resolve_ssh_auth(
    ssh: SSHDescriptor,
    *,
    name: str | None = None,
    read_key: bool = True,
) -> dict[str, Any]:
    """Return ``paramiko.SSHClient.connect`` keyword arguments for ``ssh``.

    Exactly one of password or private key must be configured.
    """

    label = f"[{name}] " if name else ""
    if ssh.password and ssh.private_key:
        raise ConfigurationError(
            f"{label}SSH configuration must include either 'password' or 'privateKey', not both"
        )
    if not ssh.password and not ssh.private_key:
        raise ConfigurationError(
            f"{label}SSH configuration must include either 'password' or 'privateKey' "
            f"for user {ssh.username}"
        )

    kwargs: dict[str, Any] = {
        "hostname": ssh.host,
        "port": ssh.port or 22,
        "username": ssh.username,
        "allow_agent": False,
        "look_for_keys": False,
    }
    if ssh.password:
        kwargs["password"] = ssh.password
        return kwargs

    key_path = expand_key_path(ssh.private_key or "")
    if read_key and not key_path.is_file():
        raise ConfigurationError(f"{label}failed to read private key at {key_path}")
    kwargs["key_filename"] = str(key_path)
    if ssh.passphrase:
        kwargs["passphrase"] = ssh.passphrase
    return kwargs


def build_mongo_uri(
    resolved: ResolvedConnection,
    database: str | None = None,
    *,
    host: str | None = None,
    port: int | None = None,
    direct: bool = False,
) -> str:
    """Return a MongoDB URI for a pymongo client from ``resolved``.

    ``host``/``port`` override the resolved endpoint, which is how the catalog
    client is pointed at a local SSH forward.
    """

    if resolved.uri and host is None:
        return resolved.uri

    target_host = host or resolved.host
    if not target_host:
        raise ConfigurationError(f"[{resolved.name}] no host to connect to")
    target_port = port if host is not None else resolved.port
    if "/" in target_host:
        # replicaSet/h1,h2 form used by the CLI tools
        replica_set, target_host = target_host.split("/", 1)
    else:
        replica_set = None

    auth_part = ""
    if resolved.username and resolved.password:
        auth_part = f"{quote_plus(resolved.username)}:{quote_plus(resolved.password)}@"

    hosts = f"{target_host}:{target_port}" if target_port else target_host
    path_db = database or resolved.database or ""

    params: dict[str, str] = {}
    if resolved.auth_database and auth_part:
        params["authSource"] = resolved.auth_database
    if replica_set and not direct:
        params["replicaSet"] = replica_set
    if direct:
        params["directConnection"] = "true"
    query = f"?{urlencode(params)}" if params else ""
    return f"mongodb://{auth_part}{hosts}/{path_db}{query}"
