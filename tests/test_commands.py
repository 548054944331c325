"""Tests for mongodump/mongorestore argument assembly."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from mongo_backup.commands import build_dump_args, build_restore_args
from mongo_backup.errors import BuildError, ConfigurationError
from mongo_backup.models import (
    BackupRecord,
    ConnectionDescriptor,
    ResolvedSelection,
    RestoreOptions,
    SelectionMode,
)
from mongo_backup.namespaces import namespace_flags


def _record(database: str | None = "shop") -> BackupRecord:
    return BackupRecord(
        source="prod",
        database=database,
        timestamp=1704423600000,
        archive_path="backup_2024-01-05_03-00-00_prod.gz",
    )


def test_exclude_dump_flag_order(app_config) -> None:
    selection = ResolvedSelection(mode=SelectionMode.EXCLUDE, excluded=("orders", "logs"))
    invocation = build_dump_args(app_config.get_connection("prod"), selection)
    assert invocation.binary == "mongodump"
    assert invocation.args == (
        "--uri=mongodb://localhost:27017/shop",
        "--db=shop",
        "--excludeCollection",
        "orders",
        "--excludeCollection",
        "logs",
        "--gzip",
        "--forceTableScan",
    )
    assert invocation.query is None


def test_discrete_connection_flags(app_config) -> None:
    invocation = build_dump_args(app_config.get_connection("staging"), ResolvedSelection(mode=SelectionMode.ALL))
    assert invocation.args == (
        "--host=db.staging",
        "--port=27018",
        "--username=admin",
        "--password=pw",
        "--authenticationDatabase=admin",
        "--db=shop_copy",
        "--gzip",
        "--forceTableScan",
    )
    assert "pw" not in invocation.render()
    assert "--password=****" in invocation.render()


def test_time_filter_adds_query_and_skips_table_scan(app_config) -> None:
    since = datetime(1970, 1, 1, 0, 4, 16, tzinfo=timezone.utc)
    selection = ResolvedSelection(mode=SelectionMode.INCLUDE, included=("events",), time_filter=since)
    invocation = build_dump_args(app_config.get_connection("prod"), selection)
    query = '{"_id":{"$gte":{"$oid":"000001000000000000000000"}}}'
    assert invocation.args[2:] == ("--collection", "events", "--query", query, "--gzip")
    assert invocation.query == query
    assert "--forceTableScan" not in invocation.args


def test_include_lists_each_collection(app_config) -> None:
    selection = ResolvedSelection(mode=SelectionMode.INCLUDE, included=("a", "b"))
    args = build_dump_args(app_config.get_connection("prod"), selection).args
    assert args[2:6] == ("--collection", "a", "--collection", "b")


def test_database_required_without_uri() -> None:
    descriptor = ConnectionDescriptor(name="bare", host="localhost")
    with pytest.raises(BuildError):
        build_dump_args(descriptor, ResolvedSelection(mode=SelectionMode.ALL))


def test_database_required_to_filter() -> None:
    descriptor = ConnectionDescriptor(name="uri-only", uri="mongodb://localhost:27017")
    full = build_dump_args(descriptor, ResolvedSelection(mode=SelectionMode.ALL))
    assert full.args == ("--uri=mongodb://localhost:27017", "--gzip", "--forceTableScan")
    with pytest.raises(BuildError):
        build_dump_args(descriptor, ResolvedSelection(mode=SelectionMode.EXCLUDE, excluded=("a",)))


def test_unresolvable_connection_fails_before_build() -> None:
    with pytest.raises(ConfigurationError):
        build_dump_args(ConnectionDescriptor(name="nothing"), ResolvedSelection(mode=SelectionMode.ALL))


def test_restore_maps_namespaces(app_config) -> None:
    invocation = build_restore_args(
        app_config.get_connection("staging"),
        _record(),
        RestoreOptions(drop=True),
    )
    assert invocation.binary == "mongorestore"
    assert invocation.args[-4:] == ("--nsFrom=shop.*", "--nsTo=shop_copy.*", "--drop", "--gzip")


def test_restore_without_source_database_uses_db_flag(app_config) -> None:
    invocation = build_restore_args(app_config.get_connection("staging"), _record(database=None))
    assert "--db=shop_copy" in invocation.args
    assert "--drop" not in invocation.args
    assert not any(arg.startswith("--nsFrom") for arg in invocation.args)


def test_namespace_flags_edge_cases() -> None:
    assert namespace_flags("shop", None, target_has_uri=True) == []
    assert namespace_flags(None, None, target_has_uri=True) == []
    with pytest.raises(BuildError):
        namespace_flags("shop", None, target_has_uri=False, target_name="t")
    with pytest.raises(BuildError):
        namespace_flags(None, None, target_has_uri=False, target_name="t")
