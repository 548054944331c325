"""Tests for selection resolution."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from mongo_backup.errors import CatalogFetchError, SelectionError
from mongo_backup.models import ResolvedSelection, SelectionIntent, SelectionMode
from mongo_backup.selection import collections_for_record, resolve_selection


def _catalog(names):
    calls = []

    def lookup():
        calls.append(1)
        return list(names)

    lookup.calls = calls
    return lookup


def _never_called():
    raise AssertionError("catalog must not be queried")


def _effective(selection: ResolvedSelection, catalog: list[str]) -> set[str]:
    if selection.mode == SelectionMode.ALL:
        return set(catalog)
    if selection.mode == SelectionMode.EXCLUDE:
        return set(catalog) - set(selection.excluded)
    return set(selection.included)


def test_include_is_rewritten_as_exclude_of_complement() -> None:
    lookup = _catalog(["users", "orders", "logs"])
    result = resolve_selection(SelectionIntent.of("include", ["users"]), lookup)
    assert result.mode == SelectionMode.EXCLUDE
    assert result.excluded == ("orders", "logs")
    assert result.included == ()
    assert len(lookup.calls) == 1


@pytest.mark.parametrize(
    "catalog, included",
    [
        (["a", "b", "c"], ["a"]),
        (["a", "b", "c"], ["a", "c"]),
        (["x", "y", "z", "w"], ["w", "y"]),
    ],
)
def test_include_and_its_exclude_complement_back_up_the_same_set(catalog, included) -> None:
    first = resolve_selection(SelectionIntent.of("include", included), _catalog(catalog))
    assert first.mode == SelectionMode.EXCLUDE
    assert set(first.excluded) == set(catalog) - set(included)

    second = resolve_selection(SelectionIntent.of("exclude", list(first.excluded)), _never_called)
    assert _effective(first, catalog) == _effective(second, catalog) == set(included)


def test_include_covering_whole_catalog_collapses_to_all() -> None:
    result = resolve_selection(SelectionIntent.of("include", ["a", "b"]), _catalog(["a", "b"]))
    assert result == ResolvedSelection(mode=SelectionMode.ALL)


def test_include_of_missing_collections_falls_back_to_all() -> None:
    result = resolve_selection(SelectionIntent.of("include", ["ghost"]), _catalog(["a", "b"]))
    assert result.mode == SelectionMode.ALL
    assert result.excluded == ()


def test_empty_include_falls_back_to_all_without_catalog_query() -> None:
    result = resolve_selection(SelectionIntent.of("include", []), _never_called)
    assert result.mode == SelectionMode.ALL


def test_catalog_failure_downgrades_to_all() -> None:
    def failing():
        raise CatalogFetchError("connection refused")

    result = resolve_selection(SelectionIntent.of("include", ["users"]), failing)
    assert result.mode == SelectionMode.ALL


def test_other_lookup_errors_propagate() -> None:
    def broken():
        raise RuntimeError("bug")

    with pytest.raises(RuntimeError):
        resolve_selection(SelectionIntent.of("include", ["users"]), broken)


def test_all_and_exclude_do_not_touch_catalog() -> None:
    assert resolve_selection(SelectionIntent.of("all"), _never_called).mode == SelectionMode.ALL

    excluded = resolve_selection(SelectionIntent.of("exclude", ["logs", "tmp"]), _never_called)
    assert excluded.mode == SelectionMode.EXCLUDE
    assert excluded.excluded == ("logs", "tmp")

    empty = resolve_selection(SelectionIntent.of("exclude", []), _never_called)
    assert empty.mode == SelectionMode.ALL


def test_time_filter_passes_single_include_through() -> None:
    since = datetime(2024, 1, 5, tzinfo=timezone.utc)
    result = resolve_selection(SelectionIntent.of("include", ["x"]), _never_called, since)
    assert result.mode == SelectionMode.INCLUDE
    assert result.included == ("x",)
    assert result.time_filter == since


@pytest.mark.parametrize(
    "mode, collections",
    [
        ("include", []),
        ("include", ["a", "b"]),
        ("exclude", ["a"]),
        ("all", []),
    ],
)
def test_invalid_time_filter_combinations_fail_before_io(mode, collections) -> None:
    since = datetime(2024, 1, 5, tzinfo=timezone.utc)
    with pytest.raises(SelectionError):
        resolve_selection(SelectionIntent.of(mode, collections), _never_called, since)


def test_resolved_selection_invariants() -> None:
    with pytest.raises(ValueError):
        ResolvedSelection(mode=SelectionMode.EXCLUDE, included=("a",), excluded=("b",))
    with pytest.raises(ValueError):
        ResolvedSelection(
            mode=SelectionMode.INCLUDE,
            included=("a", "b"),
            time_filter=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )


def test_record_keeps_original_intent() -> None:
    assert collections_for_record(SelectionIntent.of("include", ["users"])) == (["users"], None)
    assert collections_for_record(SelectionIntent.of("exclude", ["logs"])) == (None, ["logs"])
    assert collections_for_record(SelectionIntent.of("all")) == (None, None)
