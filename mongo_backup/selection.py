"""Selection resolution: turn operator intent into dump-tool filter parameters.

Dump tools filter either by explicit inclusion or explicit exclusion, while
operators think in terms of "only these", "everything except these" or
"everything". :func:`resolve_selection` always emits a mode the tool accepts:

* a time filter passes a single ``include`` collection through untouched;
* ``all`` stays ``all``;
* ``exclude`` is used verbatim (an empty list means ``all``);
* ``include`` is rewritten as ``exclude`` of the live catalog's complement,
  collapsing to ``all`` when the complement is empty, when nothing requested
  exists, or when the catalog cannot be listed.

The operator's original intent is kept separately for the metadata record.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Iterable

import structlog

from .errors import CatalogFetchError, SelectionError
from .models import ResolvedSelection, SelectionIntent, SelectionMode


logger = structlog.get_logger(__name__)

CatalogLookup = Callable[[], Iterable[str]]

ALL = ResolvedSelection(mode=SelectionMode.ALL)


def validate_time_filter(intent: SelectionIntent, time_filter: datetime | None) -> None:
    """Reject time filters that do not target exactly one included collection."""

    if time_filter is None:
        return
    if intent.mode != SelectionMode.INCLUDE:
        raise SelectionError(
            f"a time filter can only be used with mode 'include' (got {intent.mode.value!r})"
        )
    if len(intent.collections) != 1:
        raise SelectionError(
            f"a time filter requires exactly one collection (got {len(intent.collections)})"
        )


def resolve_selection(
    intent: SelectionIntent,
    catalog_lookup: CatalogLookup,
    time_filter: datetime | None = None,
) -> ResolvedSelection:
    """Return the concrete selection for ``intent``.

    ``catalog_lookup`` is only called for ``include`` intents without a time
    filter. A :class:`CatalogFetchError` it raises downgrades the result to
    ``all``; anything else propagates.
    """

    validate_time_filter(intent, time_filter)

    if time_filter is not None:
        return ResolvedSelection(
            mode=SelectionMode.INCLUDE,
            included=(intent.collections[0],),
            time_filter=time_filter,
        )

    if intent.mode == SelectionMode.ALL:
        return ALL

    if intent.mode == SelectionMode.EXCLUDE:
        if not intent.collections:
            logger.info("exclude_list_empty_backing_up_all")
            return ALL
        return ResolvedSelection(mode=SelectionMode.EXCLUDE, excluded=tuple(intent.collections))

    requested = list(intent.collections)
    if not requested:
        logger.warning("include_list_empty_backing_up_all")
        return ALL

    try:
        catalog = list(catalog_lookup())
    except CatalogFetchError as exc:
        logger.warning("catalog_fetch_failed_backing_up_all", error=str(exc))
        return ALL

    wanted = set(requested)
    excluded = tuple(name for name in catalog if name not in wanted)

    if not catalog:
        logger.warning("catalog_empty_backing_up_all", requested=requested)
        return ALL
    if not excluded:
        logger.info("include_covers_catalog_switching_to_all", collections=len(catalog))
        return ALL
    if len(excluded) == len(catalog):
        logger.warning(
            "include_collections_not_found_backing_up_all",
            requested=requested,
        )
        return ALL

    logger.info("include_rewritten_as_exclude", excluded=list(excluded))
    return ResolvedSelection(mode=SelectionMode.EXCLUDE, excluded=excluded)


def collections_for_record(intent: SelectionIntent) -> tuple[list[str] | None, list[str] | None]:
    """Return ``(included, excluded)`` lists recorded in metadata for ``intent``."""

    names = list(intent.collections)
    if intent.mode == SelectionMode.INCLUDE:
        return names, None
    if intent.mode == SelectionMode.EXCLUDE:
        return None, names
    return None, None
