"""Time filters expressed as ``_id`` lower bounds for incremental dumps."""

from __future__ import annotations

import calendar
import json
import math
import re
from datetime import datetime, timedelta, timezone

from bson import ObjectId

from .errors import SelectionError


_MAX_SECONDS = 2**32 - 1
_RELATIVE = re.compile(r"^(\d+)([hdwMy])$")


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def object_id_from_datetime(moment: datetime) -> str:
    """Return the smallest ObjectId hex generated at or after ``moment``.

    The first 8 hex digits carry the epoch seconds, the rest are zero.
    Naive datetimes are treated as UTC.
    """

    seconds = math.floor(_as_utc(moment).timestamp())
    if seconds < 0 or seconds > _MAX_SECONDS:
        raise SelectionError(f"time filter out of ObjectId range: {moment.isoformat()}")
    return str(ObjectId.from_datetime(_as_utc(moment)))


def build_time_query(moment: datetime) -> str:
    """Return the ``--query`` document selecting ``_id >= moment``."""

    oid = object_id_from_datetime(moment)
    return json.dumps({"_id": {"$gte": {"$oid": oid}}}, separators=(",", ":"))


def _months_ago(now: datetime, months: int) -> datetime:
    index = now.year * 12 + (now.month - 1) - months
    year, month = divmod(index, 12)
    month += 1
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def parse_since(value: str, now: datetime | None = None) -> datetime:
    """Parse ``--since`` values: ISO-8601 or ``<n>h|d|w|M|y`` ago."""

    text = (value or "").strip()
    if not text:
        raise SelectionError("empty time filter")

    match = _RELATIVE.match(text)
    if match:
        amount = int(match.group(1))
        unit = match.group(2)
        current = now or datetime.now(timezone.utc)
        try:
            if unit == "h":
                return current - timedelta(hours=amount)
            if unit == "d":
                return current - timedelta(days=amount)
            if unit == "w":
                return current - timedelta(weeks=amount)
            if unit == "M":
                return _months_ago(current, amount)
            return _months_ago(current, amount * 12)
        except (ValueError, OverflowError) as exc:
            raise SelectionError(f"time filter {value!r} is out of range") from exc

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError as exc:
        raise SelectionError(
            f"invalid time filter {value!r}: use ISO 8601 or a relative duration such as 1d, 3h, 2w, 1M"
        ) from exc
    return _as_utc(parsed)
