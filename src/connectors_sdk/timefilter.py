"""Incremental sync: filter records by ``since``/``until`` and stop paging early.

Providers that cannot filter by time server-side still return records in a
known order.  The filter keeps the in-range records of each page and only
asks for the next page when the page edge that faces "newer" data was in
range::

    filter_func = make_time_filter_func(
        TimeOrder.CHRONOLOGICAL,
        TimeBoundary(),
        "updated_at",
        RFC3339,
        make_next_page_func("next"),
    )
    records, next_page = filter_func(params, body, records)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from connectors_sdk.datautils import ensure_aware, parse_rfc3339
from connectors_sdk.errors import ConnectorError, OperationCancelledError
from connectors_sdk.jsonquery import JSONQueryError, Query
from connectors_sdk.locators import NextPageFunc
from connectors_sdk.models import ReadParams, Record
from connectors_sdk.readhelper import FilterFunc

RFC3339 = "rfc3339"
UNIX_SECONDS = "unix"


class TimestampParseError(ConnectorError):
    """Cannot parse timestamp."""


class MissingRecordsKeyError(ConnectorError):
    """Bad records key."""


class MissingTimestampKeyError(ConnectorError):
    """Bad since timestamp key."""


class NextPageConstructionError(ConnectorError):
    """Constructing next page value."""


class TimeOrder(str, Enum):
    UNORDERED = "unordered"
    CHRONOLOGICAL = "chronological"  # oldest first
    REVERSE = "reverse"  # newest first


@dataclass(frozen=True)
class TimeBoundary:
    """Inclusive on both ends unless told otherwise."""

    exclude_since: bool = False
    exclude_until: bool = False

    def with_exclusive_since(self) -> "TimeBoundary":
        return TimeBoundary(exclude_since=True, exclude_until=self.exclude_until)

    def with_exclusive_until(self) -> "TimeBoundary":
        return TimeBoundary(exclude_since=self.exclude_since, exclude_until=True)

    def contains(self, params: ReadParams, ts: datetime) -> bool:
        since = ensure_aware(params.since)
        until = ensure_aware(params.until)
        ts = ensure_aware(ts)
        if since is None and until is None:
            return True
        if since is not None:
            if self.exclude_since and not ts > since:
                return False
            if not self.exclude_since and ts < since:
                return False
        if until is not None:
            if self.exclude_until and not ts < until:
                return False
            if not self.exclude_until and ts > until:
                return False
        return True


def parse_timestamp(value: Any, fmt: "str | Callable[[Any], datetime]") -> datetime:
    """Parse *value* with an RFC3339/Unix marker, a ``strptime`` format or a callable."""
    try:
        if callable(fmt):
            return ensure_aware(fmt(value))
        if fmt == UNIX_SECONDS:
            if isinstance(value, bool):
                raise TypeError("boolean is not a timestamp")
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        if not isinstance(value, str):
            raise TypeError(f"expected string timestamp, got {type(value).__name__}")
        if fmt == RFC3339:
            return parse_rfc3339(value)
        return ensure_aware(datetime.strptime(value, fmt))
    except (TypeError, ValueError, OverflowError) as exc:
        raise TimestampParseError(f"cannot parse timestamp {value!r}: {exc}") from exc


def _timestamp_of(record: Record, key: str | list[str], fmt: Any) -> datetime:
    path = [key] if isinstance(key, str) else list(key)
    container = Query(record, *path[:-1]).object_required("")
    value = container.get(path[-1])
    if value is None:
        raise TimestampParseError(f"record has no timestamp at {'.'.join(path)!r}")
    return parse_timestamp(value, fmt)


def has_next_page_for_order(order: TimeOrder, index: int, total: int) -> bool:
    """Whether keeping the record at *index* implies newer data on later pages."""
    if order is TimeOrder.UNORDERED:
        return True
    if order is TimeOrder.CHRONOLOGICAL:
        return index == total - 1
    if order is TimeOrder.REVERSE:
        return index == 0
    return False


def make_time_filter_func(
    order: TimeOrder,
    boundary: TimeBoundary,
    timestamp_key: str | list[str],
    timestamp_format: "str | Callable[[Any], datetime]",
    next_page_func: NextPageFunc,
    cancelled: Callable[[], bool] | None = None,
) -> FilterFunc:
    """Build a filter ``(params, body, records) -> (records, next_page)``.

    *cancelled* is polled before each record; once it returns true the
    filter raises :class:`OperationCancelledError` whose ``partial`` holds the
    records kept so far.
    """

    def filter_records(params: ReadParams, body: Any, records: list[Record]) -> tuple[list[Record], str]:
        if not records:
            return [], ""

        filtered: list[Record] = []
        has_more = False
        for index, record in enumerate(records):
            if cancelled is not None and cancelled():
                raise OperationCancelledError("time filter cancelled", partial=filtered)
            ts = _timestamp_of(record, timestamp_key, timestamp_format)
            if boundary.contains(params, ts):
                filtered.append(record)
                has_more = has_more or has_next_page_for_order(order, index, len(records))

        if not has_more:
            return filtered, ""
        return filtered, next_page_func(body)

    return filter_records


def filter_sorted_records(
    body: Any,
    records_key: str,
    since: datetime,
    timestamp_key: str,
    timestamp_format: "str | Callable[[Any], datetime]",
    next_page_func: NextPageFunc,
) -> tuple[list[Record], str]:
    """Newest-first stream: keep records strictly newer than *since*.

    Stops at the first stale record.  The next page is only requested when
    the last record of the page was still fresh.
    """
    try:
        records = Query(body).array_required(records_key)
    except JSONQueryError as exc:
        raise MissingRecordsKeyError(f"bad records key {records_key!r}: {exc}") from exc

    if not records:
        return [], ""

    since = ensure_aware(since)
    fresh: list[Record] = []
    last_fresh = False
    for index, record in enumerate(records):
        try:
            raw = Query(record).string_required(timestamp_key)
        except JSONQueryError as exc:
            raise MissingTimestampKeyError(f"bad since timestamp key {timestamp_key!r}: {exc}") from exc
        ts = parse_timestamp(raw, timestamp_format)
        if not ts > since:
            break
        fresh.append(record)
        last_fresh = index == len(records) - 1

    if not last_fresh:
        return fresh, ""
    try:
        next_page = next_page_func(body)
    except ConnectorError:
        raise
    except Exception as exc:
        raise NextPageConstructionError(f"constructing next page value: {exc}") from exc
    return fresh, next_page
