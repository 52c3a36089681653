"""Turn provider records into :class:`ReadResultRow` pages.

Marshal functions take ``(records, fields)`` and return rows.  Requested
fields are matched case-insensitively and emitted lower-cased.  A field
may also be a JSON path, ``$['address']['city']`` or ``$.address.city``,
in which case the value is emitted under its terminal key (``city``).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable

from connectors_sdk.datautils import DefaultMap, Set
from connectors_sdk.errors import EmptyJSONHTTPResponseError
from connectors_sdk.jsonquery import Query
from connectors_sdk.locators import NextPageFunc, RecordsFunc, record_id_text
from connectors_sdk.models import ReadParams, ReadResult, ReadResultRow, Record

MarshalFunc = Callable[[list[Record], list[str]], list[ReadResultRow]]
RecordTransformer = Callable[[Record], Record]
FilterFunc = Callable[[ReadParams, Any, list[Record]], "tuple[list[Record], str]"]

_BRACKET_SEGMENT = re.compile(r"\[\s*'((?:[^'\\]|\\.)*)'\s*\]|\[\s*\"((?:[^\"\\]|\\.)*)\"\s*\]")


# ---------------------------------------------------------------------------
# Field projection
# ---------------------------------------------------------------------------

def parse_json_path(field_name: str) -> list[str] | None:
    """Split a ``$``-prefixed JSON path into keys, or ``None`` for a plain field."""
    if not field_name.startswith("$"):
        return None
    rest = field_name[1:]
    if rest.startswith("."):
        keys = [k for k in rest[1:].split(".") if k]
        return keys or None
    keys: list[str] = []
    pos = 0
    while pos < len(rest):
        match = _BRACKET_SEGMENT.match(rest, pos)
        if match is None:
            return None
        keys.append(match.group(1) if match.group(1) is not None else match.group(2))
        pos = match.end()
    return keys or None


def _lookup_ci(obj: Any, key: str) -> tuple[bool, Any]:
    if not isinstance(obj, dict):
        return False, None
    if key in obj:
        return True, obj[key]
    lowered = key.lower()
    for k, v in obj.items():
        if k.lower() == lowered:
            return True, v
    return False, None


def extract_lowercase_fields_from_raw(fields: list[str], record: Record) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for name in fields:
        path = parse_json_path(name)
        if path is None:
            found, value = _lookup_ci(record, name)
            if found:
                out[name.lower()] = value
            continue
        current: Any = record
        found = True
        for key in path:
            found, current = _lookup_ci(current, key)
            if not found:
                break
        if found:
            out[path[-1].lower()] = current
    return out


def _with_id(fields: list[str]) -> list[str]:
    return list(fields) + ["id"] if "id" not in fields else list(fields)


# ---------------------------------------------------------------------------
# Marshal functions
# ---------------------------------------------------------------------------

def identity_marshal(records: list[Record], fields: list[str]) -> list[ReadResultRow]:
    """Every key of the record, lower-cased."""
    return [
        ReadResultRow(fields={k.lower(): v for k, v in record.items()}, raw=record, id=record_id_text(record.get("id")))
        for record in records
    ]


def get_marshaled_data(records: list[Record], fields: list[str]) -> list[ReadResultRow]:
    """Project requested fields; ``id`` is always included and copied to ``row.id``."""
    wanted = _with_id(fields)
    rows = []
    for record in records:
        projected = extract_lowercase_fields_from_raw(wanted, record)
        rows.append(ReadResultRow(fields=projected, raw=record, id=record_id_text(projected.get("id"))))
    return rows


def make_marshaled_data_func(transformer: RecordTransformer | None = None) -> MarshalFunc:
    """Like :func:`get_marshaled_data` but fields come from ``transformer(record)``.

    ``raw`` keeps the untouched provider record.
    """

    def marshal(records: list[Record], fields: list[str]) -> list[ReadResultRow]:
        wanted = _with_id(fields)
        rows = []
        for record in records:
            shaped = transformer(record) if transformer is not None else record
            projected = extract_lowercase_fields_from_raw(wanted, shaped)
            rows.append(ReadResultRow(fields=projected, raw=record, id=record_id_text(projected.get("id"))))
        return rows

    return marshal


@dataclass(frozen=True)
class IdFieldQuery:
    """Where the id lives: ``record[zoom...][field]``."""

    field: str = "id"
    zoom: tuple[str, ...] = ()

    @classmethod
    def nested(cls, zoom: list[str], field_name: str) -> "IdFieldQuery":
        return cls(field=field_name, zoom=tuple(zoom))


def extract_id_from_record(record: Record, query: IdFieldQuery) -> str:
    """Missing or non-scalar ids produce ``""`` rather than an error."""
    current: Any = record
    for key in query.zoom:
        if not isinstance(current, dict):
            return ""
        current = current.get(key)
    if not isinstance(current, dict):
        return ""
    return record_id_text(current.get(query.field))


def make_get_marshaled_data_with_id(
    object_name: str,
    id_fields: DefaultMap[str, IdFieldQuery],
    transformer: RecordTransformer | None = None,
) -> MarshalFunc:
    def marshal(records: list[Record], fields: list[str]) -> list[ReadResultRow]:
        query = id_fields.get(object_name)
        rows = []
        for record in records:
            shaped = transformer(record) if transformer is not None else record
            rows.append(
                ReadResultRow(
                    fields=extract_lowercase_fields_from_raw(fields, shaped),
                    raw=record,
                    id=extract_id_from_record(record, query),
                )
            )
        return rows

    return marshal


def flatten_nested_fields(nested_key: str) -> RecordTransformer:
    """Promote the keys of ``record[nested_key]`` to the root."""

    def transform(record: Record) -> Record:
        nested = Query(record).object_optional(nested_key) or {}
        out = {k: v for k, v in record.items() if k != nested_key}
        out.update(nested)
        return out

    return transform


def promote_custom_fields(nested_key: str, names: dict[str, str]) -> RecordTransformer:
    """Move ``record[nested_key][hash]`` to ``record[names[hash]]``.

    Unknown hashes keep their key.
    """

    def transform(record: Record) -> Record:
        nested = Query(record).object_optional(nested_key) or {}
        out = {k: v for k, v in record.items() if k != nested_key}
        for key, value in nested.items():
            out[names.get(key, key)] = value
        return out

    return transform


# ---------------------------------------------------------------------------
# Page assembly
# ---------------------------------------------------------------------------

def _page(rows: list[ReadResultRow], next_page: str) -> ReadResult:
    done = not next_page or not rows
    if done:
        next_page = ""
    return ReadResult(rows=len(rows), data=rows, next_page=next_page, done=done)


def parse_result(
    body: Any,
    records_func: RecordsFunc,
    next_page_func: NextPageFunc,
    marshal_func: MarshalFunc,
    fields: Set[str],
) -> ReadResult:
    if body is None:
        raise EmptyJSONHTTPResponseError()
    records = records_func(body)
    next_page = next_page_func(body)
    rows = marshal_func(records, fields.list())
    return _page(rows, next_page)


def parse_result_filtered(
    params: ReadParams,
    body: Any,
    records_func: RecordsFunc,
    filter_func: FilterFunc,
    marshal_func: MarshalFunc,
    fields: Set[str],
) -> ReadResult:
    if body is None:
        raise EmptyJSONHTTPResponseError()
    unfiltered = records_func(body)
    records, next_page = filter_func(params, body, unfiltered)
    rows = marshal_func(records, fields.list())
    return _page(rows, next_page)
