"""Locate records, next-page tokens and record ids inside response bodies."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from connectors_sdk.jsonquery import Query, format_number
from connectors_sdk.models import ROOT_MODULE_ID, Record
from connectors_sdk.errors import MissingExpectedValuesError, RecordDataNotJSONError

RecordsFunc = Callable[[Any], list[Record]]
NextPageFunc = Callable[[Any], str]


def _as_records(items: list[Any]) -> list[Record]:
    for item in items:
        if not isinstance(item, dict):
            raise RecordDataNotJSONError(f"record is not a JSON object: {item!r}")
    return items


def make_records_func(json_key: str, *nested: str) -> RecordsFunc:
    """Records array at ``body[nested...][json_key]``; the key must exist."""

    def records(body: Any) -> list[Record]:
        return _as_records(Query(body, *nested).array_required(json_key))

    return records


def extract_records_from_path(json_key: str, *nested: str) -> RecordsFunc:
    return make_records_func(json_key, *nested)


def extract_optional_records_from_path(json_key: str, *nested: str) -> RecordsFunc:
    """Like :func:`make_records_func` but an absent or null array yields ``[]``."""

    def records(body: Any) -> list[Record]:
        arr = Query(body, *nested).array_optional(json_key)
        return _as_records(arr) if arr is not None else []

    return records


def records_at_root(body: Any) -> list[Record]:
    """The body itself is the records array."""
    if body is None:
        return []
    if not isinstance(body, list):
        raise MissingExpectedValuesError("response body is not an array")
    return _as_records(body)


def make_next_page_func(json_key: str, *nested: str) -> NextPageFunc:
    """Next-page token at ``body[nested...][json_key]``, empty when absent."""

    def next_page(body: Any) -> str:
        return Query(body, *nested).text_with_default(json_key)

    return next_page


def no_next_page(_body: Any) -> str:
    return ""


# ---------------------------------------------------------------------------
# Record id lookup
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class JSONPath:
    """``nested`` objects are walked before reading ``key``."""

    key: str
    nested: tuple[str, ...] = ()

    @classmethod
    def of(cls, key: str, *nested: str) -> "JSONPath":
        return cls(key, tuple(nested))


@dataclass
class ResponseDataLocator:
    """module -> object -> :class:`JSONPath` of the record id in a write response."""

    paths: dict[str, dict[str, JSONPath]] = field(default_factory=dict)
    default: JSONPath = field(default_factory=lambda: JSONPath("id"))
    module: str = ROOT_MODULE_ID

    def path_for(self, object_name: str) -> JSONPath:
        return self.paths.get(self.module or ROOT_MODULE_ID, {}).get(object_name, self.default)

    def extract_record_id(self, node: Any, object_name: str) -> str:
        path = self.path_for(object_name)
        return Query(node, *path.nested).text_with_default(path.key)

    def extract_record_data(self, node: Any, object_name: str) -> Record | None:
        """The object enclosing the id, which is usually the record itself."""
        path = self.path_for(object_name)
        if not path.nested:
            return node if isinstance(node, dict) else None
        return Query(node, *path.nested).object_optional("")


def record_id_text(value: Any) -> str:
    """Render an id value as text; ``""`` for missing or unsupported types."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)):
        return format_number(value)
    return ""
