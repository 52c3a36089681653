"""Small generic containers and time helpers used across the library.

- :class:`Set` -- insertion-ordered set (field lists keep caller order)
- :class:`IndexedLists` -- key -> list grouping
- :class:`DefaultMap` -- mapping that falls back to a function for unknown keys
- RFC3339 formatting/parsing and JSON round-trip deep copy
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator, Mapping
from datetime import datetime, timezone
from typing import Any, Callable, Generic, TypeVar

K = TypeVar("K")
V = TypeVar("V")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Set
# ---------------------------------------------------------------------------

class Set(Generic[T]):
    """Set that remembers insertion order."""

    def __init__(self, items: Iterable[T] | None = None) -> None:
        self._items: dict[T, None] = {}
        if items is not None:
            self.add(*items)

    def add(self, *items: T) -> None:
        for item in items:
            self._items[item] = None

    def remove(self, *items: T) -> None:
        for item in items:
            self._items.pop(item, None)

    def has(self, item: T) -> bool:
        return item in self._items

    def list(self) -> list[T]:
        return list(self._items)

    def union(self, other: Iterable[T]) -> "Set[T]":
        result = Set(self._items)
        result.add(*other)
        return result

    def intersection(self, other: Iterable[T]) -> "Set[T]":
        keep = set(other)
        return Set(item for item in self._items if item in keep)

    def subtract(self, other: Iterable[T]) -> "Set[T]":
        drop = set(other)
        return Set(item for item in self._items if item not in drop)

    def is_empty(self) -> bool:
        return not self._items

    def __contains__(self, item: object) -> bool:
        return item in self._items

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Set):
            return set(self._items) == set(other._items)
        if isinstance(other, (set, frozenset)):
            return set(self._items) == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"Set({self.list()!r})"


def new_string_set(*items: str) -> Set[str]:
    return Set(items)


# ---------------------------------------------------------------------------
# Maps
# ---------------------------------------------------------------------------

class IndexedLists(Generic[K, V]):
    """Groups values into lists by key, preserving order of arrival."""

    def __init__(self) -> None:
        self._data: dict[K, list[V]] = {}

    def add(self, key: K, *values: V) -> None:
        self._data.setdefault(key, []).extend(values)

    def get(self, key: K) -> list[V]:
        return list(self._data.get(key, []))

    def keys(self) -> list[K]:
        return list(self._data)

    def items(self) -> list[tuple[K, list[V]]]:
        return [(k, list(v)) for k, v in self._data.items()]

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


class DefaultMap(Generic[K, V]):
    """Read-mostly mapping; unknown keys are answered by ``fallback(key)``.

    The fallback result is not stored, so the map itself stays unchanged.
    """

    def __init__(
        self,
        data: Mapping[K, V] | None = None,
        fallback: Callable[[K], V] | None = None,
    ) -> None:
        self._data: dict[K, V] = dict(data or {})
        self._fallback = fallback

    def get(self, key: K) -> V:
        if key in self._data:
            return self._data[key]
        if self._fallback is None:
            raise KeyError(key)
        return self._fallback(key)

    def has(self, key: K) -> bool:
        return key in self._data

    def set(self, key: K, value: V) -> None:
        self._data[key] = value

    def keys(self) -> list[K]:
        return list(self._data)

    @property
    def has_fallback(self) -> bool:
        return self._fallback is not None

    def __getitem__(self, key: K) -> V:
        return self.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._data


def merge_maps(*maps: Mapping[K, V]) -> dict[K, V]:
    """Merge mappings left to right; later keys win."""
    out: dict[K, V] = {}
    for m in maps:
        out.update(m)
    return out


def invert_map(m: Mapping[K, V]) -> dict[V, K]:
    return {v: k for k, v in m.items()}


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------

def format_rfc3339(ts: datetime) -> str:
    """Format *ts* as RFC3339 in UTC with a ``Z`` suffix (naive means UTC)."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    ts = ts.astimezone(timezone.utc)
    if ts.microsecond:
        return ts.strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return ts.strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_rfc3339(value: str) -> datetime:
    """Parse an RFC3339 timestamp.  Raises ``ValueError`` on bad input."""
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def ensure_aware(ts: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC so they compare with parsed timestamps."""
    if ts is None or ts.tzinfo is not None:
        return ts
    return ts.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Copy
# ---------------------------------------------------------------------------

def deep_copy(value: T) -> T:
    """Structural copy through a JSON round-trip.

    Records are always JSON-shaped; anything that is not serialisable
    raises ``TypeError``.
    """
    return json.loads(json.dumps(value))


def to_json_map(value: Any) -> dict[str, Any]:
    """Coerce *value* into a ``dict`` via JSON serialisation.

    Mappings are returned as plain dicts; dataclass-like objects with a
    ``to_dict`` method and pydantic models are converted first.
    """
    if isinstance(value, dict):
        return value
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    if hasattr(value, "to_dict"):
        return value.to_dict()
    decoded = json.loads(json.dumps(value))
    if not isinstance(decoded, dict):
        raise TypeError(f"expected a JSON object, got {type(decoded).__name__}")
    return decoded
