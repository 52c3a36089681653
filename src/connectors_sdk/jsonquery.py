"""Strict, typed access to decoded JSON.

A :class:`Query` walks a *zoom* path of nested objects, then reads one key
with a type expectation::

    Query(body, "meta", "paging").string_optional("next")   # body["meta"]["paging"]["next"]
    Query(body).array_required("data")

Optional lookups tolerate missing keys and ``null``; required lookups raise
:class:`KeyNotFoundError` / :class:`NullJSONError`.  Neither relaxes the type
check.  An empty key means "the zoom destination itself".
"""

from __future__ import annotations

from typing import Any

from connectors_sdk.errors import ConnectorError

_MISSING = object()


class JSONQueryError(ConnectorError):
    """Invalid JSON structure."""


class KeyNotFoundError(JSONQueryError):
    """Key not found."""


class NullJSONError(JSONQueryError):
    """Value of JSON key is null."""


class NotObjectError(JSONQueryError):
    """JSON value is not an object."""


class NotArrayError(JSONQueryError):
    """JSON value is not an array."""


class NotStringError(JSONQueryError):
    """JSON value is not a string."""


class NotNumericError(JSONQueryError):
    """JSON value is not a number."""


class NotIntegerError(NotNumericError):
    """JSON value is not an integer."""


class NotBoolError(JSONQueryError):
    """JSON value is not a boolean."""


class Query:
    def __init__(self, node: Any, *zoom: str) -> None:
        self.node = node
        self.zoom = list(zoom)

    def _inner(self, key: str, optional: bool) -> Any:
        current = self.node
        path = self.zoom + ([key] if key else [])
        for i, part in enumerate(path):
            if current is None:
                if optional:
                    return _MISSING
                raise KeyNotFoundError(f"key not found: {'.'.join(path[: i + 1])}")
            if not isinstance(current, dict):
                raise NotObjectError(f"not an object at {'.'.join(path[:i]) or '$'}")
            if part not in current:
                if optional:
                    return _MISSING
                raise KeyNotFoundError(f"key not found: {'.'.join(path[: i + 1])}")
            current = current[part]
        return current

    def _present(self, key: str, optional: bool) -> Any:
        value = self._inner(key, optional)
        if value is _MISSING:
            return _MISSING
        if value is None:
            if optional:
                return _MISSING
            raise NullJSONError(f"value of key {key or '.'.join(self.zoom)!r} is null")
        return value

    # objects -----------------------------------------------------------

    def object_optional(self, key: str) -> dict[str, Any] | None:
        value = self._present(key, True)
        if value is _MISSING:
            return None
        if not isinstance(value, dict):
            raise NotObjectError(key)
        return value

    def object_required(self, key: str) -> dict[str, Any]:
        value = self._present(key, False)
        if not isinstance(value, dict):
            raise NotObjectError(key)
        return value

    # arrays ------------------------------------------------------------

    def array_optional(self, key: str) -> list[Any] | None:
        value = self._present(key, True)
        if value is _MISSING:
            return None
        if not isinstance(value, list):
            raise NotArrayError(key)
        return value

    def array_required(self, key: str) -> list[Any]:
        value = self._present(key, False)
        if not isinstance(value, list):
            raise NotArrayError(key)
        return value

    # scalars -----------------------------------------------------------

    def string_optional(self, key: str) -> str | None:
        value = self._present(key, True)
        if value is _MISSING:
            return None
        if not isinstance(value, str):
            raise NotStringError(key)
        return value

    def string_required(self, key: str) -> str:
        value = self._present(key, False)
        if not isinstance(value, str):
            raise NotStringError(key)
        return value

    def integer_optional(self, key: str) -> int | None:
        value = self._present(key, True)
        if value is _MISSING:
            return None
        return _as_integer(key, value)

    def integer_required(self, key: str) -> int:
        return _as_integer(key, self._present(key, False))

    def bool_optional(self, key: str) -> bool | None:
        value = self._present(key, True)
        if value is _MISSING:
            return None
        if not isinstance(value, bool):
            raise NotBoolError(key)
        return value

    def bool_required(self, key: str) -> bool:
        value = self._present(key, False)
        if not isinstance(value, bool):
            raise NotBoolError(key)
        return value

    def text_with_default(self, key: str, default: str = "") -> str:
        """String at *key*, numbers rendered without decimals, else *default*."""
        value = self._present(key, True)
        if value is _MISSING:
            return default
        if isinstance(value, bool):
            raise NotStringError(key)
        if isinstance(value, (int, float)):
            return format_number(value)
        if not isinstance(value, str):
            raise NotStringError(key)
        return value


def _as_integer(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise NotNumericError(key)
    if isinstance(value, float):
        if not value.is_integer():
            raise NotIntegerError(key)
        return int(value)
    return value


def format_number(value: int | float) -> str:
    """Render a JSON number the way ids are compared: no trailing ``.0``."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
