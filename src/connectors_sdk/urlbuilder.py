"""URL composition: base URL + path segments + query parameters.

Usage::

    url = URL.new("https://api.example.com/v2/", "contacts")
    url.with_query_param("limit", "100")
    str(url)  # https://api.example.com/v2/contacts?limit=100

Query parameters are emitted in sorted key order and form-escaped unless
registered through one of the ``with_unencoded_*`` methods.
"""

from __future__ import annotations

import posixpath
from urllib.parse import parse_qs, quote_plus, urlsplit, urlunsplit

from connectors_sdk.errors import ConnectorError


class InvalidURLError(ConnectorError):
    """URL format is incorrect."""


def _clean_trailing_slashes(link: str) -> str:
    return link.rstrip("/")


class URL:
    """Mutable URL with ordered query manipulation."""

    def __init__(self, scheme: str, host: str, path: str, query: dict[str, list[str]], fragment: str = "") -> None:
        self.scheme = scheme
        self.host = host
        self._path = path
        self._query: dict[str, list[str]] = query
        self.fragment = fragment
        self._unencoded: set[str] = set()
        self._encoding_exceptions: dict[str, str] = {}

    @classmethod
    def new(cls, base: str, *paths: str) -> "URL":
        """Parse *base* (trailing slashes dropped) and append *paths*."""
        try:
            parts = urlsplit(_clean_trailing_slashes(base))
            query = parse_qs(parts.query, keep_blank_values=True, strict_parsing=False)
        except ValueError as exc:
            raise InvalidURLError(f"{exc}") from exc
        url = cls(parts.scheme, parts.netloc, parts.path, query, parts.fragment)
        url.add_path(*paths)
        return url

    # ------------------------------------------------------------------
    # Query params
    # ------------------------------------------------------------------

    def with_query_param(self, name: str, value: str) -> "URL":
        self._query[name] = [value]
        return self

    def with_query_param_list(self, name: str, values: list[str]) -> "URL":
        self._query[name] = list(values)
        return self

    def with_unencoded_query_param(self, name: str, value: str) -> "URL":
        self._query[name] = [value]
        self._unencoded.add(name)
        return self

    def with_unencoded_query_param_list(self, name: str, values: list[str]) -> "URL":
        self._query[name] = list(values)
        self._unencoded.add(name)
        return self

    def get_first_query_param(self, name: str) -> str | None:
        values = self._query.get(name)
        if not values:
            return None
        return values[0]

    def has_query_param(self, name: str) -> bool:
        return name in self._query

    def remove_query_param(self, name: str) -> "URL":
        self._query.pop(name, None)
        self._unencoded.discard(name)
        return self

    def add_encoding_exceptions(self, exceptions: dict[str, str]) -> "URL":
        """Replace encoded substrings after escaping, e.g. ``{"%3A": ":"}``."""
        self._encoding_exceptions.update(exceptions)
        return self

    # ------------------------------------------------------------------
    # Path
    # ------------------------------------------------------------------

    @property
    def path(self) -> str:
        return self._path

    def add_path(self, *paths: str) -> "URL":
        if not paths:
            return self
        segments = list(paths)
        segments[-1] = _clean_trailing_slashes(segments[-1])
        joined = "/".join([self._path or "/"] + [s.strip("/") for s in segments if s.strip("/")])
        cleaned = posixpath.normpath(joined) if joined else ""
        if cleaned == ".":
            cleaned = ""
        if cleaned and not cleaned.startswith("/"):
            cleaned = "/" + cleaned
        if cleaned.startswith("//"):
            cleaned = "/" + cleaned.lstrip("/")
        self._path = cleaned
        return self

    @property
    def origin(self) -> str:
        if not self.scheme or not self.host:
            return ""
        return f"{self.scheme}://{self.host}"

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _query_string(self) -> str:
        pieces: list[str] = []
        for key in sorted(self._query):
            raw = key in self._unencoded
            key_str = key if raw else quote_plus(key)
            for value in self._query[key]:
                val_str = value if raw else quote_plus(value)
                pieces.append(f"{key_str}={val_str}")
        result = "&".join(pieces)
        for before, after in self._encoding_exceptions.items():
            result = result.replace(before, after)
        return result

    def __str__(self) -> str:
        return urlunsplit((self.scheme, self.host, self._path, self._query_string(), self.fragment))

    def __repr__(self) -> str:
        return f"URL({str(self)!r})"

    def equals(self, other: "URL") -> bool:
        """Compare ignoring host case and the order of repeated query values."""
        if (
            self.host.lower() != other.host.lower()
            or self._path != other._path
            or self.scheme != other.scheme
            or self.fragment != other.fragment
        ):
            return False
        if self._query.keys() != other._query.keys():
            return False
        return all(sorted(v) == sorted(other._query[k]) for k, v in self._query.items())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, URL):
            return NotImplemented
        return self.equals(other)

    __hash__ = None  # type: ignore[assignment]


def new(base: str, *paths: str) -> URL:
    return URL.new(base, *paths)
