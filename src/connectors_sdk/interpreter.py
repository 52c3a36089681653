"""Turn non-2xx provider responses into :mod:`connectors_sdk.errors` exceptions.

Three layers, from generic to provider-specific:

1. :func:`status_error` / :func:`interpret_error` -- status code only.
2. :class:`ErrorHandler` -- dispatch on the response media type (JSON,
   XML, HTML, custom), raising :class:`MissingContentTypeError` when a body
   arrives without one.
3. :class:`FormatSwitch` -- for JSON bodies, pick the first
   :class:`FormatTemplate` whose ``must_keys`` are all present, build a
   descriptor from the payload, and let it enrich the status error.

Usage::

    class ApiError(BaseModel):
        message: str

        def combine_err(self, base):
            return combine_messages(base, self.message)

    handler = ErrorHandler(
        json=FormatSwitch(FormatTemplate(["message"], ApiError)),
    )
    client = JSONHTTPClient(raw, error_handler=handler)
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import Any, Callable, NoReturn, Protocol

import httpx
from pydantic import BaseModel, ValidationError

from connectors_sdk.errors import (
    AccessTokenError,
    BadRequestError,
    ConnectorError,
    ForbiddenError,
    HTTPError,
    LimitExceededError,
    NotFoundError,
    ServerError,
    UnknownError,
)

ErrorHandlerFunc = Callable[[httpx.Response, bytes], None]


class MissingContentTypeError(ConnectorError):
    """Mime type is missing in the Content-Type header."""


# ---------------------------------------------------------------------------
# Status code mapping
# ---------------------------------------------------------------------------

def _http_error(response: httpx.Response, body: bytes, message: str = "") -> HTTPError:
    return HTTPError(response.status_code, body=body, headers=dict(response.headers), message=message)


def status_error(response: httpx.Response, body: bytes, message: str | None = None) -> ConnectorError:
    """Category error for *response*'s status, carrying the raw response."""
    status = response.status_code
    text = message if message is not None else body.decode("utf-8", errors="replace")
    if status == 401:
        cls: type[ConnectorError] = AccessTokenError
    elif status == 403:
        cls = ForbiddenError
    elif status == 404:
        cls = NotFoundError
    elif status == 429:
        cls = LimitExceededError
    elif 400 <= status < 500:
        cls = BadRequestError
    elif 500 <= status < 600:
        cls = ServerError
    else:
        cls = UnknownError
    prefix = cls.default_message().lower()
    return cls(f"{prefix}: {text}" if text else prefix, http_error=_http_error(response, body, text))


def interpret_error(response: httpx.Response, body: bytes) -> NoReturn:
    """Default error handler: raise the status category error."""
    err = status_error(response, body)
    raise err from err.http_error


def combine_messages(base: ConnectorError, *messages: str) -> ConnectorError:
    """New error of *base*'s type whose text also lists provider *messages*."""
    extra = "; ".join(m for m in messages if m)
    if not extra:
        return base
    http_error = base.http_error
    return type(base)(f"{base.default_message().lower()}: {extra}", http_error=http_error)


# ---------------------------------------------------------------------------
# JSON format switch
# ---------------------------------------------------------------------------

class ErrorDescriptor(Protocol):
    def combine_err(self, base: ConnectorError) -> ConnectorError: ...


TemplateFactory = Callable[[dict[str, Any]], ErrorDescriptor]


@dataclass
class FormatTemplate:
    """``template`` is a pydantic model class or any ``payload -> descriptor`` callable."""

    must_keys: list[str]
    template: type[BaseModel] | TemplateFactory

    def matches(self, payload: dict[str, Any]) -> bool:
        return all(key in payload for key in self.must_keys)

    def build(self, payload: dict[str, Any]) -> ErrorDescriptor | None:
        if isinstance(self.template, type) and issubclass(self.template, BaseModel):
            try:
                return self.template.model_validate(payload)  # type: ignore[return-value]
            except ValidationError:
                return None
        return self.template(payload)


class FormatSwitch:
    """Ordered list of JSON error shapes; the first match wins."""

    def __init__(self, *templates: FormatTemplate) -> None:
        self.templates = list(templates)

    def parse_json(self, payload: Any) -> ErrorDescriptor | None:
        if not isinstance(payload, dict):
            return None
        for template in self.templates:
            if template.matches(payload):
                descriptor = template.build(payload)
                if descriptor is not None:
                    return descriptor
        return None

    def handle_error_response(self, response: httpx.Response, body: bytes) -> NoReturn:
        base = status_error(response, body)
        try:
            payload = json.loads(body) if body.strip() else None
        except ValueError:
            payload = None
        descriptor = self.parse_json(payload)
        err = descriptor.combine_err(base) if descriptor is not None else base
        raise err from err.http_error


@dataclass
class DirectFaultyResponder:
    """Hand the response straight to a provider callback that raises."""

    callback: ErrorHandlerFunc

    def handle_error_response(self, response: httpx.Response, body: bytes) -> None:
        self.callback(response, body)


# ---------------------------------------------------------------------------
# HTML
# ---------------------------------------------------------------------------

class _TitleAndParagraphs(HTMLParser):
    def __init__(self) -> None:
        super().__init__()
        self.title = ""
        self.paragraphs: list[str] = []
        self._tag: str | None = None
        self._buf: list[str] = []

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag in ("title", "p"):
            self._tag = tag
            self._buf = []

    def handle_endtag(self, tag: str) -> None:
        if tag != self._tag:
            return
        text = " ".join("".join(self._buf).split())
        if tag == "title" and not self.title:
            self.title = text
        elif tag == "p":
            self.paragraphs.append(text)
        self._tag = None

    def handle_data(self, data: str) -> None:
        if self._tag is not None:
            self._buf.append(data)


def html_error_message(body: bytes) -> str:
    """``<title>`` text, else the second ``<p>``, else ``""``."""
    parser = _TitleAndParagraphs()
    parser.feed(body.decode("utf-8", errors="replace"))
    parser.close()
    if parser.title:
        return parser.title
    if len(parser.paragraphs) > 1:
        return parser.paragraphs[1]
    return ""


class HTMLErrorHandler:
    def handle_error_response(self, response: httpx.Response, body: bytes) -> NoReturn:
        message = html_error_message(body)
        err = status_error(response, body, message=message or None)
        raise err from err.http_error


# ---------------------------------------------------------------------------
# Media type dispatch
# ---------------------------------------------------------------------------

class FaultyResponder(Protocol):
    def handle_error_response(self, response: httpx.Response, body: bytes) -> None: ...


def _mime_type(response: httpx.Response) -> str:
    return response.headers.get("content-type", "").split(";", 1)[0].strip().lower()


@dataclass
class ErrorHandler:
    """Pick a responder from the response ``Content-Type``.

    Instances are callables with the ``error_handler(response, body)``
    signature expected by :class:`~connectors_sdk.httpclient.JSONHTTPClient`.
    """

    json: FaultyResponder | None = None
    xml: FaultyResponder | None = None
    html: FaultyResponder | None = field(default_factory=HTMLErrorHandler)
    custom: dict[str, FaultyResponder] = field(default_factory=dict)

    def handle(self, response: httpx.Response, body: bytes) -> None:
        mime = _mime_type(response)
        if not mime:
            if body.strip():
                raise MissingContentTypeError(http_error=_http_error(response, body))
            interpret_error(response, body)

        responder: FaultyResponder | None
        if mime in self.custom:
            responder = self.custom[mime]
        elif mime == "application/json" or mime.endswith("+json"):
            responder = self.json
        elif mime in ("application/xml", "text/xml") or mime.endswith("+xml"):
            responder = self.xml
        elif mime == "text/html":
            responder = self.html
        else:
            responder = None

        if responder is None:
            interpret_error(response, body)
        responder.handle_error_response(response, body)
        # Responders that return instead of raising fall back to the status mapping.
        interpret_error(response, body)

    __call__ = handle
