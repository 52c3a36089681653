"""JSON HTTP client over an injected :class:`httpx.AsyncClient`.

The caller owns the client (and its authentication); this wrapper never
closes it.  Every method returns a :class:`JSONHTTPResponse` whose ``body``
is decoded JSON, or ``None`` for an empty body.  Non-2xx responses are
handed to the error handler, :func:`~connectors_sdk.interpreter.interpret_error`
by default, which raises.

Usage::

    async with httpx.AsyncClient(headers={"Authorization": "Bearer ..."}) as raw:
        client = JSONHTTPClient(raw, base_url="https://api.example.com")
        rsp = await client.get("/v2/contacts")
        rsp.body["data"]
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

import httpx

from connectors_sdk.errors import NotJSONError
from connectors_sdk.interpreter import ErrorHandlerFunc, interpret_error

logger = logging.getLogger(__name__)

_SENSITIVE_HEADERS = {"authorization", "cookie", "set-cookie", "x-api-key", "proxy-authorization"}

ShouldHandleError = Callable[[httpx.Response], bool]


def redact_headers(headers: httpx.Headers | dict[str, str]) -> dict[str, str]:
    return {k: ("<redacted>" if k.lower() in _SENSITIVE_HEADERS else v) for k, v in headers.items()}


def _default_should_handle(response: httpx.Response) -> bool:
    return not (200 <= response.status_code < 300)


@dataclass
class JSONHTTPResponse:
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    raw: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def decode_json_body(content: bytes) -> Any:
    """``None`` for empty (or whitespace) bodies, else the decoded JSON."""
    if not content.strip():
        return None
    try:
        return json.loads(content)
    except ValueError as exc:
        raise NotJSONError(f"response is not JSON: {exc}") from exc


class JSONHTTPClient:
    """Thin JSON layer over ``httpx``.

    Parameters
    ----------
    client:
        Authenticated ``httpx.AsyncClient``.  Owned by the caller.
    base_url:
        Prefix for relative URLs.
    error_handler:
        Called as ``error_handler(response, body)`` for responses selected by
        *should_handle_error*; expected to raise.
    should_handle_error:
        Predicate choosing which responses are errors.  Default: non-2xx.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str = "",
        error_handler: ErrorHandlerFunc | None = None,
        should_handle_error: ShouldHandleError | None = None,
    ) -> None:
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.error_handler = error_handler or interpret_error
        self.should_handle_error = should_handle_error or _default_should_handle

    def _url(self, url: str) -> str:
        if url.startswith(("http://", "https://")) or not self.base_url:
            return url
        return f"{self.base_url}/{url.lstrip('/')}"

    async def get(self, url: str, headers: dict[str, str] | None = None) -> JSONHTTPResponse:
        return await self.request("GET", url, headers=headers)

    async def post(self, url: str, body: Any = None, headers: dict[str, str] | None = None) -> JSONHTTPResponse:
        return await self.request("POST", url, body=body, headers=headers)

    async def put(self, url: str, body: Any = None, headers: dict[str, str] | None = None) -> JSONHTTPResponse:
        return await self.request("PUT", url, body=body, headers=headers)

    async def patch(self, url: str, body: Any = None, headers: dict[str, str] | None = None) -> JSONHTTPResponse:
        return await self.request("PATCH", url, body=body, headers=headers)

    async def delete(self, url: str, headers: dict[str, str] | None = None) -> JSONHTTPResponse:
        return await self.request("DELETE", url, headers=headers)

    async def request(
        self,
        method: str,
        url: str,
        *,
        body: Any = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> JSONHTTPResponse:
        """Send one request.  *content* is sent raw (e.g. XML); *body* as JSON."""
        target = self._url(url)
        kwargs: dict[str, Any] = {"headers": headers or {}}
        if content is not None:
            kwargs["content"] = content
        elif body is not None:
            kwargs["json"] = body

        try:
            response = await self.client.request(method, target, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("HTTP request failed: %s %s: %s", method, target, exc)
            raise

        if self.should_handle_error(response):
            logger.error(
                "HTTP request failed: %s %s -> %d (headers=%s)",
                method,
                target,
                response.status_code,
                redact_headers(response.request.headers),
            )
            self.error_handler(response, response.content)
            # A handler that does not raise accepts the response as-is.

        parsed = decode_json_body(response.content) if response.status_code != 204 else None
        return JSONHTTPResponse(
            status=response.status_code,
            headers=dict(response.headers),
            body=parsed,
            raw=response.content,
        )
