"""Generic read/write/delete request pipeline.

An adapter supplies, per operation, a ``build_request`` and a
``parse_response`` handler.  The pipeline validates params, builds the
request, sends it through :class:`JSONHTTPClient` (which routes non-2xx
responses to the error handler) and parses the result::

    handlers = ReadHandlers(
        build_request=CatalogReadRequest(catalog, page_size_param="limit"),
        parse_response=ReadResponseParser(
            records=make_records_func("data"),
            next_page=make_next_page_func("next"),
        ),
    )
    result = await read(client, params, handlers)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable
from urllib.parse import urljoin

from connectors_sdk.catalog import EndpointCatalog
from connectors_sdk.datautils import format_rfc3339
from connectors_sdk.errors import NextPageInvalidError
from connectors_sdk.httpclient import JSONHTTPClient, JSONHTTPResponse
from connectors_sdk.locators import NextPageFunc, RecordsFunc, no_next_page
from connectors_sdk.models import (
    DeleteParams,
    DeleteResult,
    ReadParams,
    ReadResult,
    WriteParams,
    WriteResult,
)
from connectors_sdk.readhelper import (
    FilterFunc,
    MarshalFunc,
    get_marshaled_data,
    parse_result,
    parse_result_filtered,
)
from connectors_sdk.urlbuilder import URL

logger = logging.getLogger(__name__)


@dataclass
class HTTPRequest:
    method: str
    url: str | URL
    body: Any = None
    content: bytes | None = None
    headers: dict[str, str] = field(default_factory=dict)


async def send(client: JSONHTTPClient, request: HTTPRequest) -> JSONHTTPResponse:
    return await client.request(
        request.method,
        str(request.url),
        body=request.body,
        content=request.content,
        headers=request.headers,
    )


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------

@dataclass
class ReadHandlers:
    build_request: Callable[[ReadParams], HTTPRequest]
    parse_response: Callable[[ReadParams, JSONHTTPResponse], ReadResult]
    require_fields: bool = True


async def read(client: JSONHTTPClient, params: ReadParams, handlers: ReadHandlers) -> ReadResult:
    params.validate(require_fields=handlers.require_fields)
    request = handlers.build_request(params)
    logger.debug("read %s: %s %s", params.object_name, request.method, request.url)
    response = await send(client, request)
    return handlers.parse_response(params, response)


def _is_url(token: str) -> bool:
    return token.startswith(("http://", "https://", "/"))


@dataclass
class CatalogReadRequest:
    """Read request from the catalog plus provider query conventions.

    A ``next_page`` that looks like a URL is used verbatim.  Any other
    token is a cursor sent as ``cursor_param``.
    """

    catalog: EndpointCatalog
    page_size_param: str = ""
    default_page_size: int = 0
    cursor_param: str = ""
    since_param: str = ""
    until_param: str = ""
    time_format: Callable[[datetime], str] = format_rfc3339
    static_params: dict[str, str] = field(default_factory=dict)

    def __call__(self, params: ReadParams) -> HTTPRequest:
        if params.next_page and _is_url(params.next_page):
            # Root-relative links resolve against the API origin.
            return HTTPRequest("GET", urljoin(self.catalog.base_url, params.next_page))

        operation = self.catalog.create_read_operation(params)
        url = operation.url
        for key, value in self.static_params.items():
            url.with_query_param(key, value)
        page_size = params.page_size or self.default_page_size
        if self.page_size_param and page_size:
            url.with_query_param(self.page_size_param, str(page_size))
        if params.next_page:
            if not self.cursor_param:
                raise NextPageInvalidError(f"next page token {params.next_page!r} is not a URL")
            url.with_query_param(self.cursor_param, params.next_page)
        if self.since_param and params.since is not None:
            url.with_query_param(self.since_param, self.time_format(params.since))
        if self.until_param and params.until is not None:
            url.with_query_param(self.until_param, self.time_format(params.until))
        return HTTPRequest(operation.method, url)


@dataclass
class ReadResponseParser:
    """Locate records, optionally filter them, and marshal rows."""

    records: RecordsFunc
    next_page: NextPageFunc = no_next_page
    marshal: MarshalFunc = get_marshaled_data
    filter: FilterFunc | None = None

    def __call__(self, params: ReadParams, response: JSONHTTPResponse) -> ReadResult:
        if self.filter is not None:
            return parse_result_filtered(
                params, response.body, self.records, self.filter, self.marshal, params.fields
            )
        return parse_result(response.body, self.records, self.next_page, self.marshal, params.fields)


# ---------------------------------------------------------------------------
# Write / delete
# ---------------------------------------------------------------------------

@dataclass
class WriteHandlers:
    build_request: Callable[[WriteParams], HTTPRequest]
    parse_response: Callable[[WriteParams, JSONHTTPResponse], WriteResult]


async def write(client: JSONHTTPClient, params: WriteParams, handlers: WriteHandlers) -> WriteResult:
    params.validate()
    request = handlers.build_request(params)
    logger.debug("write %s: %s %s", params.object_name, request.method, request.url)
    response = await send(client, request)
    return handlers.parse_response(params, response)


@dataclass
class DeleteHandlers:
    build_request: Callable[[DeleteParams], HTTPRequest]
    parse_response: Callable[[DeleteParams, JSONHTTPResponse], DeleteResult]


async def delete(client: JSONHTTPClient, params: DeleteParams, handlers: DeleteHandlers) -> DeleteResult:
    params.validate()
    request = handlers.build_request(params)
    logger.debug("delete %s: %s %s", params.object_name, request.method, request.url)
    response = await send(client, request)
    return handlers.parse_response(params, response)
