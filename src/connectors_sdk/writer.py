"""Create/update/delete on top of the endpoint catalog.

The catalog decides *where* a write goes (create registry without a record
id, update registry with one).  A request builder may override the HTTP
method, mirroring the usual provider families:

=================  ========  ========
builder            create    update
=================  ========  ========
``POST_PUT``       POST      PUT
``POST_PATCH``     POST      PATCH
``POST_POST``      POST      POST
``POST_ONLY``      POST      --
=================  ========  ========
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from connectors_sdk.catalog import EndpointCatalog
from connectors_sdk.errors import NotImplementedOperationError
from connectors_sdk.httpclient import JSONHTTPResponse
from connectors_sdk.jsonquery import Query
from connectors_sdk.locators import ResponseDataLocator
from connectors_sdk.models import DeleteParams, DeleteResult, WriteParams, WriteResult
from connectors_sdk.pipeline import DeleteHandlers, HTTPRequest, WriteHandlers

PayloadEncoder = Callable[[WriteParams], "tuple[bytes, str]"]


@dataclass(frozen=True)
class WriteRequestBuilder:
    create_method: str = "POST"
    update_method: str | None = "PUT"

    def method_for(self, params: WriteParams) -> str:
        if not params.record_id:
            return self.create_method
        if self.update_method is None:
            raise NotImplementedOperationError(f"update is not supported for object {params.object_name!r}")
        return self.update_method


POST_PUT = WriteRequestBuilder("POST", "PUT")
POST_PATCH = WriteRequestBuilder("POST", "PATCH")
POST_POST = WriteRequestBuilder("POST", "POST")
POST_ONLY = WriteRequestBuilder("POST", None)


@dataclass
class CatalogWriteRequest:
    """Build the write request; JSON body unless *encoder* returns raw content."""

    catalog: EndpointCatalog
    builder: WriteRequestBuilder | None = None
    encoder: PayloadEncoder | None = None

    def __call__(self, params: WriteParams) -> HTTPRequest:
        method = self.builder.method_for(params) if self.builder is not None else None
        operation = self.catalog.create_write_operation(params)
        headers = {h.key: h.value for h in params.headers}
        if self.encoder is not None:
            content, content_type = self.encoder(params)
            headers.setdefault("Content-Type", content_type)
            return HTTPRequest(method or operation.method, operation.url, content=content, headers=headers)
        return HTTPRequest(method or operation.method, operation.url, body=params.get_record(), headers=headers)


@dataclass
class WriteResultBuilder:
    """Parse ``{success, recordId, data, errors}`` from a write response.

    ``record_id`` falls back to the id the caller sent.  When ``errors_key``
    names a non-empty array the write is reported unsuccessful.
    """

    locator: ResponseDataLocator = field(default_factory=ResponseDataLocator)
    errors_key: str = ""

    def __call__(self, params: WriteParams, response: JSONHTTPResponse) -> WriteResult:
        body = response.body
        if body is None:
            return WriteResult(success=True, record_id=params.record_id)
        errors: list[Any] = []
        if self.errors_key:
            errors = Query(body).array_optional(self.errors_key) or []
        record_id = self.locator.extract_record_id(body, params.object_name) or params.record_id
        return WriteResult(
            success=not errors,
            record_id=record_id,
            errors=errors,
            data=self.locator.extract_record_data(body, params.object_name),
        )


def write_handlers(
    catalog: EndpointCatalog,
    builder: WriteRequestBuilder | None = None,
    result_builder: WriteResultBuilder | None = None,
    encoder: PayloadEncoder | None = None,
) -> WriteHandlers:
    return WriteHandlers(
        build_request=CatalogWriteRequest(catalog, builder, encoder),
        parse_response=result_builder or WriteResultBuilder(),
    )


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------

@dataclass
class CatalogDeleteRequest:
    catalog: EndpointCatalog

    def __call__(self, params: DeleteParams) -> HTTPRequest:
        operation = self.catalog.create_delete_operation(params)
        headers = {h.key: h.value for h in params.headers}
        return HTTPRequest(operation.method or "DELETE", operation.url, headers=headers)


def parse_delete_response(_params: DeleteParams, response: JSONHTTPResponse) -> DeleteResult:
    """Body is ignored; success means 200 or 204."""
    return DeleteResult(success=response.status in (200, 204))


def delete_handlers(catalog: EndpointCatalog) -> DeleteHandlers:
    return DeleteHandlers(build_request=CatalogDeleteRequest(catalog), parse_response=parse_delete_response)
