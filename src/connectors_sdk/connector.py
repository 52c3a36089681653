"""Connector capability interfaces and a catalog-driven implementation.

Every connector implements :class:`Connector`.  Optional features are
separate ABCs; callers probe them with :func:`supports` instead of calling
methods that would raise ``NotImplementedOperationError``::

    if supports(conn, Reader):
        result = await conn.read(ReadParams("contacts", fields=["id"]))
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from connectors_sdk.catalog import EndpointCatalog, registry_from_static_schema
from connectors_sdk.httpclient import JSONHTTPClient
from connectors_sdk.interpreter import ErrorHandlerFunc
from connectors_sdk.locators import (
    extract_optional_records_from_path,
    make_next_page_func,
    records_at_root,
)
from connectors_sdk.metadata import MetadataFetcher
from connectors_sdk.models import (
    BatchWriteParams,
    BatchWriteResult,
    ConnectorParams,
    DeleteParams,
    DeleteResult,
    ListObjectMetadataResult,
    ObjectMetadata,
    ReadParams,
    ReadResult,
    RequireAuthenticatedClient,
    WebhookRequest,
    WriteParams,
    WriteResult,
    validate_parameters,
)
from connectors_sdk.pipeline import (
    CatalogReadRequest,
    ReadHandlers,
    ReadResponseParser,
    delete,
    read,
    write,
)
from connectors_sdk.staticschema import Metadata
from connectors_sdk.writer import WriteRequestBuilder, WriteResultBuilder, delete_handlers, write_handlers

logger = logging.getLogger(__name__)


class Connector(ABC):
    """Base interface every provider connector implements."""

    @abstractmethod
    def provider(self) -> str:
        """Return the provider identifier, e.g. ``'hubspot'``."""
        ...

    @abstractmethod
    def module(self) -> str:
        ...


class Reader(ABC):
    @abstractmethod
    async def read(self, params: ReadParams) -> ReadResult:
        ...


class Writer(ABC):
    @abstractmethod
    async def write(self, params: WriteParams) -> WriteResult:
        ...


class BatchWriter(ABC):
    @abstractmethod
    async def batch_write(self, params: BatchWriteParams) -> BatchWriteResult:
        ...


class Deleter(ABC):
    @abstractmethod
    async def delete(self, params: DeleteParams) -> DeleteResult:
        ...


class MetadataLister(ABC):
    @abstractmethod
    async def list_object_metadata(self, object_names: list[str]) -> ListObjectMetadataResult:
        ...


class Subscriber(ABC):
    """Provider-side event subscriptions (registration, then subscription)."""

    @abstractmethod
    async def register(self, params: Any) -> Any:
        ...

    @abstractmethod
    async def delete_registration(self, registration: Any) -> None:
        ...

    @abstractmethod
    async def subscribe(self, params: Any) -> Any:
        ...

    @abstractmethod
    async def update_subscription(self, params: Any, previous: Any) -> Any:
        ...

    @abstractmethod
    async def delete_subscription(self, result: Any) -> None:
        ...


class WebhookVerifier(ABC):
    @abstractmethod
    async def verify_webhook_message(self, request: WebhookRequest, params: Any = None) -> bool:
        ...


def supports(connector: Any, capability: type) -> bool:
    return isinstance(connector, capability)


# ---------------------------------------------------------------------------
# Catalog connector
# ---------------------------------------------------------------------------

class CatalogConnector(Connector, Reader, Writer, Deleter, MetadataLister):
    """Connector driven entirely by a static schema plus an endpoint catalog.

    Parameters
    ----------
    params:
        Construction inputs; an authenticated client is required.
    provider:
        Provider identifier.
    base_url:
        API root every catalog path is joined to.
    schema:
        Static object schema.  Used for metadata, and for reads when
        *catalog* has no read registry of its own.
    catalog:
        Optional endpoint catalog for writes and deletes.
    next_page_key:
        Response key holding the next page URL or cursor.
    """

    def __init__(
        self,
        params: ConnectorParams,
        *,
        provider: str,
        base_url: str,
        schema: Metadata,
        catalog: EndpointCatalog | None = None,
        error_handler: ErrorHandlerFunc | None = None,
        read_request: CatalogReadRequest | None = None,
        next_page_key: str = "",
        write_builder: WriteRequestBuilder | None = None,
        write_result: WriteResultBuilder | None = None,
        max_concurrency: int = 0,
    ) -> None:
        validate_parameters(params, RequireAuthenticatedClient())
        self.params = params
        self._provider = provider
        self.schema = schema
        catalog = catalog or EndpointCatalog(base_url, params.module)
        if not catalog.read.specs:
            catalog = catalog.with_read(registry_from_static_schema(schema))
        self.catalog = catalog
        self.client = JSONHTTPClient(params.client, base_url=base_url, error_handler=error_handler)
        self.read_request = read_request or CatalogReadRequest(self.catalog)
        self.next_page_key = next_page_key
        self.write_builder = write_builder
        self.write_result = write_result
        self.metadata_fetcher = MetadataFetcher(self._object_metadata, max_concurrency)

    def provider(self) -> str:
        return self._provider

    def module(self) -> str:
        return self.catalog.module

    def __repr__(self) -> str:
        return f"CatalogConnector(provider={self._provider!r}, module={self.module()!r})"

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def _read_handlers(self, object_name: str) -> ReadHandlers:
        response_key = self.schema.lookup_object(self.catalog.module, object_name).response_key
        records = extract_optional_records_from_path(response_key) if response_key else records_at_root
        parser = ReadResponseParser(records=records)
        # Array bodies carry no paging keys.
        if self.next_page_key and response_key:
            parser.next_page = make_next_page_func(self.next_page_key)
        return ReadHandlers(build_request=self.read_request, parse_response=parser)

    async def read(self, params: ReadParams) -> ReadResult:
        return await read(self.client, params, self._read_handlers(params.object_name))

    # ------------------------------------------------------------------
    # Write / delete
    # ------------------------------------------------------------------

    async def write(self, params: WriteParams) -> WriteResult:
        handlers = write_handlers(self.catalog, self.write_builder, self.write_result)
        return await write(self.client, params, handlers)

    async def delete(self, params: DeleteParams) -> DeleteResult:
        return await delete(self.client, params, delete_handlers(self.catalog))

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    async def _object_metadata(self, object_name: str) -> ObjectMetadata:
        selected = self.schema.select(self.catalog.module, [object_name])
        if object_name in selected.errors:
            raise selected.errors[object_name]
        return selected.result[object_name]

    async def list_object_metadata(self, object_names: list[str]) -> ListObjectMetadataResult:
        return await self.metadata_fetcher.list_object_metadata(object_names)
