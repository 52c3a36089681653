"""Connectors SDK: shared plumbing for SaaS provider connectors."""

from connectors_sdk.catalog import EndpointCatalog, OperationRegistry, OperationSpec
from connectors_sdk.config import Settings
from connectors_sdk.connector import (
    BatchWriter,
    CatalogConnector,
    Connector,
    Deleter,
    MetadataLister,
    Reader,
    Subscriber,
    WebhookVerifier,
    Writer,
    supports,
)
from connectors_sdk.errors import ConnectorError, HTTPError
from connectors_sdk.httpclient import JSONHTTPClient, JSONHTTPResponse
from connectors_sdk.interpreter import ErrorHandler, FormatSwitch, FormatTemplate
from connectors_sdk.models import (
    BatchWriteParams,
    BatchWriteResult,
    ConnectorParams,
    DeleteParams,
    DeleteResult,
    FieldMetadata,
    ListObjectMetadataResult,
    ObjectMetadata,
    ReadParams,
    ReadResult,
    ReadResultRow,
    ValueType,
    WriteParams,
    WriteResult,
)
from connectors_sdk.staticschema import Metadata
from connectors_sdk.subscription import EventType, ObjectEvents, ObserverRegistry, SubscriptionContext

__all__ = [
    "EndpointCatalog",
    "OperationRegistry",
    "OperationSpec",
    "Settings",
    "BatchWriter",
    "CatalogConnector",
    "Connector",
    "Deleter",
    "MetadataLister",
    "Reader",
    "Subscriber",
    "WebhookVerifier",
    "Writer",
    "supports",
    "ConnectorError",
    "HTTPError",
    "JSONHTTPClient",
    "JSONHTTPResponse",
    "ErrorHandler",
    "FormatSwitch",
    "FormatTemplate",
    "BatchWriteParams",
    "BatchWriteResult",
    "ConnectorParams",
    "DeleteParams",
    "DeleteResult",
    "FieldMetadata",
    "ListObjectMetadataResult",
    "ObjectMetadata",
    "ReadParams",
    "ReadResult",
    "ReadResultRow",
    "ValueType",
    "WriteParams",
    "WriteResult",
    "Metadata",
    "EventType",
    "ObjectEvents",
    "ObserverRegistry",
    "SubscriptionContext",
]
