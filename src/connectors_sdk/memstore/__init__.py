"""Memstore: an in-memory, JSON Schema validated mock provider."""

from connectors_sdk.memstore.connector import (
    MemstoreConnector,
    Registration,
    RegistrationParams,
    RegistrationResult,
    RegistrationStatus,
    SubscribeParams,
    SubscribeRequest,
    SubscribeResult,
    SubscriptionResult,
)
from connectors_sdk.memstore.derive import derive_schema, derive_schemas_from_models
from connectors_sdk.memstore.generator import RecordGenerator
from connectors_sdk.memstore.schema import AssociationSchema, ObjectSchema, SchemaRegistry
from connectors_sdk.memstore.storage import Storage

__all__ = [
    "MemstoreConnector",
    "Registration",
    "RegistrationParams",
    "RegistrationResult",
    "RegistrationStatus",
    "SubscribeParams",
    "SubscribeRequest",
    "SubscribeResult",
    "SubscriptionResult",
    "derive_schema",
    "derive_schemas_from_models",
    "RecordGenerator",
    "AssociationSchema",
    "ObjectSchema",
    "SchemaRegistry",
    "Storage",
]
