"""In-memory connector backed by JSON Schema validated storage.

Implements the same read/write/delete/metadata surface as a real provider
connector, plus subscriptions and random seeding, so adapters and
pipelines can be exercised without network access.

Usage::

    conn = MemstoreConnector({"contact": contact_schema, "account": account_schema})
    await conn.write(WriteParams("account", record_data={"name": "Acme"}))
    result = await conn.read(ReadParams("account", fields=["name"]))
"""

from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel

from connectors_sdk.connector import (
    BatchWriter,
    Connector,
    Deleter,
    MetadataLister,
    Reader,
    Subscriber,
    WebhookVerifier,
    Writer,
)
from connectors_sdk.errors import ConnectorError, MissingObjectsError, NextPageInvalidError
from connectors_sdk.locators import record_id_text
from connectors_sdk.memstore.associations import expand_associations, validate_foreign_keys
from connectors_sdk.memstore.derive import derive_schemas_from_models
from connectors_sdk.memstore.errors import (
    InvalidRegistrationStatusError,
    InvalidRequestTypeError,
    InvalidResultTypeError,
    ObserverNotFoundError,
    RegistrationResultNilError,
    RequestNilError,
    ResultNilError,
    SubscriptionEventsEmptyError,
    SubscriptionNilError,
)
from connectors_sdk.memstore.generator import RecordGenerator, generate_id, generate_timestamp
from connectors_sdk.memstore.schema import FOREIGN_KEY, AssociationSchema, SchemaRegistry, schema_to_object_metadata
from connectors_sdk.memstore.storage import Storage
from connectors_sdk.models import (
    BatchWriteParams,
    BatchWriteResult,
    BatchWriteType,
    DeleteParams,
    DeleteResult,
    ListObjectMetadataResult,
    ReadParams,
    ReadResult,
    ReadResultRow,
    WebhookRequest,
    WriteParams,
    WriteResult,
)
from connectors_sdk.readhelper import extract_lowercase_fields_from_raw
from connectors_sdk.subscription import NotifyCallback, ObjectEvents, SubscriptionContext

logger = logging.getLogger(__name__)

PROVIDER = "memstore"
DEFAULT_PAGE_SIZE = 100


# ---------------------------------------------------------------------------
# Subscription types
# ---------------------------------------------------------------------------

class RegistrationStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class RegistrationParams:
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class Registration:
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class RegistrationResult:
    registration_ref: str = ""
    result: Any = None
    status: RegistrationStatus = RegistrationStatus.SUCCESS


@dataclass
class SubscribeRequest:
    notify: NotifyCallback | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class SubscribeParams:
    request: Any = None
    registration_result: RegistrationResult | None = None
    subscription_events: dict[str, ObjectEvents] = field(default_factory=dict)


@dataclass
class SubscribeResult:
    subscription: SubscriptionContext | None = None


@dataclass
class SubscriptionResult:
    result: Any = None
    object_events: dict[str, ObjectEvents] = field(default_factory=dict)
    status: str = "success"
    objects: list[str] = field(default_factory=list)
    events: list[str] = field(default_factory=list)
    update_fields: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Connector
# ---------------------------------------------------------------------------

class MemstoreConnector(
    Connector, Reader, Writer, BatchWriter, Deleter, MetadataLister, Subscriber, WebhookVerifier
):
    """Schema-validated mock connector.

    Parameters
    ----------
    schemas:
        A :class:`SchemaRegistry`, or raw JSON Schemas (dicts, JSON text or
        bytes) keyed by object name.
    storage:
        Existing storage to share between connectors.  Created when omitted.
    rng:
        Randomness for :meth:`generate_random_record`.
    """

    def __init__(
        self,
        schemas: SchemaRegistry | dict[str, Any],
        *,
        storage: Storage | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.schemas = schemas if isinstance(schemas, SchemaRegistry) else SchemaRegistry.from_raw(schemas)
        self.storage = storage or Storage(self.schemas)
        self.generator = RecordGenerator(self.schemas, rng)

    @classmethod
    def from_models(cls, models: dict[str, type[BaseModel]], **kwargs: Any) -> "MemstoreConnector":
        return cls(derive_schemas_from_models(models), **kwargs)

    def provider(self) -> str:
        return PROVIDER

    def module(self) -> str:
        return ""

    def __repr__(self) -> str:
        return f"MemstoreConnector(objects={self.schemas.names()!r})"

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def _row(
        self,
        record: dict[str, Any],
        id_field: str,
        fields: list[str],
        associations: dict[str, dict[str, Any]],
    ) -> ReadResultRow:
        projected = (
            extract_lowercase_fields_from_raw(fields, record)
            if fields
            else {k.lower(): v for k, v in record.items()}
        )
        record_id = record_id_text(record.get(id_field))
        return ReadResultRow(
            fields=projected,
            raw=record,
            id=record_id,
            associations=associations.get(record_id, {}),
        )

    async def read(self, params: ReadParams) -> ReadResult:
        params.validate(require_fields=False)
        self.schemas.get(params.object_name)

        records = self.storage.list(params.object_name, params.since, params.until)
        offset = 0
        if params.next_page:
            if not params.next_page.isdigit():
                raise NextPageInvalidError(f"invalid next page token: {params.next_page!r}")
            offset = int(params.next_page)
        page_size = params.page_size if params.page_size > 0 else DEFAULT_PAGE_SIZE
        page = records[offset:offset + page_size]
        end = offset + len(page)

        associations = expand_associations(
            self.storage, params.object_name, page, list(params.associated_objects)
        )
        id_field = self.storage.id_field(params.object_name)
        fields = params.fields.list()
        rows = [self._row(r, id_field, fields, associations) for r in page]
        more = end < len(records)
        return ReadResult(rows=len(rows), data=rows, next_page=str(end) if more else "", done=not more)

    async def get_records_by_ids(
        self,
        object_name: str,
        record_ids: list[str],
        fields: list[str] | None = None,
        associated_objects: list[str] | None = None,
    ) -> list[ReadResultRow]:
        """Rows for the ids that exist; unknown ids are skipped."""
        self.schemas.get(object_name)
        records = []
        for record_id in record_ids:
            if self.storage.exists(object_name, record_id):
                records.append(self.storage.get(object_name, record_id))

        associations = expand_associations(self.storage, object_name, records, associated_objects or [])
        id_field = self.storage.id_field(object_name)
        return [self._row(r, id_field, fields or [], associations) for r in records]

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def write(self, params: WriteParams) -> WriteResult:
        params.validate()
        schema = self.schemas.get(params.object_name)
        payload = params.get_record()
        id_field = self.storage.id_field(params.object_name)
        updated_field = schema.updated_field

        if not params.record_id:
            record = dict(payload)
            if record.get(id_field) is None:
                record[id_field] = generate_id(schema.property_type(id_field))
            record_id = record_id_text(record[id_field]) or str(record[id_field])
            if updated_field and updated_field not in record:
                record[updated_field] = generate_timestamp(schema.property_type(updated_field))
            action = "create"
        else:
            record_id = params.record_id
            record = self.storage.get(params.object_name, record_id)
            record.update(payload)
            if updated_field and updated_field not in payload:
                record[updated_field] = generate_timestamp(schema.property_type(updated_field))
            action = "update"

        schema.validate(record)
        validate_foreign_keys(self.storage, params.object_name, record)
        self.storage.store(params.object_name, record_id, record, action)
        return WriteResult(success=True, record_id=record_id, data=self.storage.get(params.object_name, record_id))

    async def batch_write(self, params: BatchWriteParams) -> BatchWriteResult:
        """Write each record independently; failures are collected."""
        params.validate()
        id_field = self.storage.id_field(params.object_name)
        results: list[WriteResult] = []
        errors: list[Any] = []
        for index, item in enumerate(params.batch):
            record_id = ""
            if params.type == BatchWriteType.UPDATE:
                record_id = record_id_text(item.get(id_field))
            try:
                result = await self.write(
                    WriteParams(params.object_name, record_id=record_id, record_data=item, headers=params.headers)
                )
            except ConnectorError as exc:
                logger.debug("Batch item %d for %s failed: %s", index, params.object_name, exc)
                errors.append({"index": index, "error": str(exc)})
                result = WriteResult(success=False, record_id=record_id, errors=[str(exc)])
            results.append(result)
        return BatchWriteResult.from_results(results, errors)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete(self, params: DeleteParams) -> DeleteResult:
        params.validate()
        self.schemas.get(params.object_name)
        self.storage.delete(params.object_name, params.record_id)
        return DeleteResult(success=True)

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    async def list_object_metadata(self, object_names: list[str]) -> ListObjectMetadataResult:
        if not object_names:
            raise MissingObjectsError()
        result = ListObjectMetadataResult()
        for name in object_names:
            try:
                schema = self.schemas.get(name)
            except ConnectorError as exc:
                result.errors[name] = exc
                continue
            result.result[name] = schema_to_object_metadata(schema)
        return result

    def get_associations(self, object_name: str) -> dict[str, AssociationSchema]:
        self.schemas.get(object_name)
        return self.storage.associations().get(object_name, {})

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def register(self, params: RegistrationParams | None) -> RegistrationResult:
        if params is None:
            raise RequestNilError()
        if not isinstance(params, RegistrationParams):
            raise InvalidRequestTypeError()
        return RegistrationResult(
            registration_ref=str(uuid.uuid4()),
            result=Registration(metadata=dict(params.metadata)),
            status=RegistrationStatus.SUCCESS,
        )

    async def delete_registration(self, registration: RegistrationResult) -> None:
        if registration is None or registration.result is None:
            raise ResultNilError()
        if not isinstance(registration.result, Registration):
            raise InvalidResultTypeError()

    def _summary(self, events: dict[str, ObjectEvents]) -> tuple[list[str], list[str], list[str]]:
        objects = list(events)
        kinds = list(dict.fromkeys(e.value for ev in events.values() for e in ev.events))
        update_fields: dict[str, None] = {}
        for name in objects:
            if self.schemas.has(name):
                update_fields.update(dict.fromkeys(schema_to_object_metadata(self.schemas.get(name)).fields))
        return objects, kinds, list(update_fields)

    async def subscribe(self, params: SubscribeParams | None) -> SubscriptionResult:
        if params is None:
            raise RequestNilError()
        registration = params.registration_result
        if registration is None:
            raise RegistrationResultNilError()
        if registration.status != RegistrationStatus.SUCCESS:
            raise InvalidRegistrationStatusError(f"invalid registration status: {registration.status}")
        if registration.result is None:
            raise ResultNilError()
        if not isinstance(registration.result, Registration):
            raise InvalidResultTypeError()
        if not params.subscription_events:
            raise SubscriptionEventsEmptyError()
        if params.request is None:
            raise RequestNilError()
        if not isinstance(params.request, SubscribeRequest):
            raise InvalidRequestTypeError()

        subscription = SubscriptionContext(
            id=str(uuid.uuid4()),
            events=dict(params.subscription_events),
            registration_ref=registration.registration_ref,
            registration_result=registration.result,
            metadata=dict(params.request.metadata),
            notify_callback=params.request.notify,
        )
        self.storage.subscribe(subscription)
        logger.debug("Subscribed %s to %s", subscription.id, list(subscription.events))

        objects, events, update_fields = self._summary(params.subscription_events)
        return SubscriptionResult(
            result=SubscribeResult(subscription=subscription),
            object_events=dict(params.subscription_events),
            status="success",
            objects=objects,
            events=events,
            update_fields=update_fields,
        )

    async def update_subscription(
        self, params: SubscribeParams, previous: SubscriptionResult | None
    ) -> SubscriptionResult:
        """Replace *previous* with a subscription built from *params*."""
        if previous is not None and isinstance(previous.result, SubscribeResult) and previous.result.subscription:
            try:
                self.storage.unsubscribe(previous.result.subscription.id)
            except ObserverNotFoundError:
                logger.debug("Previous subscription %s already removed", previous.result.subscription.id)
        return await self.subscribe(params)

    async def delete_subscription(self, result: SubscriptionResult) -> None:
        if result is None or result.result is None:
            raise ResultNilError()
        if not isinstance(result.result, SubscribeResult):
            raise InvalidResultTypeError()
        if result.result.subscription is None:
            raise SubscriptionNilError()
        self.storage.unsubscribe(result.result.subscription.id)

    async def verify_webhook_message(self, request: WebhookRequest, params: Any = None) -> bool:
        return True

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def generate_random_record(self, object_name: str) -> dict[str, Any]:
        return self.generator.generate(object_name)

    async def seed(self, object_name: str, count: int) -> list[WriteResult]:
        """Write *count* generated records.

        Foreign keys point at a random existing target record, or are left
        out when the target object is empty.
        """
        schema = self.schemas.get(object_name)
        foreign_keys = {
            name: assoc for name, assoc in schema.associations.items() if assoc.association_type == FOREIGN_KEY
        }
        results = []
        for _ in range(count):
            record = self.generate_random_record(object_name)
            for name, assoc in foreign_keys.items():
                targets = self.storage.get_all(assoc.target_object)
                if targets:
                    target = self.generator.rng.choice(targets)
                    record[name] = target[self.storage.id_field(assoc.target_object)]
                else:
                    record.pop(name, None)
            results.append(await self.write(WriteParams(object_name, record_data=record)))
        logger.info("Seeded %d %s records", count, object_name)
        return results

    def reset(self) -> None:
        """Drop every record and subscription; schemas survive."""
        self.storage.reset()
