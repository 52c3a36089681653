"""Tests for the in-memory connector: CRUD, associations, pagination, subscriptions."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from connectors_sdk.connector import BatchWriter, Subscriber, WebhookVerifier, supports
from connectors_sdk.errors import MissingParameterError, MissingRecordDataError, NextPageInvalidError
from connectors_sdk.memstore import (
    MemstoreConnector,
    RegistrationParams,
    RegistrationResult,
    RegistrationStatus,
    SubscribeParams,
    SubscribeRequest,
    SubscriptionResult,
)
from connectors_sdk.memstore.errors import (
    EmptySchemasError,
    InvalidAssociationError,
    InvalidForeignKeyError,
    InvalidRegistrationStatusError,
    InvalidRequestTypeError,
    InvalidSchemaError,
    RecordNotFoundError,
    RegistrationResultNilError,
    RequestNilError,
    SchemaNotFoundError,
    SubscriptionEventsEmptyError,
    ValidationFailedError,
)
from connectors_sdk.models import (
    BatchStatus,
    BatchWriteParams,
    BatchWriteType,
    DeleteParams,
    ReadParams,
    ValueType,
    WriteParams,
)
from connectors_sdk.subscription import EventType, ObjectEvents, SubscriptionContext


def write(conn, object_name, data, record_id=""):
    return asyncio.run(conn.write(WriteParams(object_name, record_id=record_id, record_data=data)))


def read(conn, object_name, **kwargs):
    return asyncio.run(conn.read(ReadParams(object_name, **kwargs)))


class TestConstruction:
    def test_empty_schemas(self):
        with pytest.raises(EmptySchemasError):
            MemstoreConnector({})

    def test_invalid_schema(self):
        with pytest.raises(InvalidSchemaError):
            MemstoreConnector({"thing": {"type": "object", "properties": {"n": {"type": 12}}}})

    def test_schema_from_json_text(self):
        conn = MemstoreConnector({"note": '{"type": "object", "properties": {"id": {"type": "string"}}}'})
        assert conn.schemas.names() == ["note"]

    def test_capabilities(self, memstore):
        assert memstore.provider() == "memstore"
        assert supports(memstore, Subscriber)
        assert supports(memstore, BatchWriter)
        assert supports(memstore, WebhookVerifier)


class TestWrite:
    def test_create_generates_id_and_timestamp(self, memstore):
        result = write(memstore, "account", {"name": "Acme"})
        assert result.success
        assert result.record_id
        assert result.data["id"] == result.record_id
        assert result.data["updated_at"].endswith("Z")

    def test_round_trip_adds_only_id_and_updated(self, memstore):
        write(memstore, "account", {"id": "acc-1", "name": "Acme", "tier": "pro"})
        stored = memstore.storage.get("account", "acc-1")
        assert set(stored) == {"id", "name", "tier", "updated_at"}

    def test_caller_payload_not_mutated(self, memstore):
        payload = {"name": "Acme"}
        write(memstore, "account", payload)
        assert payload == {"name": "Acme"}

    def test_update_merges(self, memstore):
        write(memstore, "account", {"id": "acc-1", "name": "Acme", "tier": "free"})
        result = write(memstore, "account", {"tier": "pro"}, record_id="acc-1")
        assert result.data["name"] == "Acme"
        assert result.data["tier"] == "pro"

    def test_update_missing_record(self, memstore):
        with pytest.raises(RecordNotFoundError):
            write(memstore, "account", {"tier": "pro"}, record_id="nope")

    def test_validation_failure(self, memstore):
        with pytest.raises(ValidationFailedError) as exc_info:
            write(memstore, "account", {"name": "Acme", "tier": "platinum"})
        assert any("tier" in e for e in exc_info.value.errors)
        assert memstore.storage.count("account") == 0

    def test_empty_data_without_id(self, memstore):
        with pytest.raises(MissingParameterError):
            write(memstore, "account", {})
        assert issubclass(MissingRecordDataError, MissingParameterError)

    def test_unknown_object(self, memstore):
        with pytest.raises(SchemaNotFoundError):
            write(memstore, "widget", {"name": "x"})

    def test_invalid_foreign_key_not_stored(self, memstore):
        with pytest.raises(InvalidForeignKeyError):
            write(memstore, "contact", {"name": "X", "account_id": "acc-99"})
        assert memstore.storage.count("contact") == 0

    def test_batch_write_partial(self, memstore):
        params = BatchWriteParams(
            "account", BatchWriteType.CREATE, batch=[{"name": "A"}, {"tier": "nope"}, {"name": "C"}]
        )
        result = asyncio.run(memstore.batch_write(params))
        assert result.status == BatchStatus.PARTIAL
        assert result.success_count == 2
        assert result.failure_count == 1
        assert result.errors[0]["index"] == 1


class TestDelete:
    def test_delete_twice(self, memstore):
        write(memstore, "account", {"id": "acc-1", "name": "Acme"})
        assert asyncio.run(memstore.delete(DeleteParams("account", record_id="acc-1"))).success
        with pytest.raises(RecordNotFoundError):
            asyncio.run(memstore.delete(DeleteParams("account", record_id="acc-1")))


class TestRead:
    def test_zero_records(self, memstore):
        result = read(memstore, "account")
        assert (result.rows, result.done, result.next_page) == (0, True, "")

    def test_pagination(self, memstore):
        for i in range(5):
            write(memstore, "account", {"id": f"acc-{i}", "name": f"A{i}"})

        first = read(memstore, "account", fields=["name"], page_size=2)
        assert [row.id for row in first.data] == ["acc-0", "acc-1"]
        assert first.data[0].fields == {"name": "A0"}
        assert first.next_page == "2"

        last = read(memstore, "account", page_size=2, next_page="4")
        assert last.rows == 1
        assert last.done

    def test_invalid_page_token(self, memstore):
        with pytest.raises(NextPageInvalidError):
            read(memstore, "account", next_page="abc")

    def test_time_window(self, memstore):
        now = datetime.now(timezone.utc).replace(microsecond=0)
        stamps = {"old": now - timedelta(days=3), "mid": now - timedelta(days=1), "new": now}
        for record_id, ts in stamps.items():
            write(memstore, "account", {"id": record_id, "name": record_id, "updated_at": ts.strftime("%Y-%m-%dT%H:%M:%SZ")})

        result = read(memstore, "account", since=now - timedelta(days=1), until=now - timedelta(hours=1))
        assert [row.id for row in result.data] == ["mid"]

    def test_foreign_key_expansion(self, memstore):
        write(memstore, "account", {"id": "acc-1", "name": "Acme"})
        write(memstore, "contact", {"id": "cont-1", "account_id": "acc-1"})

        result = read(memstore, "contact", fields=["id", "name", "account_id"], associated_objects=["account_id"])

        assert result.rows == 1
        association = result.data[0].associations["account_id"][0]
        assert association.object_id == "acc-1"
        assert association.raw["name"] == "Acme"

    def test_reverse_lookup(self, memstore):
        write(memstore, "opportunity", {"id": "opp-1"})
        write(memstore, "opportunityContact", {"opportunity_id": "opp-1", "contact_id": "c1"})
        write(memstore, "opportunityContact", {"opportunity_id": "opp-1", "contact_id": "c2"})

        result = read(memstore, "opportunity", associated_objects=["contacts"])

        associations = result.data[0].associations["contacts"]
        assert len(associations) == 2
        assert {a.raw["contact_id"] for a in associations} == {"c1", "c2"}

    def test_junction(self, memstore):
        write(memstore, "contact", {"id": "c1", "name": "Ada"})
        write(memstore, "contact", {"id": "c2", "name": "Grace"})
        write(memstore, "opportunity", {"id": "opp-1"})
        write(memstore, "opportunity", {"id": "opp-2"})
        write(memstore, "opportunityContact", {"opportunity_id": "opp-1", "contact_id": "c1"})
        write(memstore, "opportunityContact", {"opportunity_id": "opp-1", "contact_id": "c-gone"})
        write(memstore, "opportunityContact", {"opportunity_id": "opp-2", "contact_id": "c2"})

        result = read(memstore, "opportunity", associated_objects=["buyers"])

        by_id = {row.id: row.associations for row in result.data}
        assert [a.object_id for a in by_id["opp-1"]["buyers"]] == ["c1"]
        assert by_id["opp-1"]["buyers"][0].raw["name"] == "Ada"
        assert [a.object_id for a in by_id["opp-2"]["buyers"]] == ["c2"]

    @pytest.mark.parametrize(
        "association",
        [
            {"associationType": "reverseLookup", "targetObject": "line"},
            {"associationType": "junction", "targetObject": "line", "junctionObject": "orderLine"},
        ],
    )
    def test_incomplete_association(self, association):
        schemas = {
            "order": {
                "type": "object",
                "properties": {"id": {"type": "string", "x-amp-id-field": True}, "lines": {"x-amp-association": association}},
            },
            "line": {"type": "object", "properties": {"id": {"type": "string", "x-amp-id-field": True}}},
            "orderLine": {"type": "object", "properties": {"id": {"type": "string", "x-amp-id-field": True}}},
        }
        conn = MemstoreConnector(schemas)
        write(conn, "order", {"id": "o1"})
        with pytest.raises(InvalidAssociationError, match="invalid association definition"):
            read(conn, "order", associated_objects=["lines"])

    def test_missing_target_skipped(self, memstore):
        write(memstore, "account", {"id": "acc-1", "name": "Acme"})
        write(memstore, "contact", {"id": "cont-1", "account_id": "acc-1"})
        memstore.storage.delete("account", "acc-1")
        result = read(memstore, "contact", associated_objects=["account"])
        assert result.data[0].associations == {}

    def test_get_records_by_ids(self, memstore):
        write(memstore, "account", {"id": "acc-1", "name": "Acme", "Region": "EU"})
        rows = asyncio.run(memstore.get_records_by_ids("account", ["acc-1", "missing"], fields=["NAME", "region"]))
        assert [r.id for r in rows] == ["acc-1"]
        assert rows[0].fields == {"name": "Acme", "region": "EU"}

        [row] = asyncio.run(memstore.get_records_by_ids("account", ["acc-1"]))
        assert row.fields["region"] == "EU"
        assert "Region" in row.raw
        assert row.fields is not row.raw


class TestMetadata:
    def test_object_metadata(self, memstore):
        result = asyncio.run(memstore.list_object_metadata(["account", "widget"]))
        account = result.result["account"]
        assert account.display_name == "Account"
        assert account.fields["name"].display_name == "Account Name"
        assert account.fields["name"].is_required
        assert account.fields["tier"].value_type == ValueType.SINGLE_SELECT
        assert [v.value for v in account.fields["tier"].values] == ["free", "pro", "enterprise"]
        assert account.fields["updated_at"].value_type == ValueType.DATETIME
        assert account.fields["employees"].value_type == ValueType.INT
        assert isinstance(result.errors["widget"], SchemaNotFoundError)

    def test_associations(self, memstore):
        assocs = memstore.get_associations("contact")
        assert assocs["account_id"].target_object == "account"
        assert memstore.get_associations("account") == {}


class TestSeed:
    def test_generate_random_record_is_valid(self, memstore):
        record = memstore.generate_random_record("account")
        memstore.schemas.get("account").validate(record)
        assert record["tier"] in ("free", "pro", "enterprise")
        assert 1 <= record["employees"] <= 5000

    def test_seed_links_existing_targets(self, memstore):
        accounts = asyncio.run(memstore.seed("account", 2))
        contacts = asyncio.run(memstore.seed("contact", 5))
        account_ids = {r.record_id for r in accounts}
        assert len(contacts) == 5
        for contact in memstore.storage.get_all("contact"):
            assert contact["account_id"] in account_ids

    def test_seed_drops_dangling_foreign_keys(self, memstore):
        asyncio.run(memstore.seed("contact", 3))
        assert all("account_id" not in c for c in memstore.storage.get_all("contact"))

    def test_reset(self, memstore):
        asyncio.run(memstore.seed("account", 3))
        memstore.storage.subscribe(SubscriptionContext(id="sub-1", events={}))
        memstore.reset()
        assert memstore.storage.count("account") == 0
        assert len(memstore.storage.observers) == 0
        assert memstore.schemas.has("account")


class TestSubscriptions:
    def registration(self, memstore):
        return asyncio.run(memstore.register(RegistrationParams(metadata={"team": "sales"})))

    def test_register(self, memstore):
        registration = self.registration(memstore)
        assert registration.status == RegistrationStatus.SUCCESS
        assert registration.registration_ref

    def test_subscribe_validation_order(self, memstore):
        registration = self.registration(memstore)
        with pytest.raises(RequestNilError):
            asyncio.run(memstore.subscribe(None))
        with pytest.raises(RegistrationResultNilError):
            asyncio.run(memstore.subscribe(SubscribeParams(request=SubscribeRequest())))
        with pytest.raises(InvalidRegistrationStatusError):
            failed = RegistrationResult(result=registration.result, status=RegistrationStatus.FAILED)
            asyncio.run(memstore.subscribe(SubscribeParams(request=SubscribeRequest(), registration_result=failed)))
        with pytest.raises(SubscriptionEventsEmptyError):
            asyncio.run(
                memstore.subscribe(SubscribeParams(request=SubscribeRequest(), registration_result=registration))
            )
        with pytest.raises(InvalidRequestTypeError):
            asyncio.run(
                memstore.subscribe(
                    SubscribeParams(
                        request={"notify": None},
                        registration_result=registration,
                        subscription_events={"account": ObjectEvents([EventType.CREATE])},
                    )
                )
            )

    def test_events_flow(self, memstore):
        received = []

        def notify(sub, action, object_name, record_id, record):
            received.append((action, record_id, record.get("name")))

        async def scenario():
            registration = await memstore.register(RegistrationParams())
            result = await memstore.subscribe(
                SubscribeParams(
                    request=SubscribeRequest(notify=notify),
                    registration_result=registration,
                    subscription_events={
                        "account": ObjectEvents(
                            [EventType.CREATE, EventType.UPDATE, EventType.DELETE], watch_fields=["name"]
                        )
                    },
                )
            )
            await memstore.write(WriteParams("account", record_data={"id": "acc-1", "name": "Acme"}))
            await memstore.write(WriteParams("account", record_id="acc-1", record_data={"website": "acme.io"}))
            await memstore.write(WriteParams("account", record_id="acc-1", record_data={"name": "Acme Inc"}))
            await memstore.delete(DeleteParams("account", record_id="acc-1"))
            await memstore.storage.observers.wait_idle()
            return result

        result = asyncio.run(scenario())
        assert isinstance(result, SubscriptionResult)
        assert result.objects == ["account"]
        assert result.events == ["create", "update", "delete"]
        assert "name" in result.update_fields
        assert received == [
            ("create:account", "acc-1", "Acme"),
            ("update:account", "acc-1", "Acme Inc"),
            ("delete:account", "acc-1", "Acme Inc"),
        ]

    def test_create_over_existing_id_reports_update(self, memstore):
        received = []

        def notify(sub, action, object_name, record_id, record):
            received.append((action, record_id, record.get("name")))

        async def scenario():
            registration = await memstore.register(RegistrationParams())
            await memstore.subscribe(
                SubscribeParams(
                    request=SubscribeRequest(notify=notify),
                    registration_result=registration,
                    subscription_events={"account": ObjectEvents([EventType.CREATE, EventType.UPDATE], watch_fields_all=True)},
                )
            )
            await memstore.write(WriteParams("account", record_data={"id": "acc-1", "name": "Acme"}))
            await memstore.write(WriteParams("account", record_data={"id": "acc-1", "name": "Acme Two"}))
            await memstore.storage.observers.wait_idle()

        asyncio.run(scenario())
        assert received == [
            ("create:account", "acc-1", "Acme"),
            ("update:account", "acc-1", "Acme Two"),
        ]
        assert memstore.storage.count("account") == 1

    def test_unsubscribe_restores_count(self, memstore):
        registration = self.registration(memstore)
        before = len(memstore.storage.observers)
        result = asyncio.run(
            memstore.subscribe(
                SubscribeParams(
                    request=SubscribeRequest(),
                    registration_result=registration,
                    subscription_events={"account": ObjectEvents([EventType.CREATE])},
                )
            )
        )
        assert len(memstore.storage.observers) == before + 1
        asyncio.run(memstore.delete_subscription(result))
        assert len(memstore.storage.observers) == before

    def test_update_subscription_replaces_previous(self, memstore):
        registration = self.registration(memstore)
        params = SubscribeParams(
            request=SubscribeRequest(),
            registration_result=registration,
            subscription_events={"account": ObjectEvents([EventType.CREATE])},
        )
        first = asyncio.run(memstore.subscribe(params))
        second = asyncio.run(memstore.update_subscription(params, first))
        ids = [s.id for s in memstore.storage.observers.list()]
        assert ids == [second.result.subscription.id]

    def test_delete_registration(self, memstore):
        registration = self.registration(memstore)
        asyncio.run(memstore.delete_registration(registration))
