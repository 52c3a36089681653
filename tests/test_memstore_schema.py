"""Tests for memstore schemas, record generation and model-derived schemas."""

import json
import random
from typing import Optional

import pytest
from pydantic import BaseModel, Field

from connectors_sdk.memstore import MemstoreConnector, RecordGenerator, SchemaRegistry
from connectors_sdk.memstore.derive import DRAFT_2020_12, derive_schema, derive_schemas_from_models
from connectors_sdk.memstore.errors import (
    EmptySchemasError,
    InvalidSchemaError,
    SchemaNotFoundError,
    UniqueConstraintError,
)
from connectors_sdk.memstore.schema import extract_special_fields, is_true_value
from connectors_sdk.models import WriteParams


class TestSpecialFields:
    def test_string_truthiness(self):
        assert is_true_value(True)
        assert is_true_value(" true ")
        assert is_true_value("TRUE")
        assert not is_true_value("yes")
        assert not is_true_value(1)

    def test_extract(self):
        raw = {
            "properties": {
                "uid": {"type": "string", "x-amp-id-field": "true"},
                "modified": {"type": "integer", "x-amp-updated-field": True},
                "owner": {"type": "string", "x-amp-association": {"associationType": "foreignKey", "targetObject": "user"}},
                "broken": {"type": "string", "x-amp-association": {"associationType": "foreignKey"}},
            }
        }
        id_field, updated_field, associations = extract_special_fields(raw)
        assert (id_field, updated_field) == ("uid", "modified")
        assert list(associations) == ["owner"]
        assert associations["owner"].to_dict() == {"associationType": "foreignKey", "targetObject": "user"}


class TestRegistry:
    def test_load_yaml(self, tmp_path):
        import yaml

        path = tmp_path / "schemas.yaml"
        path.write_text(yaml.safe_dump({"note": {"type": "object", "properties": {"id": {"type": "string"}}}}))
        registry = SchemaRegistry.load(path)
        assert registry.has("note")
        assert len(registry) == 1

    def test_load_json(self, tmp_path, schemas):
        path = tmp_path / "schemas.json"
        path.write_text(json.dumps(schemas))
        assert SchemaRegistry.load(path).names() == sorted(schemas)

    def test_missing_schema(self, schemas):
        with pytest.raises(SchemaNotFoundError, match="widget"):
            SchemaRegistry.from_raw(schemas).get("widget")

    def test_invalid_json(self):
        with pytest.raises(InvalidSchemaError):
            SchemaRegistry.from_raw({"bad": "{not json"})


CONSTRAINED = {
    "item": {
        "type": "object",
        "properties": {
            "id": {"type": "integer", "x-amp-id-field": True},
            "updated": {"type": "integer", "x-amp-updated-field": True},
            "sku": {"type": "string", "pattern": "^[A-Z]{3}-[0-9]{4}$"},
            "code": {"type": "string", "minLength": 8, "maxLength": 8},
            "email": {"type": "string", "format": "email"},
            "quantity": {"type": "integer", "minimum": 10, "maximum": 100, "multipleOf": 5},
            "price": {"type": "number", "exclusiveMinimum": 0, "maximum": 10, "multipleOf": 0.5},
            "colours": {
                "type": "array",
                "items": {"type": "string", "enum": ["red", "green", "blue"]},
                "minItems": 2,
                "maxItems": 3,
                "uniqueItems": True,
            },
            "dimensions": {
                "type": "object",
                "properties": {"width": {"type": "number", "minimum": 0}, "unit": {"type": "string", "enum": ["cm"]}},
                "required": ["width", "unit"],
            },
            "active": {"type": "boolean"},
        },
        "required": ["sku", "code", "quantity"],
    },
}


class TestGenerator:
    @pytest.fixture
    def generator(self):
        return RecordGenerator(SchemaRegistry.from_raw(CONSTRAINED), random.Random(42))

    def test_constraints(self, generator):
        for _ in range(20):
            record = generator.generate("item")
            assert isinstance(record["id"], int)
            assert isinstance(record["updated"], int)
            assert len(record["sku"]) == 8 and record["sku"][3] == "-"
            assert len(record["code"]) == 8
            assert "@" in record["email"]
            assert 10 <= record["quantity"] <= 100 and record["quantity"] % 5 == 0
            assert 0 < record["price"] <= 10
            assert 2 <= len(record["colours"]) <= 3
            assert len(set(record["colours"])) == len(record["colours"])
            assert record["dimensions"]["unit"] == "cm"
            assert isinstance(record["active"], bool)

    def test_reproducible_with_seeded_rng(self):
        registry = SchemaRegistry.from_raw(CONSTRAINED)
        a = RecordGenerator(registry, random.Random(7)).generate("item")
        b = RecordGenerator(registry, random.Random(7)).generate("item")
        assert {k: v for k, v in a.items() if k not in ("id", "updated")} == {
            k: v for k, v in b.items() if k not in ("id", "updated")
        }

    def test_unsatisfiable_unique_items(self):
        schema = {
            "pair": {
                "type": "object",
                "properties": {
                    "flags": {
                        "type": "array",
                        "items": {"enum": ["on", "off"]},
                        "minItems": 3,
                        "uniqueItems": True,
                    }
                },
            }
        }
        with pytest.raises(UniqueConstraintError, match="minItems"):
            RecordGenerator(SchemaRegistry.from_raw(schema)).generate("pair")

    def test_recursive_schema_terminates(self):
        node = {"type": "object", "properties": {"name": {"type": "string"}}}
        current = node
        for _ in range(8):
            child = {"type": "object", "properties": {"name": {"type": "string"}}}
            current["properties"]["child"] = child
            current = child
        schema = {"tree": {"type": "object", "properties": {"root": node}}}
        record = RecordGenerator(SchemaRegistry.from_raw(schema), random.Random(1)).generate("tree")
        depth, current = 0, record["root"]
        while isinstance(current, dict) and "child" in current:
            current = current["child"]
            depth += 1
        assert depth < 8


class Account(BaseModel):
    id: str = Field(json_schema_extra={"x-amp-id-field": True})
    name: str
    seats: int = 1


class Contact(BaseModel):
    id: str = Field(json_schema_extra={"x-amp-id-field": True})
    name: str
    account_id: Optional[str] = Field(
        None,
        json_schema_extra={"x-amp-association": {"associationType": "foreignKey", "targetObject": "account"}},
    )


class TestDerive:
    def test_derive_schema(self):
        schema = derive_schema("account", Account)
        assert schema["$schema"] == DRAFT_2020_12
        assert schema["type"] == "object"
        assert "additionalProperties" not in schema
        assert schema["properties"]["id"]["x-amp-id-field"] is True

    def test_not_a_model(self):
        with pytest.raises(InvalidSchemaError):
            derive_schema("account", dict)

    def test_empty(self):
        with pytest.raises(EmptySchemasError):
            derive_schemas_from_models({})

    def test_connector_from_models(self):
        conn = MemstoreConnector.from_models({"account": Account, "contact": Contact})
        assert conn.get_associations("contact")["account_id"].target_object == "account"

        import asyncio

        result = asyncio.run(conn.write(WriteParams("account", record_data={"name": "Acme"})))
        assert conn.storage.get("account", result.record_id)["name"] == "Acme"
