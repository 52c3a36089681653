"""Derive memstore schemas from pydantic models.

Memstore extensions are declared with ``json_schema_extra``::

    class Contact(BaseModel):
        id: str = Field(json_schema_extra={"x-amp-id-field": True})
        updated_at: datetime | None = Field(None, json_schema_extra={"x-amp-updated-field": True})
        account_id: str | None = Field(None, json_schema_extra={
            "x-amp-association": {"associationType": "foreignKey", "targetObject": "account"},
        })
        name: str

    schemas = derive_schemas_from_models({"contact": Contact})
    connector = MemstoreConnector(schemas)
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from connectors_sdk.memstore.errors import EmptySchemasError, InvalidSchemaError

DRAFT_2020_12 = "https://json-schema.org/draft/2020-12/schema"


def _resolve_root(object_name: str, schema: dict[str, Any]) -> dict[str, Any]:
    ref = schema.get("$ref")
    if not isinstance(ref, str):
        return schema
    parts = ref.split("/")
    if len(parts) != 3 or parts[:2] != ["#", "$defs"]:
        raise InvalidSchemaError(f"object {object_name}: invalid $ref format: {ref}")
    definition = schema.get("$defs", {}).get(parts[2])
    if not isinstance(definition, dict):
        raise InvalidSchemaError(f"object {object_name}: $ref points to non-existent definition {parts[2]}")
    resolved = dict(definition)
    # Keep the other definitions reachable for nested references.
    others = {k: v for k, v in schema["$defs"].items() if k != parts[2]}
    if others:
        resolved["$defs"] = others
    return resolved


def derive_schema(object_name: str, model: type[BaseModel]) -> dict[str, Any]:
    if not (isinstance(model, type) and issubclass(model, BaseModel)):
        raise InvalidSchemaError(f"object {object_name}: expected a pydantic model class, got {model!r}")
    schema = _resolve_root(object_name, model.model_json_schema())
    if "properties" not in schema:
        raise InvalidSchemaError(f"object {object_name}: schema missing required field 'properties'")
    schema.pop("additionalProperties", None)
    schema.setdefault("type", "object")
    schema["$schema"] = DRAFT_2020_12
    return schema


def derive_schemas_from_models(models: dict[str, type[BaseModel]]) -> dict[str, dict[str, Any]]:
    """Object name -> JSON Schema for each pydantic model."""
    if not models:
        raise EmptySchemasError()
    return {name: derive_schema(name, model) for name, model in models.items()}
