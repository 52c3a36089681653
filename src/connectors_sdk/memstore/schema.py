"""JSON Schema registry for memstore objects.

Each object is described by a Draft 2020-12 schema.  Three extensions on
property nodes carry memstore metadata:

``x-amp-id-field``
    The property holding the record id.
``x-amp-updated-field``
    The property stamped with the modification time on every write.
``x-amp-association``
    ``{associationType, targetObject, targetField, foreignKeyField,
    junctionObject, junctionFromField, junctionToField}``.

Usage::

    registry = SchemaRegistry.from_raw({"contact": contact_schema})
    registry.get("contact").validate({"name": "Ada"})
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml

from connectors_sdk.memstore.errors import (
    EmptySchemasError,
    InvalidSchemaError,
    SchemaNotFoundError,
    ValidationFailedError,
)
from connectors_sdk.models import FieldMetadata, FieldValue, ObjectMetadata, ValueType

logger = logging.getLogger(__name__)

ID_FIELD_EXTENSION = "x-amp-id-field"
UPDATED_FIELD_EXTENSION = "x-amp-updated-field"
ASSOCIATION_EXTENSION = "x-amp-association"

FOREIGN_KEY = "foreignKey"
REVERSE_LOOKUP = "reverseLookup"
JUNCTION = "junction"


@dataclass
class AssociationSchema:
    association_type: str
    target_object: str
    target_field: str = ""
    foreign_key_field: str = ""
    junction_object: str = ""
    junction_from_field: str = ""
    junction_to_field: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AssociationSchema":
        def text(key: str) -> str:
            value = data.get(key)
            return value if isinstance(value, str) else ""

        return cls(
            association_type=text("associationType"),
            target_object=text("targetObject"),
            target_field=text("targetField"),
            foreign_key_field=text("foreignKeyField"),
            junction_object=text("junctionObject"),
            junction_from_field=text("junctionFromField"),
            junction_to_field=text("junctionToField"),
        )

    def to_dict(self) -> dict[str, Any]:
        out = {
            "associationType": self.association_type,
            "targetObject": self.target_object,
            "targetField": self.target_field,
            "foreignKeyField": self.foreign_key_field,
            "junctionObject": self.junction_object,
            "junctionFromField": self.junction_from_field,
            "junctionToField": self.junction_to_field,
        }
        return {k: v for k, v in out.items() if v}


def is_true_value(value: Any) -> bool:
    """``True`` or a string spelling true (``"true"``, ``"TRUE"``, ``"True"``)."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return "".join(value.split()) in ("true", "TRUE", "True")
    return False


def extract_special_fields(raw: dict[str, Any]) -> tuple[str, str, dict[str, AssociationSchema]]:
    """Return ``(id_field, updated_field, associations)`` from schema extensions."""
    id_field = ""
    updated_field = ""
    associations: dict[str, AssociationSchema] = {}
    properties = raw.get("properties")
    if not isinstance(properties, dict):
        return id_field, updated_field, associations

    for name, definition in properties.items():
        if not isinstance(definition, dict):
            continue
        if is_true_value(definition.get(ID_FIELD_EXTENSION)):
            id_field = name
        if is_true_value(definition.get(UPDATED_FIELD_EXTENSION)):
            updated_field = name
        assoc = definition.get(ASSOCIATION_EXTENSION)
        if isinstance(assoc, dict):
            parsed = AssociationSchema.from_dict(assoc)
            # Incomplete declarations are ignored.
            if parsed.association_type and parsed.target_object:
                associations[name] = parsed
    return id_field, updated_field, associations


@dataclass
class ObjectSchema:
    """A compiled object schema plus its memstore metadata."""

    name: str
    raw: dict[str, Any]
    validator: jsonschema.Draft202012Validator
    id_field: str = ""
    updated_field: str = ""
    associations: dict[str, AssociationSchema] = field(default_factory=dict)

    @classmethod
    def compile(cls, name: str, raw: dict[str, Any] | bytes | str) -> "ObjectSchema":
        if isinstance(raw, (bytes, str)):
            try:
                raw = json.loads(raw)
            except ValueError as exc:
                raise InvalidSchemaError(f"invalid schema for {name}: {exc}") from exc
        if not isinstance(raw, dict):
            raise InvalidSchemaError(f"invalid schema for {name}: expected a JSON object")
        try:
            jsonschema.Draft202012Validator.check_schema(raw)
        except jsonschema.SchemaError as exc:
            raise InvalidSchemaError(f"invalid schema for {name}: {exc.message}") from exc

        validator = jsonschema.Draft202012Validator(
            raw, format_checker=jsonschema.Draft202012Validator.FORMAT_CHECKER
        )
        id_field, updated_field, associations = extract_special_fields(raw)
        return cls(
            name=name,
            raw=raw,
            validator=validator,
            id_field=id_field,
            updated_field=updated_field,
            associations=associations,
        )

    @property
    def properties(self) -> dict[str, Any]:
        props = self.raw.get("properties")
        return props if isinstance(props, dict) else {}

    def property_type(self, name: str) -> str:
        definition = self.properties.get(name)
        if isinstance(definition, dict) and isinstance(definition.get("type"), str):
            return definition["type"]
        return ""

    def errors(self, record: dict[str, Any]) -> list[str]:
        found = sorted(self.validator.iter_errors(record), key=lambda e: list(e.path))
        return [
            f"{'/'.join(str(p) for p in err.path) or '<root>'}: {err.message}"
            for err in found
        ]

    def validate(self, record: dict[str, Any]) -> None:
        errors = self.errors(record)
        if errors:
            raise ValidationFailedError(errors=errors)


class SchemaRegistry:
    """Compiled schemas by object name.  Immutable after construction."""

    def __init__(self, schemas: dict[str, ObjectSchema]) -> None:
        self._schemas = dict(schemas)

    @classmethod
    def from_raw(cls, raw_schemas: dict[str, Any]) -> "SchemaRegistry":
        if not raw_schemas:
            raise EmptySchemasError()
        compiled = {name: ObjectSchema.compile(name, raw) for name, raw in raw_schemas.items()}
        logger.debug("Compiled %d memstore schemas", len(compiled))
        return cls(compiled)

    @classmethod
    def load(cls, path: str | Path) -> "SchemaRegistry":
        """Load ``{object: schema}`` from a ``.json``, ``.yaml`` or ``.yml`` file."""
        path = Path(path)
        text = path.read_text(encoding="utf-8")
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
        if not isinstance(data, dict):
            raise InvalidSchemaError(f"{path}: expected a mapping of object name to schema")
        return cls.from_raw(data)

    def get(self, name: str) -> ObjectSchema:
        try:
            return self._schemas[name]
        except KeyError:
            raise SchemaNotFoundError(f"schema not found for object {name!r}") from None

    def has(self, name: str) -> bool:
        return name in self._schemas

    def names(self) -> list[str]:
        return sorted(self._schemas)

    def __iter__(self):
        return iter(self._schemas.values())

    def __len__(self) -> int:
        return len(self._schemas)


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------

_TYPE_MAP = {
    "string": ValueType.STRING,
    "number": ValueType.FLOAT,
    "integer": ValueType.INT,
    "boolean": ValueType.BOOLEAN,
    "array": ValueType.OTHER,
    "object": ValueType.OTHER,
}

_FORMAT_MAP = {
    "date": ValueType.DATE,
    "date-time": ValueType.DATETIME,
}


def schema_to_object_metadata(schema: ObjectSchema) -> ObjectMetadata:
    """Describe an object's fields from its schema.

    Association declarations are not reflected here; they are exposed by
    ``MemstoreConnector.get_associations``.
    """
    title = schema.raw.get("title")
    metadata = ObjectMetadata(display_name=title if isinstance(title, str) and title else schema.name)
    required = {r for r in schema.raw.get("required", []) if isinstance(r, str)}

    for name, definition in schema.properties.items():
        if not isinstance(definition, dict):
            continue
        json_type = definition.get("type") if isinstance(definition.get("type"), str) else ""
        value_type = _TYPE_MAP.get(json_type, ValueType.STRING) if json_type else ValueType.OTHER
        value_type = _FORMAT_MAP.get(definition.get("format"), value_type)

        values = [FieldValue(str(v), str(v)) for v in definition.get("enum") or []]
        if values:
            value_type = ValueType.SINGLE_SELECT

        field_title = definition.get("title")
        metadata.add_field(
            name,
            FieldMetadata(
                display_name=field_title if isinstance(field_title, str) and field_title else name,
                value_type=value_type,
                provider_type=json_type,
                read_only=definition.get("readOnly") is True,
                is_required=name in required,
                is_custom=False,
                values=values,
            ),
        )
    return metadata
