"""Data model shared by connectors: operation params, results and metadata.

Records are plain ``dict[str, Any]`` values.  Parameters are dataclasses so
adapters can construct them positionally or by keyword, and every result
type offers ``to_dict`` for JSON output (camelCase keys, like providers).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

import httpx

from connectors_sdk.datautils import Set, to_json_map
from connectors_sdk.errors import (
    ConnectorError,
    MissingAuthClientError,
    MissingFieldsError,
    MissingMetadataError,
    MissingModuleError,
    MissingObjectsError,
    MissingRecordDataError,
    MissingRecordIdError,
    MissingWorkspaceError,
    ParameterValidationError,
    RecordDataNotJSONError,
    UnsupportedModuleError,
)

Record = dict[str, Any]

ROOT_MODULE_ID = "root"


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------

@dataclass
class ReadParams:
    """What to read from a provider.

    ``since`` fetches records updated after that time, ``until`` up to and
    including it.  ``next_page`` is the opaque token from a previous
    :class:`ReadResult`, passed back verbatim.
    """

    object_name: str
    fields: Set[str] = field(default_factory=Set)
    since: datetime | None = None
    until: datetime | None = None
    next_page: str = ""
    page_size: int = 0
    deleted: bool = False
    filter: str = ""
    associated_objects: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not isinstance(self.fields, Set):
            self.fields = Set(self.fields)

    def validate(self, require_fields: bool = True) -> None:
        if not self.object_name:
            raise MissingObjectsError()
        if require_fields and self.fields.is_empty():
            raise MissingFieldsError()


@dataclass
class Association:
    """Edge from a read row to one associated record."""

    object_id: str
    raw: Record | None = None
    association_type: str = ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"objectId": self.object_id}
        if self.association_type:
            out["associationType"] = self.association_type
        if self.raw is not None:
            out["raw"] = self.raw
        return out


@dataclass
class ReadResultRow:
    """One record: lowercase projected ``fields`` plus the ``raw`` payload."""

    fields: dict[str, Any] = field(default_factory=dict)
    raw: Record = field(default_factory=dict)
    id: str = ""
    associations: dict[str, list[Association]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"fields": self.fields, "raw": self.raw}
        if self.id:
            out["id"] = self.id
        if self.associations:
            out["associations"] = {
                name: [a.to_dict() for a in assocs] for name, assocs in self.associations.items()
            }
        return out


@dataclass
class ReadResult:
    """A single page of read results.  ``done`` iff ``next_page`` is empty."""

    rows: int = 0
    data: list[ReadResultRow] = field(default_factory=list)
    next_page: str = ""
    done: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows": self.rows,
            "data": [row.to_dict() for row in self.data],
            "nextPage": self.next_page,
            "done": self.done,
        }


# ---------------------------------------------------------------------------
# Write / delete
# ---------------------------------------------------------------------------

@dataclass
class WriteHeader:
    key: str
    value: str


@dataclass
class WriteParams:
    """Create when ``record_id`` is empty, update otherwise."""

    object_name: str
    record_id: str = ""
    record_data: Any = None
    associations: Any = None
    headers: list[WriteHeader] = field(default_factory=list)

    def validate(self) -> None:
        if not self.object_name:
            raise MissingObjectsError()
        if self.record_data is None:
            raise MissingRecordDataError()
        # An empty payload is only meaningful as an update.
        if not self.record_id and isinstance(self.record_data, dict) and not self.record_data:
            raise MissingRecordDataError()

    def get_record(self) -> Record:
        """Return ``record_data`` as a mapping, converting through JSON if needed."""
        try:
            return to_json_map(self.record_data)
        except (TypeError, ValueError) as exc:
            raise RecordDataNotJSONError(str(exc)) from exc

    @property
    def is_update(self) -> bool:
        return bool(self.record_id)


@dataclass
class WriteResult:
    success: bool = False
    record_id: str = ""
    errors: list[Any] = field(default_factory=list)
    data: Record | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"success": self.success}
        if self.record_id:
            out["recordId"] = self.record_id
        if self.errors:
            out["errors"] = self.errors
        if self.data is not None:
            out["data"] = self.data
        return out


@dataclass
class DeleteParams:
    object_name: str
    record_id: str = ""
    headers: list[WriteHeader] = field(default_factory=list)

    def validate(self) -> None:
        if not self.object_name:
            raise MissingObjectsError()
        if not self.record_id:
            raise MissingRecordIdError()


@dataclass
class DeleteResult:
    success: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success}


class BatchWriteType(str, Enum):
    CREATE = "create"
    UPDATE = "update"


class BatchStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    PARTIAL = "partial"


@dataclass
class BatchWriteParams:
    object_name: str
    type: BatchWriteType
    batch: list[Record] = field(default_factory=list)
    headers: list[WriteHeader] = field(default_factory=list)

    def validate(self) -> None:
        if not self.object_name:
            raise MissingObjectsError()
        if not self.batch:
            raise MissingRecordDataError()


@dataclass
class BatchWriteResult:
    """Per-record outcomes; failures never abort the batch."""

    status: BatchStatus
    results: list[WriteResult] = field(default_factory=list)
    errors: list[Any] = field(default_factory=list)
    success_count: int = 0
    failure_count: int = 0

    @classmethod
    def from_results(cls, results: list[WriteResult], errors: list[Any] | None = None) -> "BatchWriteResult":
        ok = sum(1 for r in results if r.success)
        failed = len(results) - ok
        if failed == 0 and not errors:
            status = BatchStatus.SUCCESS
        elif ok == 0:
            status = BatchStatus.FAILURE
        else:
            status = BatchStatus.PARTIAL
        return cls(
            status=status,
            results=results,
            errors=list(errors or []),
            success_count=ok,
            failure_count=failed,
        )


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------

class ValueType(str, Enum):
    STRING = "string"
    INT = "int"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "dateTime"
    SINGLE_SELECT = "singleSelect"
    MULTI_SELECT = "multiSelect"
    OTHER = "other"


@dataclass
class FieldValue:
    value: str
    display_value: str

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "displayValue": self.display_value}


@dataclass
class FieldMetadata:
    display_name: str
    value_type: ValueType = ValueType.OTHER
    provider_type: str = ""
    read_only: bool = False
    is_required: bool = False
    is_custom: bool = False
    values: list[FieldValue] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "displayName": self.display_name,
            "valueType": self.value_type.value,
            "providerType": self.provider_type,
            "readOnly": self.read_only,
            "isRequired": self.is_required,
            "isCustom": self.is_custom,
            "values": [v.to_dict() for v in self.values],
        }


@dataclass
class ObjectMetadata:
    display_name: str
    fields: dict[str, FieldMetadata] = field(default_factory=dict)

    @property
    def fields_map(self) -> dict[str, str]:
        """Field name -> display name quick lookup."""
        return {name: fm.display_name for name, fm in self.fields.items()}

    def add_field(self, name: str, metadata: FieldMetadata) -> None:
        self.fields[name] = metadata

    def to_dict(self) -> dict[str, Any]:
        return {
            "displayName": self.display_name,
            "fields": {name: fm.to_dict() for name, fm in self.fields.items()},
            "fieldsMap": self.fields_map,
        }


@dataclass
class ListObjectMetadataResult:
    """Per-object metadata plus per-object errors from a batch lookup."""

    result: dict[str, ObjectMetadata] = field(default_factory=dict)
    errors: dict[str, BaseException] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------

@dataclass
class WebhookRequest:
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    url: str = ""
    method: str = "POST"


# ---------------------------------------------------------------------------
# Connector construction
# ---------------------------------------------------------------------------

@dataclass
class ConnectorParams:
    """Inputs for building a connector.  The client is owned by the caller."""

    module: str = ""
    client: httpx.AsyncClient | None = None
    workspace: str = ""
    metadata: dict[str, str] = field(default_factory=dict)


class RequireAuthenticatedClient:
    def validate(self, params: ConnectorParams) -> None:
        if params.client is None:
            raise MissingAuthClientError()


class RequireWorkspace:
    def validate(self, params: ConnectorParams) -> None:
        if not params.workspace:
            raise MissingWorkspaceError()


class RequireMetadata:
    def __init__(self, keys: list[str] | None = None) -> None:
        self.keys = keys or []

    def validate(self, params: ConnectorParams) -> None:
        if not params.metadata:
            raise MissingMetadataError()
        for key in self.keys:
            if key not in params.metadata:
                raise MissingMetadataError(f"metadata not given: expected key {key} not found")


class RequireModule:
    def __init__(self, supported: list[str]) -> None:
        self.supported = supported

    def validate(self, params: ConnectorParams) -> None:
        if not params.module:
            raise MissingModuleError()
        if params.module not in self.supported:
            raise UnsupportedModuleError(f"module {params.module!r} is not supported")


def validate_parameters(params: ConnectorParams, *requirements: Any) -> None:
    """Run every requirement and raise one error listing all failures."""
    errors: list[ConnectorError] = []
    for requirement in requirements:
        try:
            requirement.validate(params)
        except ConnectorError as exc:
            errors.append(exc)
    if errors:
        raise ParameterValidationError(errors)
