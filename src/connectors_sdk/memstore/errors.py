"""Errors raised by the in-memory mock store."""

from __future__ import annotations

from typing import Any

from connectors_sdk.errors import ConnectorError
from connectors_sdk.subscription import (
    ObserverNotFoundError,
    SubscriptionExistsError,
    SubscriptionNilError,
)

__all__ = [
    "MemstoreError",
    "SchemaNotFoundError",
    "ValidationFailedError",
    "InvalidSchemaError",
    "EmptySchemasError",
    "RecordNotFoundError",
    "ObserverNotFoundError",
    "UniqueConstraintError",
    "UniqueValueError",
    "InvalidAssociationError",
    "AssociationTargetNotFoundError",
    "InvalidForeignKeyError",
    "SubscriptionNilError",
    "SubscriptionExistsError",
    "RequestNilError",
    "InvalidRequestTypeError",
    "ResultNilError",
    "InvalidResultTypeError",
    "RegistrationResultNilError",
    "InvalidRegistrationStatusError",
    "SubscriptionEventsEmptyError",
]


class MemstoreError(ConnectorError):
    """Memstore error."""


class SchemaNotFoundError(MemstoreError):
    """Schema not found."""


class ValidationFailedError(MemstoreError):
    """Validation failed.

    ``errors`` lists one human-readable message per schema violation.
    """

    def __init__(self, message: str = "", errors: list[Any] | None = None) -> None:
        self.errors = list(errors or [])
        if not message and self.errors:
            message = "validation failed: " + "; ".join(str(e) for e in self.errors)
        super().__init__(message)


class InvalidSchemaError(MemstoreError):
    """Invalid schema."""


class EmptySchemasError(MemstoreError):
    """Schemas map cannot be empty."""


class RecordNotFoundError(MemstoreError):
    """Record not found."""


class UniqueConstraintError(MemstoreError):
    """uniqueItems constraint cannot be satisfied."""


class UniqueValueError(MemstoreError):
    """Failed to generate unique value."""


class InvalidAssociationError(MemstoreError):
    """Invalid association definition."""


class AssociationTargetNotFoundError(MemstoreError):
    """Association target object not found."""


class InvalidForeignKeyError(MemstoreError):
    """Foreign key references non-existent record."""


class RequestNilError(MemstoreError):
    """Request parameter is nil."""


class InvalidRequestTypeError(MemstoreError):
    """Request has invalid type."""


class ResultNilError(MemstoreError):
    """Result is nil."""


class InvalidResultTypeError(MemstoreError):
    """Result has invalid type."""


class RegistrationResultNilError(MemstoreError):
    """Registration result is nil."""


class InvalidRegistrationStatusError(MemstoreError):
    """Invalid registration status."""


class SubscriptionEventsEmptyError(MemstoreError):
    """Subscription events cannot be empty."""
