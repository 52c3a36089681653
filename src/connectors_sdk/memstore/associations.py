"""Association expansion and foreign-key checks over :class:`Storage`.

Three association kinds are understood:

``foreignKey``
    The record's field holds the id of one target record.
``reverseLookup``
    Target records point back at this record through ``foreignKeyField``.
``junction``
    Link records in ``junctionObject`` pair ``junctionFromField`` (this
    record) with ``junctionToField`` (a target record).

Missing targets are skipped rather than reported.
"""

from __future__ import annotations

import logging
from typing import Any

from connectors_sdk.locators import record_id_text
from connectors_sdk.memstore.errors import (
    InvalidAssociationError,
    InvalidForeignKeyError,
    RecordNotFoundError,
)
from connectors_sdk.memstore.schema import FOREIGN_KEY, JUNCTION, REVERSE_LOOKUP, AssociationSchema
from connectors_sdk.memstore.storage import Storage
from connectors_sdk.models import Association

logger = logging.getLogger(__name__)

# record id -> association name -> associations
Expanded = dict[str, dict[str, list[Association]]]


def _text(value: Any) -> str:
    return record_id_text(value) or str(value)


def _by_record(records: list[dict[str, Any]], id_field: str) -> list[tuple[str, dict[str, Any]]]:
    return [(_text(r[id_field]), r) for r in records if r.get(id_field) is not None]


def expand_foreign_key(
    storage: Storage,
    records: list[dict[str, Any]],
    field_name: str,
    assoc: AssociationSchema,
    id_field: str,
) -> dict[str, list[Association]]:
    result: dict[str, list[Association]] = {}
    for record_id, record in _by_record(records, id_field):
        value = record.get(field_name)
        if value is None:
            continue
        target_id = _text(value)
        try:
            target = storage.get(assoc.target_object, target_id)
        except RecordNotFoundError:
            continue
        result[record_id] = [Association(object_id=target_id, raw=target)]
    return result


def expand_reverse_lookup(
    storage: Storage,
    records: list[dict[str, Any]],
    assoc: AssociationSchema,
    id_field: str,
) -> dict[str, list[Association]]:
    if not assoc.foreign_key_field:
        raise InvalidAssociationError("invalid association definition: reverseLookup requires foreignKeyField")

    targets = storage.get_all(assoc.target_object)
    target_id_field = storage.id_field(assoc.target_object)
    result: dict[str, list[Association]] = {}
    for record_id, _record in _by_record(records, id_field):
        matches = [
            Association(object_id=_text(target[target_id_field]), raw=target)
            for target in targets
            if target.get(assoc.foreign_key_field) is not None
            and _text(target[assoc.foreign_key_field]) == record_id
            and target.get(target_id_field) is not None
        ]
        if matches:
            result[record_id] = matches
    return result


def expand_junction(
    storage: Storage,
    records: list[dict[str, Any]],
    assoc: AssociationSchema,
    id_field: str,
) -> dict[str, list[Association]]:
    if not (assoc.junction_object and assoc.junction_from_field and assoc.junction_to_field):
        raise InvalidAssociationError(
            "invalid association definition: junction requires junctionObject, "
            "junctionFromField and junctionToField"
        )

    links = storage.get_all(assoc.junction_object)
    result: dict[str, list[Association]] = {}
    for record_id, _record in _by_record(records, id_field):
        target_ids = [
            _text(link[assoc.junction_to_field])
            for link in links
            if link.get(assoc.junction_from_field) is not None
            and _text(link[assoc.junction_from_field]) == record_id
            and link.get(assoc.junction_to_field) is not None
        ]
        matches = []
        for target_id in target_ids:
            try:
                target = storage.get(assoc.target_object, target_id)
            except RecordNotFoundError:
                continue
            matches.append(Association(object_id=target_id, raw=target))
        if matches:
            result[record_id] = matches
    return result


def expand_associations(
    storage: Storage,
    object_name: str,
    records: list[dict[str, Any]],
    requested: list[str],
) -> Expanded:
    """Resolve *requested* associations for *records*.

    A requested name matches an association by its field name or by its
    target object.  Results are keyed by the association's field name.
    """
    if not requested or not records:
        return {}
    declared = storage.associations().get(object_name, {})
    if not declared:
        return {}

    id_field = storage.id_field(object_name)
    result: Expanded = {}
    for name in requested:
        for field_name, assoc in declared.items():
            if name not in (field_name, assoc.target_object):
                continue
            if assoc.association_type == FOREIGN_KEY:
                expanded = expand_foreign_key(storage, records, field_name, assoc, id_field)
            elif assoc.association_type == REVERSE_LOOKUP:
                expanded = expand_reverse_lookup(storage, records, assoc, id_field)
            elif assoc.association_type == JUNCTION:
                expanded = expand_junction(storage, records, assoc, id_field)
            else:
                logger.debug("Skipping association %s of unknown type %r", field_name, assoc.association_type)
                continue
            for record_id, associations in expanded.items():
                result.setdefault(record_id, {})[field_name] = associations
    return result


def validate_foreign_keys(storage: Storage, object_name: str, record: dict[str, Any]) -> None:
    """Every non-null foreign key in *record* must reference an existing record."""
    for field_name, assoc in storage.associations().get(object_name, {}).items():
        if assoc.association_type != FOREIGN_KEY:
            continue
        value = record.get(field_name)
        if value is None:
            continue
        target_id = _text(value)
        if not storage.exists(assoc.target_object, target_id):
            raise InvalidForeignKeyError(
                f"field {field_name} references {assoc.target_object} record {target_id} which does not exist"
            )
