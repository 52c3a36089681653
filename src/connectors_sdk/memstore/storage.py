"""Thread-safe in-memory record storage with change notifications.

Records are kept per object name and record id.  Every record handed in or
out is deep-copied, so callers can never mutate stored state.  Each
``store`` and ``delete`` is reported to the :class:`ObserverRegistry`.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any

from connectors_sdk.datautils import deep_copy, ensure_aware, parse_rfc3339
from connectors_sdk.memstore.errors import RecordNotFoundError
from connectors_sdk.memstore.schema import AssociationSchema, SchemaRegistry
from connectors_sdk.subscription import (
    EventType,
    ObserverRegistry,
    SubscriptionContext,
    changed_fields,
)

logger = logging.getLogger(__name__)

DEFAULT_ID_FIELD = "id"


def record_timestamp(value: Any) -> datetime | None:
    """RFC3339 string or Unix seconds (int/float) as an aware datetime."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            return parse_rfc3339(value)
        except ValueError:
            return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(int(value), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    return None


class Storage:
    """Records by object name and id.

    Parameters
    ----------
    schemas:
        Registry providing the id field, updated field and associations of
        every object.
    observers:
        Registry notified after each mutation.  A private one is created
        when omitted.
    """

    def __init__(self, schemas: SchemaRegistry, observers: ObserverRegistry | None = None) -> None:
        self._lock = threading.RLock()
        self._data: dict[str, dict[str, dict[str, Any]]] = {s.name: {} for s in schemas}
        self._id_fields = {s.name: s.id_field for s in schemas if s.id_field}
        self._updated_fields = {s.name: s.updated_field for s in schemas if s.updated_field}
        self._associations = {s.name: dict(s.associations) for s in schemas if s.associations}
        self.observers = observers or ObserverRegistry()

    # ------------------------------------------------------------------
    # Field mappings
    # ------------------------------------------------------------------

    def id_field(self, object_name: str) -> str:
        return self._id_fields.get(object_name) or DEFAULT_ID_FIELD

    def updated_field(self, object_name: str) -> str:
        return self._updated_fields.get(object_name, "")

    def id_fields(self) -> dict[str, str]:
        return dict(self._id_fields)

    def updated_fields(self) -> dict[str, str]:
        return dict(self._updated_fields)

    def associations(self) -> dict[str, dict[str, AssociationSchema]]:
        return {
            obj: {name: AssociationSchema(**vars(a)) for name, a in fields.items()}
            for obj, fields in self._associations.items()
        }

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def store(self, object_name: str, record_id: str, record: dict[str, Any], action: str = "") -> None:
        """Create or replace a record and notify subscribers.

        *action* names the operation in the notification (``"create"``,
        ``"update"``); it defaults to ``"write"``.
        """
        stored = deep_copy(record)
        id_field = self.id_field(object_name)
        if str(stored.get(id_field, "")) != record_id:
            stored[id_field] = record_id

        with self._lock:
            records = self._data.setdefault(object_name, {})
            previous = records.get(record_id)
            records[record_id] = stored
            if previous is None:
                event, changed = EventType.CREATE, set()
            else:
                event, changed = EventType.UPDATE, changed_fields(previous, stored)
                # Creating over an existing id replaces the record.
                if action == EventType.CREATE.value:
                    action = EventType.UPDATE.value
            logger.debug("Stored %s/%s (%s)", object_name, record_id, event.value)
            # Scheduled under the lock so notifications follow commit order.
            self.observers.notify(event, object_name, record_id, stored, changed, action or "write")

    def get(self, object_name: str, record_id: str) -> dict[str, Any]:
        with self._lock:
            records = self._data.get(object_name)
            if records is None:
                raise RecordNotFoundError(f"record not found: object {object_name}")
            record = records.get(record_id)
            if record is None:
                raise RecordNotFoundError(f"record not found: record {record_id}")
            return deep_copy(record)

    def get_all(self, object_name: str) -> list[dict[str, Any]]:
        with self._lock:
            return [deep_copy(r) for r in self._data.get(object_name, {}).values()]

    def exists(self, object_name: str, record_id: str) -> bool:
        with self._lock:
            return record_id in self._data.get(object_name, {})

    def delete(self, object_name: str, record_id: str) -> None:
        with self._lock:
            records = self._data.get(object_name)
            if records is None:
                raise RecordNotFoundError(f"record not found: object {object_name}")
            record = records.pop(record_id, None)
            if record is None:
                raise RecordNotFoundError(f"record not found: record {record_id}")
            logger.debug("Deleted %s/%s", object_name, record_id)
            self.observers.notify(EventType.DELETE, object_name, record_id, record, None, "delete")

    def list(
        self,
        object_name: str,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """Records whose updated field lies in ``[since, until]``.

        Objects without an updated field return everything.  When either
        bound is set, records with a missing or unreadable timestamp are
        left out.
        """
        since, until = ensure_aware(since), ensure_aware(until)
        bounded = since is not None or until is not None
        with self._lock:
            records = list(self._data.get(object_name, {}).values())
            updated_field = self.updated_field(object_name)
            if not updated_field or not bounded:
                return [deep_copy(r) for r in records]

            selected = []
            for record in records:
                ts = record_timestamp(record.get(updated_field))
                if ts is None:
                    continue
                if since is not None and ts < since:
                    continue
                if until is not None and ts > until:
                    continue
                selected.append(deep_copy(record))
            return selected

    def count(self, object_name: str) -> int:
        with self._lock:
            return len(self._data.get(object_name, {}))

    def reset(self) -> None:
        """Drop every record and every subscription; schemas are kept."""
        with self._lock:
            for records in self._data.values():
                records.clear()
            self.observers.clear()

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, subscription: SubscriptionContext | None) -> None:
        self.observers.subscribe(subscription)

    def unsubscribe(self, subscription_id: str) -> None:
        self.observers.unsubscribe(subscription_id)
