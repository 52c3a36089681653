"""Observer registry for record change events.

Storage backends call :meth:`ObserverRegistry.notify` after every committed
mutation.  Matching subscriptions receive a deep copy of the record through
their ``notify_callback``; delivery never blocks the caller:

- inside a running event loop each delivery is an ``asyncio`` task,
- otherwise deliveries run in order on a single background worker thread.

A callback that raises is logged and does not affect other subscriptions.

Usage::

    def on_change(sub, action, object_name, record_id, record):
        print(action, record_id)

    registry = ObserverRegistry()
    registry.subscribe(SubscriptionContext(
        id="sub-1",
        events={"contact": ObjectEvents([EventType.CREATE])},
        notify_callback=on_change,
    ))
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from connectors_sdk.errors import ConnectorError

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


NotifyCallback = Callable[["SubscriptionContext", str, str, str, dict[str, Any]], Any]


@dataclass
class ObjectEvents:
    events: list[EventType] = field(default_factory=list)
    watch_fields: list[str] = field(default_factory=list)
    watch_fields_all: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ObjectEvents":
        return cls(
            events=[EventType(e) for e in data.get("events", [])],
            watch_fields=list(data.get("watchFields", [])),
            watch_fields_all=bool(data.get("watchFieldsAll", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "events": [e.value for e in self.events],
            "watchFields": self.watch_fields,
            "watchFieldsAll": self.watch_fields_all,
        }


@dataclass
class SubscriptionContext:
    id: str
    events: dict[str, ObjectEvents] = field(default_factory=dict)
    registration_ref: str = ""
    registration_result: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)
    notify_callback: NotifyCallback | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "subscriptionEvents": {name: ev.to_dict() for name, ev in self.events.items()},
            "registrationRef": self.registration_ref,
            "metadata": self.metadata,
        }


class SubscriptionNilError(ConnectorError):
    """Subscription cannot be nil."""


class SubscriptionExistsError(ConnectorError):
    """Subscription already exists."""


class ObserverNotFoundError(ConnectorError):
    """Observer not found."""


# ---------------------------------------------------------------------------
# Event matching
# ---------------------------------------------------------------------------

_MISSING = object()


def changed_fields(old: dict[str, Any] | None, new: dict[str, Any] | None) -> set[str]:
    """Top-level keys whose values differ, including added and removed keys."""
    old = old or {}
    new = new or {}
    return {
        key
        for key in old.keys() | new.keys()
        if old.get(key, _MISSING) != new.get(key, _MISSING)
    }


def want_notification(
    event_type: EventType,
    object_name: str,
    changed: set[str],
    subscription: SubscriptionContext,
) -> bool:
    object_events = subscription.events.get(object_name)
    if object_events is None or event_type not in object_events.events:
        return False
    if event_type in (EventType.CREATE, EventType.DELETE):
        return True
    if object_events.watch_fields_all:
        return True
    return any(name in changed for name in object_events.watch_fields)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class ObserverRegistry:
    """Thread-safe set of subscriptions with asynchronous delivery."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, SubscriptionContext] = {}
        self._lock = threading.RLock()
        self._executor: ThreadPoolExecutor | None = None
        self._pending: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, subscription: SubscriptionContext | None) -> None:
        if subscription is None:
            raise SubscriptionNilError()
        with self._lock:
            if subscription.id in self._subscriptions:
                raise SubscriptionExistsError(f"subscription already exists: {subscription.id!r}")
            self._subscriptions[subscription.id] = subscription

    def unsubscribe(self, subscription_id: str) -> SubscriptionContext:
        with self._lock:
            try:
                return self._subscriptions.pop(subscription_id)
            except KeyError:
                raise ObserverNotFoundError(f"observer not found: {subscription_id!r}") from None

    def get(self, subscription_id: str) -> SubscriptionContext | None:
        with self._lock:
            return self._subscriptions.get(subscription_id)

    def list(self) -> list[SubscriptionContext]:
        with self._lock:
            return list(self._subscriptions.values())

    def clear(self) -> None:
        with self._lock:
            self._subscriptions.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def notify(
        self,
        event_type: EventType,
        object_name: str,
        record_id: str,
        record: dict[str, Any],
        changed: set[str] | None = None,
        action: str = "",
    ) -> int:
        """Schedule delivery to every matching subscription.  Returns the count."""
        action = f"{action or event_type.value}:{object_name}"
        with self._lock:
            targets = [
                sub
                for sub in self._subscriptions.values()
                if sub.notify_callback is not None
                and want_notification(event_type, object_name, changed or set(), sub)
            ]
        for sub in targets:
            self._schedule(sub, action, object_name, record_id, copy.deepcopy(record))
        return len(targets)

    def _schedule(self, sub: SubscriptionContext, *args: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            task = loop.create_task(self._deliver_async(sub, *args))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            return
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="observer")
        self._executor.submit(self._deliver_sync, sub, *args)

    def _active(self, sub: SubscriptionContext) -> bool:
        with self._lock:
            return self._subscriptions.get(sub.id) is sub

    async def _deliver_async(self, sub: SubscriptionContext, *args: Any) -> None:
        if not self._active(sub):
            return
        try:
            result = sub.notify_callback(sub, *args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Notification for subscription %s failed", sub.id)

    def _deliver_sync(self, sub: SubscriptionContext, *args: Any) -> None:
        if not self._active(sub):
            return
        try:
            result = sub.notify_callback(sub, *args)
            if inspect.isawaitable(result):
                asyncio.run(result)
        except Exception:
            logger.exception("Notification for subscription %s failed", sub.id)

    async def wait_idle(self) -> None:
        """Wait for deliveries scheduled on the running loop."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def flush(self, timeout: float | None = None) -> None:
        """Wait for deliveries queued on the background worker."""
        if self._executor is not None:
            self._executor.submit(lambda: None).result(timeout)
