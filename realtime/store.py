"""
Purpose: The realtime data store contract and an in-process implementation.
What it does:
- RealtimeStore: what SyncChannel needs from a hosted realtime database
  (upsert a row, read the current row, subscribe to row changes with a
  status callback).
- InMemoryRealtimeStore: keeps the latest row per key and pushes changes to
  subscribers on the running asyncio loop. Used by the tracking simulation
  and as the default test double.

Subscription status values follow the hosted-store convention:
SUBSCRIBED | CHANNEL_ERROR | TIMED_OUT | CLOSED
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)

SUBSCRIBED = "SUBSCRIBED"
CHANNEL_ERROR = "CHANNEL_ERROR"
TIMED_OUT = "TIMED_OUT"
CLOSED = "CLOSED"

Row = Dict[str, Any]
ChangeCallback = Callable[[Row], None]
StatusCallback = Callable[[str, Optional[Exception]], None]


class StoreError(Exception):
    """Raised by a store when a write is rejected or the connection is down."""
    pass


class RealtimeStore(Protocol):
    async def upsert(self, table: str, row: Row) -> None: ...

    def get(self, table: str, key_value: Any) -> Optional[Row]: ...

    def subscribe(
        self,
        table: str,
        event_filter: Dict[str, Any],
        on_change: ChangeCallback,
        on_status: StatusCallback,
    ) -> Any: ...

    def unsubscribe(self, handle: Any) -> None: ...


@dataclass(eq=False)
class StoreSubscription:
    table: str
    event_filter: Dict[str, Any]
    on_change: ChangeCallback
    on_status: StatusCallback
    active: bool = True

    def matches(self, table: str, row: Row) -> bool:
        if table != self.table:
            return False
        return all(row.get(key) == value for key, value in self.event_filter.items())


@dataclass
class InMemoryRealtimeStore:
    """
    Latest-row-per-key store with push notifications.
    Every notification is delivered asynchronously (call_soon), the same way a
    network push would arrive on a later loop iteration.
    """
    key: str = "entity_id"
    connected: bool = True

    _rows: Dict[str, Dict[Any, Row]] = field(default_factory=dict)
    _subscriptions: List[StoreSubscription] = field(default_factory=list)
    upsert_count: int = 0

    # --- Public API ---

    async def upsert(self, table: str, row: Row) -> None:
        if not self.connected:
            raise StoreError("Realtime store is unreachable")
        if self.key not in row:
            raise StoreError(f"Row is missing key column '{self.key}'")

        stored = dict(row)
        self._rows.setdefault(table, {})[stored[self.key]] = stored
        self.upsert_count += 1

        loop = asyncio.get_running_loop()
        for subscription in list(self._subscriptions):
            if subscription.active and subscription.matches(table, stored):
                loop.call_soon(self._deliver, subscription, dict(stored))

    def get(self, table: str, key_value: Any) -> Optional[Row]:
        row = self._rows.get(table, {}).get(key_value)
        return dict(row) if row is not None else None

    def subscribe(self, table, event_filter, on_change, on_status) -> StoreSubscription:
        subscription = StoreSubscription(table, dict(event_filter or {}), on_change, on_status)
        self._subscriptions.append(subscription)

        if self.connected:
            self._notify(subscription, SUBSCRIBED, None)
        else:
            self._notify(subscription, CHANNEL_ERROR, StoreError("Realtime store is unreachable"))
        return subscription

    def unsubscribe(self, handle: StoreSubscription) -> None:
        #idempotent : unknown or already removed handles are ignored
        if handle in self._subscriptions:
            handle.active = False
            self._subscriptions.remove(handle)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    # --- Fault injection (simulation / tests) ---

    def disconnect(self) -> None:
        """Drop the connection: subscribers get CHANNEL_ERROR, writes fail."""
        self.connected = False
        for subscription in list(self._subscriptions):
            self._notify(subscription, CHANNEL_ERROR, StoreError("Realtime connection lost"))

    def reconnect(self) -> None:
        self.connected = True
        for subscription in list(self._subscriptions):
            self._notify(subscription, SUBSCRIBED, None)

    # --- Internal helpers ---

    def _notify(self, subscription: StoreSubscription, status: str, error: Optional[Exception]) -> None:
        asyncio.get_running_loop().call_soon(self._deliver_status, subscription, status, error)

    @staticmethod
    def _deliver(subscription: StoreSubscription, row: Row) -> None:
        if subscription.active:
            subscription.on_change(row)

    @staticmethod
    def _deliver_status(subscription: StoreSubscription, status: str, error: Optional[Exception]) -> None:
        if subscription.active:
            subscription.on_status(status, error)
