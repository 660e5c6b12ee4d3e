"""
Purpose: Publish/subscribe sync between one broadcaster and many listeners.
What it does:

Broadcaster side
- publish(entity_id, position, status) upserts the BroadcastRecord row and
  reports success/failure. A failure flips the broadcaster connectivity to
  DISCONNECTED (never silently dropped); the next success flips it back.
- updated_at is stamped here and never goes backwards per entity_id.

Listener side
- subscribe(entity_id) returns a ChannelSubscription holding the latest
  record, its own connectivity signal and an async records() stream.
- Connectivity becomes CONNECTED only once the store acknowledges the
  subscription, DISCONNECTED on any error status.
- On every acknowledgement the stored row is read once, so a listener that
  joins (or reconnects) after the last publish still gets the current record.
- Records older than the last delivered one for the entity are dropped.

The two connectivity signals (broadcaster / listener) are independent.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional

from tracking.models import MovementStatus, Position
from .models import BroadcastRecord, Connectivity
from .store import RealtimeStore, Row, SUBSCRIBED

logger = logging.getLogger(__name__)

Clock = Callable[[], int]
RecordListener = Callable[[BroadcastRecord], None]
ConnectivityListener = Callable[[Connectivity], None]


class ChannelError(Exception):
    """Base class for sync channel failures."""
    pass


class BroadcastFailed(ChannelError):
    """The store rejected (or never received) a publish."""
    pass


class ChannelDisconnected(ChannelError):
    """A listener subscription was lost or refused."""
    pass


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class ChannelSubscription:
    """
    Listener handle for one broadcaster entity.
    """

    def __init__(
        self,
        entity_id: str,
        on_record: Optional[RecordListener] = None,
        on_connectivity: Optional[ConnectivityListener] = None,
    ):
        self.entity_id = entity_id
        self.latest: Optional[BroadcastRecord] = None
        self.connectivity = Connectivity.CONNECTING
        self.last_error: Optional[ChannelDisconnected] = None
        self.closed = False
        self.store_handle = None

        self._on_record = on_record
        self._on_connectivity = on_connectivity
        self._streams: List[asyncio.Queue] = []

    @property
    def has_data(self) -> bool:
        return self.latest is not None

    async def records(self) -> AsyncIterator[BroadcastRecord]:
        """
        Stream of accepted records from now on. Ends on unsubscribe,
        after anything already buffered.
        """
        if self.closed:
            return
        queue: asyncio.Queue = asyncio.Queue()
        self._streams.append(queue)
        try:
            while True:
                record = await queue.get()
                if record is None:
                    return
                yield record
        finally:
            if queue in self._streams:
                self._streams.remove(queue)

    # --- called by SyncChannel ---

    def _accept_row(self, row: Row) -> None:
        if self.closed:
            return
        try:
            record = BroadcastRecord.from_row(row)
        except ValueError as e:
            logger.warning("Ignoring malformed broadcast for %s: %s", self.entity_id, e)
            return

        if record.entity_id != self.entity_id:
            return

        latest = self.latest
        if latest is not None and record.updated_at_ms < latest.updated_at_ms:
            logger.debug(
                "Dropping out-of-order record for %s (%s < %s)",
                self.entity_id, record.updated_at_ms, latest.updated_at_ms,
            )
            return

        self.latest = record
        for queue in self._streams:
            queue.put_nowait(record)
        if self._on_record is not None:
            self._on_record(record)

    def _accept_status(self, status: str, error: Optional[Exception]) -> None:
        if self.closed:
            return
        if status == SUBSCRIBED:
            self.last_error = None
            self._set_connectivity(Connectivity.CONNECTED)
            return

        self.last_error = ChannelDisconnected(f"Subscription to {self.entity_id} lost ({status}): {error}")
        logger.warning("%s", self.last_error)
        self._set_connectivity(Connectivity.DISCONNECTED)

    def _close(self) -> None:
        self.closed = True
        self.connectivity = Connectivity.DISCONNECTED
        for queue in self._streams:
            queue.put_nowait(None)

    def _set_connectivity(self, connectivity: Connectivity) -> None:
        if connectivity == self.connectivity:
            return
        self.connectivity = connectivity
        if self._on_connectivity is not None:
            self._on_connectivity(connectivity)


class SyncChannel:
    """
    Named topic over an injected RealtimeStore.
    One broadcaster per entity_id is assumed; concurrent broadcasters for the
    same id end up last-write-wins in the store.
    """

    def __init__(self, store: RealtimeStore, table: str = "bus_locations", clock: Optional[Clock] = None):
        self.store = store
        self.table = table
        self.clock = clock or _wall_clock_ms

        self.broadcaster_connectivity = Connectivity.CONNECTING
        self.last_publish_error: Optional[BroadcastFailed] = None
        self.on_broadcaster_connectivity: Optional[ConnectivityListener] = None

        self._session = 0
        self._last_stamp: Dict[str, int] = {}
        self._subscriptions: List[ChannelSubscription] = []

    # --- Broadcaster side ---

    def next_updated_at(self, entity_id: str) -> int:
        stamp = max(self.clock(), self._last_stamp.get(entity_id, 0))
        self._last_stamp[entity_id] = stamp
        return stamp

    def publish(self, entity_id: str, position: Position, status: MovementStatus) -> Awaitable[bool]:
        """
        Upsert the broadcaster row. The awaitable resolves to False (and flags
        DISCONNECTED) instead of raising when the store refuses it.

        The record and its broadcaster session are fixed when publish() is
        called, so a write still in flight after reset_broadcaster() can not
        change the new session's connectivity.
        """
        record = BroadcastRecord(
            entity_id=entity_id,
            position=position,
            status=status,
            updated_at_ms=self.next_updated_at(entity_id),
        )
        return self._upsert(record, self._session)

    async def _upsert(self, record: BroadcastRecord, session: int) -> bool:
        try:
            await self.store.upsert(self.table, record.to_row())
        except Exception as e:
            error = BroadcastFailed(f"Publish for {record.entity_id} failed: {e}")
            logger.warning("%s", error)
            if session == self._session:
                self.last_publish_error = error
                self._set_broadcaster_connectivity(Connectivity.DISCONNECTED)
            return False

        if session == self._session:
            self.last_publish_error = None
            self._set_broadcaster_connectivity(Connectivity.CONNECTED)
        return True

    def _set_broadcaster_connectivity(self, connectivity: Connectivity) -> None:
        if connectivity == self.broadcaster_connectivity:
            return
        self.broadcaster_connectivity = connectivity
        if self.on_broadcaster_connectivity is not None:
            self.on_broadcaster_connectivity(connectivity)

    def reset_broadcaster(self) -> None:
        """
        Start a new broadcaster session: back to CONNECTING until the next
        publish outcome of this session.
        """
        self._session += 1
        self.broadcaster_connectivity = Connectivity.CONNECTING
        self.last_publish_error = None

    # --- Listener side ---

    def subscribe(
        self,
        entity_id: str,
        on_record: Optional[RecordListener] = None,
        on_connectivity: Optional[ConnectivityListener] = None,
    ) -> ChannelSubscription:
        subscription = ChannelSubscription(entity_id, on_record, on_connectivity)

        def on_status(status: str, error: Optional[Exception]) -> None:
            subscription._accept_status(status, error)
            if status == SUBSCRIBED:
                self._catch_up(subscription)

        subscription.store_handle = self.store.subscribe(
            self.table,
            {"entity_id": entity_id},
            subscription._accept_row,
            on_status,
        )
        self._subscriptions.append(subscription)
        return subscription

    def _catch_up(self, subscription: ChannelSubscription) -> None:
        # pushes only carry later changes; the stored row is the current state
        if subscription.closed:
            return
        try:
            row = self.store.get(self.table, subscription.entity_id)
        except Exception as e:
            logger.warning("Could not read current row for %s: %s", subscription.entity_id, e)
            return
        if row is None:
            return
        latest = subscription.latest
        if latest is not None and row.get("updated_at") == latest.updated_at_ms:
            return
        subscription._accept_row(row)

    def unsubscribe(self, subscription: ChannelSubscription) -> None:
        #idempotent
        if subscription.closed:
            return
        subscription._close()
        self.store.unsubscribe(subscription.store_handle)
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    @property
    def listener_count(self) -> int:
        return len(self._subscriptions)
