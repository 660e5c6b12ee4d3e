"""
Purpose: The location "adapter".
Sole responsibility: hold a subscription on a location source and turn its
raw fixes into timestamped Sample objects (or failure events).

Encapsulates source specific details:
- high accuracy / max age / timeout options
- one subscription at a time (exclusive hold on the platform resource)
- de-duplicating repeated failures
It does not classify movement and never retries on its own.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Iterable, List, Optional, Protocol, Set, Tuple, Type

import pandas as pd

from .models import Sample
from .policy import TrackingPolicy, default_tracking_policy

logger = logging.getLogger(__name__)

Clock = Callable[[], int]
FixCallback = Callable[[float, float, Optional[int]], None]
ErrorCallback = Callable[[Exception], None]


class LocationError(Exception):
    """Base class for location source failures. Terminal for the session."""
    pass


class PermissionDenied(LocationError):
    """The user (or platform) refused access to location."""
    pass


class LocationUnavailable(LocationError):
    """Location source present but no fix could be obtained."""
    pass


class SamplerBusy(Exception):
    """Raised when start() is called while a subscription is already held."""
    pass


class LocationSource(Protocol):
    def subscribe(
        self,
        high_accuracy: bool,
        on_fix: FixCallback,
        on_error: ErrorCallback,
        *,
        maximum_age_ms: Optional[int] = None,
        timeout_ms: Optional[int] = None,
    ) -> Any: ...

    def unsubscribe(self, handle: Any) -> None: ...


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


@dataclass(eq=False)
class SamplerSubscription:
    """
    Handle returned by PositionSampler.start().
    """
    subscription_id: int
    source_handle: Any = None
    reported_failures: Set[Type[Exception]] = field(default_factory=set)
    on_close: Optional[Callable[[], None]] = None
    closed: bool = False


class PositionSampler:
    """
    Wraps a LocationSource. Produces a live, non-restartable stream of
    Samples for as long as the subscription is held.
    """

    def __init__(
        self,
        source: LocationSource,
        policy: Optional[TrackingPolicy] = None,
        clock: Optional[Clock] = None,
    ):
        self.source = source
        self.policy = policy or default_tracking_policy()
        self.clock = clock or wall_clock_ms
        self._active: Optional[SamplerSubscription] = None
        self._ids = itertools.count(1)

    @property
    def active(self) -> bool:
        return self._active is not None

    def start(
        self,
        on_sample: Callable[[Sample], None],
        on_error: Callable[[LocationError], None],
    ) -> SamplerSubscription:
        """
        Acquire the location source. Only one subscription may be held.
        """
        if self._active is not None:
            raise SamplerBusy(f"Subscription {self._active.subscription_id} is still active")

        subscription = SamplerSubscription(subscription_id=next(self._ids))
        self._active = subscription

        def handle_fix(latitude: float, longitude: float, timestamp_ms: Optional[int] = None) -> None:
            if subscription.closed:
                return
            now = self.clock()
            captured_at_ms = now if timestamp_ms is None else int(timestamp_ms)

            max_age = self.policy.max_sample_age_ms
            if max_age is not None and now - captured_at_ms > max_age:
                logger.debug("Dropping fix older than %sms (age %sms)", max_age, now - captured_at_ms)
                return

            on_sample(Sample.new(latitude, longitude, captured_at_ms))

        def handle_error(error: Exception) -> None:
            if subscription.closed:
                return
            if not isinstance(error, LocationError):
                error = LocationUnavailable(str(error))

            #exactly once per distinct failure kind
            if type(error) in subscription.reported_failures:
                return
            subscription.reported_failures.add(type(error))

            logger.error("Location source failure: %s", error)
            on_error(error)

        source_handle = self.source.subscribe(
            self.policy.high_accuracy,
            handle_fix,
            handle_error,
            maximum_age_ms=self.policy.max_sample_age_ms,
            timeout_ms=self.policy.fix_timeout_ms,
        )
        subscription.source_handle = source_handle
        if subscription.closed:
            # stopped from inside subscribe(), e.g. an immediate permission error
            self.source.unsubscribe(source_handle)
        return subscription

    def stop(self, subscription: Optional[SamplerSubscription] = None) -> None:
        """
        Release the location source. Idempotent: stopping twice, or stopping
        a handle that is no longer current, does nothing.
        """
        current = self._active
        if current is None:
            return
        if subscription is not None and subscription is not current:
            return

        current.closed = True
        self._active = None
        if current.source_handle is not None:
            self.source.unsubscribe(current.source_handle)
        if current.on_close is not None:
            current.on_close()

    async def stream(self) -> AsyncIterator[Sample]:
        """
        The same subscription as an async iterator.
        Ends on stop(); a location failure is raised to the consumer.
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        closed = object()

        subscription = self.start(
            lambda sample: loop.call_soon_threadsafe(queue.put_nowait, sample),
            lambda error: loop.call_soon_threadsafe(queue.put_nowait, error),
        )
        subscription.on_close = lambda: loop.call_soon_threadsafe(queue.put_nowait, closed)

        try:
            while True:
                item = await queue.get()
                if item is closed:
                    return
                if isinstance(item, LocationError):
                    raise item
                yield item
        finally:
            self.stop(subscription)


@dataclass(eq=False)
class _ReplayHandle:
    on_fix: FixCallback
    on_error: ErrorCallback


class ReplayLocationSource:
    """
    Location source that plays back recorded fixes.
    Used by the tracking simulation and the tests in place of a device GPS.
    """

    def __init__(
        self,
        fixes: Optional[Iterable[Tuple[float, float, int]]] = None,
        permission_granted: bool = True,
    ):
        self.fixes: List[Tuple[float, float, int]] = list(fixes or [])
        self.permission_granted = permission_granted
        self.subscribe_calls = 0
        self.last_options: dict = {}
        self._handle: Optional[_ReplayHandle] = None

    @classmethod
    def from_frame(cls, frame: pd.DataFrame) -> ReplayLocationSource:
        """
        Expects columns lat, lon, timestamp_ms.
        """
        frame = frame.sort_values("timestamp_ms")
        fixes = [
            (float(row.lat), float(row.lon), int(row.timestamp_ms))
            for row in frame.itertuples(index=False)
        ]
        return cls(fixes)

    @classmethod
    def from_csv(cls, filepath: str) -> ReplayLocationSource:
        return cls.from_frame(pd.read_csv(filepath))

    @property
    def subscribed(self) -> bool:
        return self._handle is not None

    def subscribe(self, high_accuracy, on_fix, on_error, *, maximum_age_ms=None, timeout_ms=None):
        self.subscribe_calls += 1
        self.last_options = {
            "high_accuracy": high_accuracy,
            "maximum_age_ms": maximum_age_ms,
            "timeout_ms": timeout_ms,
        }
        handle = _ReplayHandle(on_fix, on_error)
        self._handle = handle
        if not self.permission_granted:
            on_error(PermissionDenied("Location permission was refused"))
        return handle

    def unsubscribe(self, handle) -> None:
        if handle is not None and handle is self._handle:
            self._handle = None

    def emit(self, latitude: float, longitude: float, timestamp_ms: Optional[int] = None) -> None:
        if self._handle is not None:
            self._handle.on_fix(latitude, longitude, timestamp_ms)

    def fail(self, error: LocationError) -> None:
        if self._handle is not None:
            self._handle.on_error(error)

    def play(self, before_each: Optional[Callable[[int], None]] = None) -> int:
        """
        Push every recorded fix to the current subscriber in order.
        before_each(timestamp_ms) runs ahead of each fix (e.g. to advance a
        virtual clock). Returns how many fixes were delivered.
        """
        delivered = 0
        for latitude, longitude, timestamp_ms in self.fixes:
            if self._handle is None:
                break
            if before_each is not None:
                before_each(timestamp_ms)
            self.emit(latitude, longitude, timestamp_ms)
            delivered += 1
        return delivered
