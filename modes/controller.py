"""
Purpose: Orchestrator (the "glue") between the tracking core and the UI.
What it does:
Broadcaster role: PositionSampler -> MovementClassifier -> SyncChannel.publish
Listener role:    SyncChannel.subscribe -> RouteEstimator (bus -> destination)

Exposes one immutable ControllerState snapshot for the presentation layer and
the pass-through actions it can invoke (select role, start/stop broadcasting,
start/stop listening).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Set

from realtime.channel import ChannelSubscription, SyncChannel
from realtime.models import BroadcastRecord, Connectivity
from routing.eta_service import describe_estimate
from routing.osrm_client import RoutingError
from routing.route_estimator import RouteEstimate, RouteEstimator
from tracking.models import MovementStatus, Position, Sample
from tracking.movement import MovementClassifier
from tracking.policy import TrackingPolicy, default_tracking_policy
from tracking.sampler import LocationError, PositionSampler, SamplerBusy, SamplerSubscription
from tracking.timers import DebounceTimer, Timer

logger = logging.getLogger(__name__)


class Role(str, Enum):
    BROADCASTER = "broadcaster"  # e.g. the bus driver
    LISTENER = "listener"        # e.g. a waiting passenger


class ModeStateException(Exception):
    """Raised when an action does not fit the selected role."""
    pass


_STATUS_LABELS = {
    MovementStatus.MOVING: "Moving",
    MovementStatus.STOPPED: "Stopped",
    MovementStatus.IDLE: "Idle",
}


@dataclass(frozen=True)
class ControllerState:
    """
    Everything the presentation layer renders, at one point in time.
    Connectivity fields are None when the matching role is not active.
    movement_status is None for a listener that has not received data yet.
    """
    role: Optional[Role]
    broadcasting: bool
    listening: bool
    movement_status: Optional[MovementStatus]
    own_position: Optional[Position]
    broadcaster_position: Optional[Position]
    route_estimate: Optional[RouteEstimate]
    route_warning: Optional[RoutingError]
    broadcaster_connectivity: Optional[Connectivity]
    listener_connectivity: Optional[Connectivity]
    last_error: Optional[LocationError]

    @property
    def channel_lost(self) -> bool:
        return self.listener_connectivity == Connectivity.DISCONNECTED

    @property
    def waiting_for_data(self) -> bool:
        return self.listening and self.broadcaster_position is None and not self.channel_lost

    @property
    def status_label(self) -> str:
        if self.role == Role.LISTENER:
            if self.channel_lost:
                return "Connection lost"
            if self.movement_status is None:
                return "Waiting..."
            return f"Bus {_STATUS_LABELS[self.movement_status]}"
        return _STATUS_LABELS[self.movement_status or MovementStatus.IDLE]

    @property
    def eta_labels(self) -> Dict[str, str]:
        return describe_estimate(self.route_estimate)


class ModeController:
    """
    One controller per participant device. All collaborators are injected;
    every callback is expected on the same asyncio loop.
    """

    def __init__(
        self,
        entity_id: str,
        channel: SyncChannel,
        sampler: Optional[PositionSampler] = None,
        estimator: Optional[RouteEstimator] = None,
        listener_sampler: Optional[PositionSampler] = None,
        policy: Optional[TrackingPolicy] = None,
        timer_factory: Optional[Callable[[], Timer]] = None,
    ):
        self.entity_id = entity_id
        self.channel = channel
        self.sampler = sampler
        self.estimator = estimator
        self.listener_sampler = listener_sampler
        self.policy = policy or default_tracking_policy()
        self.timer_factory = timer_factory or DebounceTimer

        self.role: Optional[Role] = None
        self.last_error: Optional[LocationError] = None

        # broadcaster session
        self._broadcasting = False
        self._classifier: Optional[MovementClassifier] = None
        self._sample_handle: Optional[SamplerSubscription] = None
        self._own_position: Optional[Position] = None
        self._observing = False

        # listener session
        self._subscription: Optional[ChannelSubscription] = None
        self._listener_handle: Optional[SamplerSubscription] = None
        self._destination: Optional[Position] = None

        self._tasks: Set[asyncio.Task] = set()

    # --- Presentation layer API ---

    def state(self) -> ControllerState:
        record = self._subscription.latest if self._subscription else None

        if self._broadcasting and self._classifier is not None:
            movement_status: Optional[MovementStatus] = self._classifier.status
        elif self.role == Role.LISTENER:
            movement_status = record.status if record else None
        else:
            movement_status = MovementStatus.IDLE

        return ControllerState(
            role=self.role,
            broadcasting=self._broadcasting,
            listening=self._subscription is not None,
            movement_status=movement_status,
            own_position=self._own_position,
            broadcaster_position=record.position if record else None,
            route_estimate=self.estimator.estimate if self.estimator else None,
            route_warning=self.estimator.last_error if self.estimator else None,
            broadcaster_connectivity=self.channel.broadcaster_connectivity if self._broadcasting else None,
            listener_connectivity=self._subscription.connectivity if self._subscription else None,
            last_error=self.last_error,
        )

    def select_role(self, role: Optional[Role]) -> None:
        """
        Switching roles releases whatever the previous role held.
        None goes back to role selection.
        """
        if role == self.role:
            return
        self.stop_broadcasting()
        self.stop_listening()
        self.role = role
        self._own_position = None
        self.last_error = None

    # --- Broadcaster side ---

    def start_broadcasting(self) -> None:
        if self.role != Role.BROADCASTER:
            raise ModeStateException(f"Cannot broadcast in role {self.role}")
        if self.sampler is None:
            raise ModeStateException("No position sampler configured for broadcasting")
        if self._broadcasting:
            return

        self.last_error = None
        self.channel.reset_broadcaster()
        self._broadcasting = True
        self._classifier = MovementClassifier(
            self.timer_factory(),
            policy=self.policy,
            on_status_change=self._on_status_change,
        )
        try:
            handle = self.sampler.start(self._on_sample, self._on_location_error)
        except SamplerBusy:
            self._broadcasting = False
            self._classifier = None
            raise
        if self._broadcasting:
            self._sample_handle = handle
            logger.info("Broadcasting %s", self.entity_id)

    def stop_broadcasting(self) -> None:
        if not self._broadcasting:
            return
        self._broadcasting = False

        if self.sampler is not None:
            self.sampler.stop(self._sample_handle)
        self._sample_handle = None

        if self._classifier is not None:
            self._classifier.reset()
        self._classifier = None

        # listeners see the bus go idle; its outcome belongs to the ended session
        if self._own_position is not None:
            self._spawn(self.channel.publish(self.entity_id, self._own_position, MovementStatus.IDLE))
        self.channel.reset_broadcaster()
        logger.info("Stopped broadcasting %s", self.entity_id)

    def _on_sample(self, sample: Sample) -> None:
        if not self._broadcasting or self._classifier is None:
            return
        self._own_position = sample.position

        self._observing = True
        try:
            self._classifier.observe(sample)
        finally:
            self._observing = False

        self._publish_current()

    def _on_status_change(self, status: MovementStatus) -> None:
        # changes raised inside observe() go out with that sample's publish
        if self._observing or not self._broadcasting:
            return
        self._publish_current()

    def _publish_current(self) -> None:
        if self._own_position is None or self._classifier is None:
            return
        self._spawn(self.channel.publish(self.entity_id, self._own_position, self._classifier.status))

    def _on_location_error(self, error: LocationError) -> None:
        self.last_error = error
        logger.error("Stopping broadcast for %s: %s", self.entity_id, error)
        self.stop_broadcasting()

    # --- Listener side ---

    def start_listening(self, destination: Optional[Position] = None) -> ChannelSubscription:
        """
        Follow the broadcaster. The route goes from the broadcaster to
        `destination`, or to this device's own position when no fixed
        destination is given and a listener sampler is configured.
        """
        if self.role != Role.LISTENER:
            raise ModeStateException(f"Cannot listen in role {self.role}")
        if self._subscription is not None:
            return self._subscription

        self.last_error = None
        self._destination = destination
        self._subscription = self.channel.subscribe(self.entity_id, on_record=self._on_record)

        if self.listener_sampler is not None:
            handle = self.listener_sampler.start(self._on_listener_sample, self._on_listener_error)
            if self.listener_sampler.active:
                self._listener_handle = handle

        return self._subscription

    def stop_listening(self) -> None:
        if self._subscription is None:
            return
        self.channel.unsubscribe(self._subscription)
        self._subscription = None
        self._stop_listener_tracking()
        self._destination = None
        if self.estimator is not None:
            self.estimator.clear()

    def _on_record(self, record: BroadcastRecord) -> None:
        self._refresh_route()

    def _on_listener_sample(self, sample: Sample) -> None:
        self._own_position = sample.position
        self._refresh_route()

    def _on_listener_error(self, error: LocationError) -> None:
        self.last_error = error
        logger.error("Stopping location tracking for listener of %s: %s", self.entity_id, error)
        self._stop_listener_tracking()
        self._refresh_route()

    def _stop_listener_tracking(self) -> None:
        if self.listener_sampler is not None:
            self.listener_sampler.stop(self._listener_handle)
        self._listener_handle = None
        if self.role == Role.LISTENER:
            self._own_position = None

    def _route_destination(self) -> Optional[Position]:
        return self._destination or self._own_position

    def _refresh_route(self) -> None:
        if self.estimator is None or self._subscription is None:
            return
        record = self._subscription.latest
        start = record.position if record else None
        self.estimator.maybe_request(start, self._route_destination())

    # --- Housekeeping ---

    def _spawn(self, coroutine) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coroutine)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """
        Wait for outstanding publishes and route requests. Failures are
        already reflected in the state, so they are not raised here.
        """
        while True:
            pending = set(self._tasks)
            if self.estimator is not None:
                pending |= set(self.estimator.pending_tasks())
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)
