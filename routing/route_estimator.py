"""
Purpose: Route recomputation for the live ETA.
What it does:
- Asks the routing provider for a road-snapped route between the current
  (start, destination) pair and keeps the last good RouteEstimate.
- Every request gets a monotonically increasing sequence number. Only the
  response for the highest issued number may overwrite the stored estimate,
  so a slow, stale reply can never clobber a fresher one.
- Throttles recomputation: maybe_request() only asks again when an endpoint
  moved by more than the policy's minimum delta.

Failures leave the previous estimate in place (stale-but-available) and are
kept as a soft warning in `last_error`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol

from tracking.models import LatLon, Position
from tracking.policy import TrackingPolicy, default_tracking_policy
from .osrm_client import RouteComputationFailed, RoutingError

logger = logging.getLogger(__name__)


class RouteProvider(Protocol):
    def compute_route(self, coordinates: List[LatLon]) -> Dict[str, float]: ...


@dataclass(frozen=True)
class RouteEstimate:
    """
    Distance and travel time over the road network.
    """
    distance_m: float
    eta_s: float

    def __post_init__(self):
        if self.distance_m < 0 or self.eta_s < 0:
            raise ValueError(f"Route estimate cannot be negative ({self.distance_m}m, {self.eta_s}s)")


@dataclass(frozen=True)
class RouteRequest:
    start: Position
    destination: Position
    sequence_number: int


class RouteEstimator:
    """
    Keeps at most one request "current". Cancellation is logical: older
    requests keep running but their answers are ignored.
    """

    def __init__(self, provider: RouteProvider, policy: Optional[TrackingPolicy] = None):
        self.provider = provider
        self.policy = policy or default_tracking_policy()

        self.estimate: Optional[RouteEstimate] = None
        self.last_error: Optional[RoutingError] = None

        self._sequence = 0
        self._current: Optional[RouteRequest] = None
        self._pending: Dict[int, asyncio.Task] = {}

    @property
    def sequence_number(self) -> int:
        return self._sequence

    @property
    def current_request(self) -> Optional[RouteRequest]:
        return self._current

    @property
    def in_flight(self) -> int:
        return len(self._pending)

    def pending_tasks(self) -> List[asyncio.Task]:
        return list(self._pending.values())

    def request_route(self, start: Position, destination: Position) -> asyncio.Task:
        """
        Issue a new request and return it as a task resolving to its own
        RouteEstimate (or raising RouteComputationFailed / NoRouteFound).
        Must be called with a running event loop.
        """
        self._sequence += 1
        request = RouteRequest(start=start, destination=destination, sequence_number=self._sequence)
        self._current = request

        task = asyncio.get_running_loop().create_task(self._run(request))
        self._pending[request.sequence_number] = task
        task.add_done_callback(lambda done: self._forget(request.sequence_number, done))
        return task

    def _forget(self, sequence_number: int, task: asyncio.Task) -> None:
        self._pending.pop(sequence_number, None)
        if not task.cancelled():
            # already logged in _run; mark retrieved for fire-and-forget callers
            task.exception()

    def maybe_request(self, start: Optional[Position], destination: Optional[Position]) -> Optional[asyncio.Task]:
        """
        Recompute only if an endpoint moved more than route_min_delta_deg
        since the last issued pair (or the last attempt failed).
        A missing endpoint clears the estimate.
        """
        if start is None or destination is None:
            self.clear()
            return None

        current = self._current
        # a failed pair is retried on the next trigger
        if current is not None and self.last_error is None:
            delta = self.policy.route_min_delta_deg
            start_moved = start.displacement_to(current.start) > delta
            destination_moved = destination.displacement_to(current.destination) > delta
            if not start_moved and not destination_moved:
                return None

        return self.request_route(start, destination)

    def clear(self) -> None:
        """
        An endpoint went away: drop the estimate and make every in-flight
        answer stale.
        """
        if self._current is not None or self.estimate is not None:
            logger.debug("Clearing route estimate (seq %s)", self._sequence)
        self._sequence += 1
        self._current = None
        self.estimate = None
        self.last_error = None

    def is_current(self, sequence_number: int) -> bool:
        return self._current is not None and sequence_number == self._sequence

    async def _run(self, request: RouteRequest) -> RouteEstimate:
        coordinates = [request.start.as_latlon(), request.destination.as_latlon()]
        try:
            raw = await asyncio.to_thread(self.provider.compute_route, coordinates)
            estimate = RouteEstimate(distance_m=float(raw["distance"]), eta_s=float(raw["duration"]))
        except RoutingError as e:
            self._record_failure(request, e)
            raise
        except (KeyError, TypeError, ValueError) as e:
            error = RouteComputationFailed(f"Malformed route response: {e}")
            self._record_failure(request, error)
            raise error from e
        except Exception as e:
            # any other provider crash is still just a failed route
            error = RouteComputationFailed(f"Route provider error: {e!r}")
            self._record_failure(request, error)
            raise error from e

        if self.is_current(request.sequence_number):
            self.estimate = estimate
            self.last_error = None
        else:
            logger.debug(
                "Discarding stale route response seq=%s (current seq=%s)",
                request.sequence_number, self._sequence,
            )
        return estimate

    def _record_failure(self, request: RouteRequest, error: RoutingError) -> None:
        if not self.is_current(request.sequence_number):
            logger.debug("Ignoring failure of stale route request seq=%s: %s", request.sequence_number, error)
            return
        # keep the previous estimate, just flag it
        self.last_error = error
        logger.warning("Route computation failed (seq=%s): %s", request.sequence_number, error)
