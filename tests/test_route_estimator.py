import asyncio
import itertools
import threading

import pytest

from routing.osrm_client import NoRouteFound, RouteComputationFailed
from routing.route_estimator import RouteEstimate, RouteEstimator
from tracking.models import Position
from tracking.policy import TrackingPolicy

A = Position(5.6037, -0.1870)
B = Position(5.6060, -0.1850)
C = Position(5.6080, -0.1830)


class ScriptedRouter:
    """
    Routing provider double. Each destination has a gate (threading.Event)
    so a test decides when, and in which order, responses come back.
    """
    def __init__(self):
        self.outcomes = {}
        self.calls = []

    def add(self, destination, outcome, gate=None):
        self.outcomes[destination.as_latlon()] = (gate, outcome)

    def compute_route(self, coordinates):
        self.calls.append(tuple(coordinates))
        gate, outcome = self.outcomes[coordinates[1]]
        if gate is not None and not gate.wait(timeout=5):
            raise RouteComputationFailed("test gate never opened")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def test_late_response_from_older_request_is_discarded():
    """
    seq=1 (A->B) is slow, seq=2 (A->C) answers first with 500m/120s.
    seq=1's 300m/90s arriving afterwards must not overwrite it.
    """
    async def scenario():
        router = ScriptedRouter()
        slow = threading.Event()
        router.add(B, {"distance": 300.0, "duration": 90.0}, gate=slow)
        router.add(C, {"distance": 500.0, "duration": 120.0})
        estimator = RouteEstimator(router)

        first = estimator.request_route(A, B)
        second = estimator.request_route(A, C)
        assert estimator.current_request.sequence_number == 2

        assert await second == RouteEstimate(500.0, 120.0)
        assert estimator.estimate == RouteEstimate(500.0, 120.0)

        slow.set()
        # the stale task still resolves to its own answer
        assert await first == RouteEstimate(300.0, 90.0)
        return estimator

    estimator = asyncio.run(scenario())
    assert estimator.estimate == RouteEstimate(500.0, 120.0)
    assert estimator.in_flight == 0


@pytest.mark.parametrize("release_order", list(itertools.permutations(range(4))))
def test_highest_sequence_wins_for_any_arrival_order(release_order):
    destinations = [Position(5.61 + i * 0.01, -0.18) for i in range(4)]

    async def scenario():
        router = ScriptedRouter()
        gates = []
        for index, destination in enumerate(destinations):
            gate = threading.Event()
            gates.append(gate)
            router.add(destination, {"distance": 100.0 * (index + 1), "duration": 10.0 * (index + 1)}, gate=gate)

        estimator = RouteEstimator(router)
        tasks = [estimator.request_route(A, destination) for destination in destinations]

        for index in release_order:
            gates[index].set()
            await tasks[index]
        return estimator.estimate

    assert asyncio.run(scenario()) == RouteEstimate(400.0, 40.0)


def test_failure_keeps_previous_estimate_as_soft_warning():
    async def scenario():
        router = ScriptedRouter()
        router.add(B, {"distance": 300.0, "duration": 90.0})
        router.add(C, NoRouteFound("island"))
        estimator = RouteEstimator(router)

        await estimator.request_route(A, B)
        with pytest.raises(NoRouteFound):
            await estimator.request_route(A, C)
        return estimator

    estimator = asyncio.run(scenario())
    assert estimator.estimate == RouteEstimate(300.0, 90.0)
    assert isinstance(estimator.last_error, NoRouteFound)


def test_success_clears_previous_warning():
    async def scenario():
        router = ScriptedRouter()
        router.add(B, RouteComputationFailed("timeout"))
        router.add(C, {"distance": 500.0, "duration": 120.0})
        estimator = RouteEstimator(router)

        with pytest.raises(RouteComputationFailed):
            await estimator.request_route(A, B)
        assert estimator.last_error is not None

        await estimator.request_route(A, C)
        return estimator

    estimator = asyncio.run(scenario())
    assert estimator.last_error is None
    assert estimator.estimate == RouteEstimate(500.0, 120.0)


def test_failure_of_stale_request_is_not_reported():
    async def scenario():
        router = ScriptedRouter()
        slow = threading.Event()
        router.add(B, RouteComputationFailed("network down"), gate=slow)
        router.add(C, {"distance": 500.0, "duration": 120.0})
        estimator = RouteEstimator(router)

        first = estimator.request_route(A, B)
        await estimator.request_route(A, C)
        slow.set()
        with pytest.raises(RouteComputationFailed):
            await first
        return estimator

    estimator = asyncio.run(scenario())
    assert estimator.last_error is None
    assert estimator.estimate == RouteEstimate(500.0, 120.0)


def test_malformed_provider_response_is_a_computation_failure():
    async def scenario():
        router = ScriptedRouter()
        router.add(B, {"distance": -5.0, "duration": 10.0})
        estimator = RouteEstimator(router)
        with pytest.raises(RouteComputationFailed):
            await estimator.request_route(A, B)
        return estimator

    estimator = asyncio.run(scenario())
    assert estimator.estimate is None
    assert isinstance(estimator.last_error, RouteComputationFailed)


def test_unexpected_provider_crash_is_reported_as_warning():
    async def scenario():
        router = ScriptedRouter()
        router.add(B, {"distance": 300.0, "duration": 90.0})
        router.add(C, RuntimeError("socket pool exhausted"))
        estimator = RouteEstimator(router)
        await estimator.request_route(A, B)
        with pytest.raises(RouteComputationFailed):
            await estimator.request_route(A, C)
        return estimator

    estimator = asyncio.run(scenario())
    assert estimator.estimate == RouteEstimate(300.0, 90.0)
    assert isinstance(estimator.last_error, RouteComputationFailed)
    assert "socket pool exhausted" in str(estimator.last_error)
    assert isinstance(estimator.last_error.__cause__, RuntimeError)


def test_maybe_request_skips_jitter_below_min_delta():
    async def scenario():
        router = ScriptedRouter()
        router.add(B, {"distance": 300.0, "duration": 90.0})
        estimator = RouteEstimator(router, TrackingPolicy(route_min_delta_deg=1e-4))

        first = estimator.maybe_request(A, B)
        await first

        jitter = Position(A.latitude + 5e-5, A.longitude)
        assert estimator.maybe_request(jitter, B) is None

        moved = Position(A.latitude + 5e-4, A.longitude)
        second = estimator.maybe_request(moved, B)
        assert second is not None
        await second
        return router, estimator

    router, estimator = asyncio.run(scenario())
    assert len(router.calls) == 2
    assert estimator.sequence_number == 2


def test_maybe_request_retries_after_failure():
    async def scenario():
        router = ScriptedRouter()
        router.add(B, RouteComputationFailed("timeout"))
        estimator = RouteEstimator(router)

        with pytest.raises(RouteComputationFailed):
            await estimator.maybe_request(A, B)

        retry = estimator.maybe_request(A, B)
        assert retry is not None
        with pytest.raises(RouteComputationFailed):
            await retry
        return router

    assert len(asyncio.run(scenario()).calls) == 2


def test_missing_endpoint_clears_estimate_and_in_flight_answers():
    async def scenario():
        router = ScriptedRouter()
        slow = threading.Event()
        router.add(B, {"distance": 300.0, "duration": 90.0})
        router.add(C, {"distance": 500.0, "duration": 120.0}, gate=slow)
        estimator = RouteEstimator(router)

        await estimator.request_route(A, B)
        assert estimator.estimate is not None

        in_flight = estimator.request_route(A, C)
        assert estimator.maybe_request(A, None) is None
        assert estimator.estimate is None

        slow.set()
        await in_flight
        return estimator

    estimator = asyncio.run(scenario())
    assert estimator.estimate is None
    assert estimator.current_request is None


def test_route_estimate_rejects_negative_values():
    with pytest.raises(ValueError):
        RouteEstimate(distance_m=-1.0, eta_s=0.0)
    with pytest.raises(ValueError):
        RouteEstimate(distance_m=0.0, eta_s=-1.0)
    assert RouteEstimate(0.0, 0.0).distance_m == 0.0
