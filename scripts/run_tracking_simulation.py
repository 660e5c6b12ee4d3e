import argparse
import asyncio
import logging
import os

from modes.controller import ModeController, Role
from realtime.channel import SyncChannel
from realtime.store import InMemoryRealtimeStore
from routing.fallback_router import StraightLineRouter
from routing.osrm_client import OSRMClient
from routing.route_estimator import RouteEstimator
from tracking.models import Position
from tracking.policy import policy_from_env
from tracking.sampler import PositionSampler, ReplayLocationSource
from tracking.timers import ManualScheduler

BUS_ID = "bus-42"
MY_STOP = Position(5.6060, -0.1850) # Static destination for the demo rider


def build_router():
    # Use the real road network when an OSRM server is configured in .env
    if os.getenv("BASE_URL"):
        return OSRMClient(profile="driving", timeout=10)
    print("BASE_URL not set, falling back to straight-line routing.\n")
    return StraightLineRouter()


async def settle(*controllers):
    # let store pushes land, then wait for publishes / route requests
    for _ in range(3):
        await asyncio.sleep(0)
        for controller in controllers:
            await controller.drain()


async def run_simulation(trip_csv: str):
    print("=== STARTING END-TO-END TRACKING SIMULATION ===")

    # 1. Load Data
    policy = policy_from_env()
    source = ReplayLocationSource.from_csv(trip_csv)
    print(f"Loaded {len(source.fixes)} fixes from '{trip_csv}'.\n")

    # 2. Configure System (virtual clock so the replay is deterministic)
    scheduler = ManualScheduler(start_ms=source.fixes[0][2] if source.fixes else 0)
    store = InMemoryRealtimeStore()
    channel = SyncChannel(store, table=policy.broadcast_table, clock=scheduler.clock)

    driver = ModeController(
        BUS_ID,
        channel,
        sampler=PositionSampler(source, policy, clock=scheduler.clock),
        policy=policy,
        timer_factory=scheduler.timer,
    )
    rider = ModeController(
        BUS_ID,
        channel,
        estimator=RouteEstimator(build_router(), policy),
        policy=policy,
    )

    # 3. Rider starts following the bus before it leaves
    rider.select_role(Role.LISTENER)
    rider.start_listening(destination=MY_STOP)
    await settle(rider)
    print(f"Rider channel: {rider.state().listener_connectivity.value}")

    # 4. Driver goes live and the trace is replayed fix by fix
    driver.select_role(Role.BROADCASTER)
    driver.start_broadcasting()

    print("\n--- Timeline ---")
    last_status = None
    for lat, lon, timestamp_ms in source.fixes:
        scheduler.advance_to(timestamp_ms)
        source.emit(lat, lon, timestamp_ms)
        await settle(driver, rider)

        state = rider.state()
        if state.movement_status != last_status:
            labels = state.eta_labels
            print(f"t={timestamp_ms / 1000:6.1f}s  {state.status_label:<12} ETA {labels['eta']:<10} distance {labels['distance']}")
            last_status = state.movement_status

    # 5. No more fixes: the stop timer decides
    scheduler.advance_by(policy.stop_debounce_ms)
    await settle(driver, rider)
    state = rider.state()
    print(f"t={scheduler.now_ms / 1000:6.1f}s  {state.status_label:<12} (after {policy.stop_debounce_ms}ms quiet period)")

    driver.stop_broadcasting()
    await settle(driver, rider)

    print("\n=== SIMULATION COMPLETE ===")
    final = rider.state()
    print(f"Final bus status seen by rider: {final.status_label}")
    print(f"Publishes stored: {store.upsert_count}")
    if final.route_warning:
        print(f"Route warning: {final.route_warning}")

    rider.stop_listening()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Replay a GPS trace through broadcaster and rider.")
    parser.add_argument("trip_csv", nargs="?", default="mock_trip.csv")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    asyncio.run(run_simulation(args.trip_csv))
