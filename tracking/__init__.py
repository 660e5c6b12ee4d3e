"""
Tracking domain package.

Public API:
- Models: Position, Sample, MovementStatus
- Config: TrackingPolicy, default_tracking_policy, policy_from_env
- Location: PositionSampler, ReplayLocationSource and the location errors
- Classification: MovementClassifier
- Timers: DebounceTimer, ManualScheduler
"""
from .models import Position, Sample, MovementStatus, LatLon
from .policy import TrackingPolicy, default_tracking_policy, policy_from_env
from .timers import DebounceTimer, ManualScheduler, ManualTimer
from .sampler import (
    PositionSampler,
    ReplayLocationSource,
    LocationError,
    PermissionDenied,
    LocationUnavailable,
    SamplerBusy,
)
from .movement import MovementClassifier, ClassifierState

__all__ = [
    "Position",
    "Sample",
    "MovementStatus",
    "LatLon",
    "TrackingPolicy",
    "default_tracking_policy",
    "policy_from_env",
    "DebounceTimer",
    "ManualScheduler",
    "ManualTimer",
    "PositionSampler",
    "ReplayLocationSource",
    "LocationError",
    "PermissionDenied",
    "LocationUnavailable",
    "SamplerBusy",
    "MovementClassifier",
    "ClassifierState",
]
