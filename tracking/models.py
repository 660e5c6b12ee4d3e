"""
Purpose: Core data models for the tracking domain.
What it does:
Defines positions, timestamped samples and the discrete movement status
a broadcaster can be in. No I/O, no timers, models only.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Tuple

# internal coordinate type : (lat, lon)
LatLon = Tuple[float, float]


class MovementStatus(str, Enum):
    """
    The state a broadcaster is shown in.
    IDLE covers both "not broadcasting" and "no second sample yet".
    """
    IDLE = "idle"
    MOVING = "moving"
    STOPPED = "stopped"


@dataclass(frozen=True)
class Position:
    """
    A WGS-84 coordinate in degrees.
    """
    latitude: float
    longitude: float

    @classmethod
    def from_latlon(cls, coordinates: LatLon) -> Position:
        latitude, longitude = coordinates
        return cls(latitude=float(latitude), longitude=float(longitude))

    def as_latlon(self) -> LatLon:
        return (self.latitude, self.longitude)

    def displacement_to(self, other: Position) -> float:
        """
        Euclidean distance in degree space (not geodesic).
        Good enough at metro scale: 5e-5 degrees is roughly 5 meters.
        """
        return math.sqrt(
            (self.latitude - other.latitude) ** 2 +
            (self.longitude - other.longitude) ** 2
        )


@dataclass(frozen=True)
class Sample:
    """
    One position fix as delivered by the location source.
    """
    position: Position
    captured_at_ms: int

    @classmethod
    def new(cls, latitude: float, longitude: float, captured_at_ms: int) -> Sample:
        return cls(position=Position(latitude, longitude), captured_at_ms=int(captured_at_ms))
