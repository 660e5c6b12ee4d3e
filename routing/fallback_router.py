#Purpose: Offline routing provider.
#Used when no OSRM server is configured (simulation, local demos).
#Same contract as OSRMClient.compute_route, but the "route" is the great-circle
#distance stretched by a detour factor and driven at a fixed average speed.
#Not road-snapped: never use it where a real ETA is promised.

import math
from typing import Dict, List, Tuple

LatLon = Tuple[float, float]

EARTH_RADIUS_M = 6_371_000


def haversine_m(a: LatLon, b: LatLon) -> float:
    """Distance in meters between two (lat, lon) points."""
    lat1, lon1 = map(math.radians, a)
    lat2, lon2 = map(math.radians, b)
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(h))


class StraightLineRouter:
    """
    Fallback provider: distance = haversine * detour_factor,
    duration = distance / average speed.
    """
    def __init__(self, average_speed_mps: float = 8.0, detour_factor: float = 1.3):
        if average_speed_mps <= 0:
            raise ValueError("average_speed_mps must be > 0")
        if detour_factor < 1:
            raise ValueError("detour_factor must be >= 1")
        self.average_speed_mps = average_speed_mps
        self.detour_factor = detour_factor

    def compute_route(self, coordinates: List[LatLon]) -> Dict[str, float]:
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required to compute a route.")

        distance = 0.0
        for start, end in zip(coordinates, coordinates[1:]):
            distance += haversine_m(start, end)
        distance *= self.detour_factor

        return {
            "distance": distance,
            "duration": distance / self.average_speed_mps,
        }
