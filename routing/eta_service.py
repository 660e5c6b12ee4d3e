#Purpose: ETA presentation policy.
#Converts a RouteEstimate into what the rider sees:
#"arrives in ~N Mins" (minutes rounded up, never shows 0 for a moving bus)
#"X.X km" distance with one decimal
#"Waiting..." while there is no estimate yet
#Keeps display rules separate from route computation (route_estimator.py).

import math
from typing import Dict, Optional

from .route_estimator import RouteEstimate

WAITING = "Waiting..."


def format_distance_km(distance_m: float) -> str:
    """meters -> kilometres with one decimal, e.g. 1530 -> '1.5'"""
    return f"{distance_m / 1000:.1f}"


def format_eta_minutes(eta_s: float) -> int:
    """seconds -> whole minutes, rounded up"""
    return math.ceil(eta_s / 60)


def describe_estimate(estimate: Optional[RouteEstimate]) -> Dict[str, str]:
    """
    Rider-facing labels for the ETA and distance tiles.
    """
    if estimate is None:
        return {"eta": WAITING, "distance": WAITING}

    return {
        "eta": f"~{format_eta_minutes(estimate.eta_s)} Mins",
        "distance": f"{format_distance_km(estimate.distance_m)} km",
    }
