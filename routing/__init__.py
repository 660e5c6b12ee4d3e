#Marks routing as a package.
#Re-exports the public API (OSRMClient, RouteEstimator, ETA labels, routing errors)
#so other modules import from routing without knowing internal file names.
#No business logic.

from .osrm_client import OSRMClient, RoutingError, RouteComputationFailed, NoRouteFound
from .fallback_router import StraightLineRouter
from .route_estimator import RouteEstimator, RouteEstimate, RouteRequest
from .eta_service import describe_estimate, format_distance_km, format_eta_minutes

__all__ = [
           "OSRMClient",
           "StraightLineRouter",
           "RoutingError",
           "RouteComputationFailed",
           "NoRouteFound",
           "RouteEstimator",
           "RouteEstimate",
           "RouteRequest",
           "describe_estimate",
           "format_distance_km",
           "format_eta_minutes",
           ]
