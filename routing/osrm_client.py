#Purpose: The OSRM "adapter/client".
#Sole responsibility: talk to OSRM via HTTP and return normalized outputs.
#Encapsulates OSRM-specific details:
#coordinate formatting (lon,lat)
#URL construction (/route)
#timeouts and error translation (NoRoute vs network/provider failure)
#parsing response JSON into our internal shape
#It should not contain recomputation policy or staleness rules (see route_estimator.py).


from dotenv import load_dotenv
import logging
import os
from typing import List, Tuple, Dict, Optional
import requests

# Read OSRM base URL from environment
# Example in .env:
# BASE_URL=http://router.project-osrm.org
load_dotenv()
BASE_URL = os.getenv("BASE_URL")

logger = logging.getLogger(__name__)

# Internal coordinate type: (lat, lon)
LatLon = Tuple[float, float]


class RoutingError(Exception):
    """Base class for routing provider failures."""
    pass


class RouteComputationFailed(RoutingError):
    """Network error, timeout or provider-side failure."""
    pass


class NoRouteFound(RoutingError):
    """Provider reachable but there is no road path between the points."""
    pass


class OSRMClient:
    """
    OSRM Adapter / Client

    Sole responsibility:
    - Talk to OSRM via HTTP
    - Convert internal (lat, lon) → OSRM (lon,lat)
    - Return normalized outputs

    """
    def __init__(self, profile: str = "driving", timeout: int = 5,
                 base_url: Optional[str] = None, session: Optional[requests.Session] = None):
        self.base_url = (base_url or BASE_URL or "").rstrip("/")
        self.timeout = timeout #the time to wait for a response from OSRM before giving up
        self.profile = profile #the mode of transportation (driving, walking, cycling)
        self.session = session or requests.Session()

        if not self.base_url:
            raise ValueError("OSRM base URL not set. Please set BASE_URL in the .env file.")

    #----------------
    # Internal helpers
    #----------------
    def format_coordinates(self, coords: List[LatLon]) -> str:
        """Convert list of (lat, lon) to OSRM format 'lon,lat;lon,lat;...'"""
        return ';'.join([f"{lon},{lat}" for lat, lon in coords])

    #----------------
    # route service
    #----------------
    def compute_route(self, coordinates: List[LatLon]) -> Dict[str, float]:
        """
            calls the OSRM /route endpoint with the given coordinates and
            returns a dict with distance and duration of the road-snapped route

            Returns:
                {
                    "distance": float, # in meters
                    "duration": float, # in seconds
                }

            Raises:
                NoRouteFound: OSRM answered but could not snap a path
                RouteComputationFailed: network / HTTP / provider error
        """
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required to compute a route.")

        url = f"{self.base_url}/route/v1/{self.profile}/{self.format_coordinates(coordinates)}"

        try:
            response = self.session.get(
                url,
                params={
                    "overview": "false",  # we don't need the geometry of the route
                },
                timeout=self.timeout,
            )
            data = response.json() #OSRM answers JSON even on most 4xx
        except requests.RequestException as e:
            raise RouteComputationFailed(f"OSRM request failed: {e}") from e
        except ValueError as e:
            raise RouteComputationFailed(f"OSRM returned a non-JSON response (HTTP {response.status_code})") from e

        code = data.get("code")
        if code == "NoRoute":
            raise NoRouteFound(data.get("message", "No route found between the given points"))
        if code != "Ok":
            raise RouteComputationFailed(f"OSRM error: {data.get('message', code or 'Unknown error')}")

        routes = data.get("routes") or []
        if not routes:
            raise NoRouteFound("OSRM returned no routes")

        route = routes[0] #take the first route (OSRM may return alternatives)
        logger.debug("OSRM route %s: %.1fm %.1fs", url, route["distance"], route["duration"])

        #Normalize output to internal format
        return {
            "distance": float(route["distance"]),
            "duration": float(route["duration"]),
        }
