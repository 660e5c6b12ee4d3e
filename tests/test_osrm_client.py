import pytest
import requests

from routing.fallback_router import StraightLineRouter, haversine_m
from routing.osrm_client import NoRouteFound, OSRMClient, RouteComputationFailed


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    def __init__(self, outcome):
        self.outcome = outcome
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append({"url": url, "params": params, "timeout": timeout})
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


def make_client(outcome):
    session = FakeSession(outcome)
    client = OSRMClient(profile="driving", timeout=7, base_url="http://osrm.test/", session=session)
    return client, session


def test_compute_route_formats_lon_lat_and_normalizes_output():
    client, session = make_client(FakeResponse({
        "code": "Ok",
        "routes": [{"distance": 812.4, "duration": 131.0}, {"distance": 900.0, "duration": 150.0}],
    }))

    result = client.compute_route([(5.6037, -0.1870), (5.6060, -0.1850)])

    assert result == {"distance": 812.4, "duration": 131.0}
    request = session.requests[0]
    assert request["url"] == "http://osrm.test/route/v1/driving/-0.187,5.6037;-0.185,5.606"
    assert request["params"] == {"overview": "false"}
    assert request["timeout"] == 7


def test_no_route_code_raises_no_route_found():
    client, _ = make_client(FakeResponse({"code": "NoRoute", "message": "Impossible route between points"}))

    with pytest.raises(NoRouteFound):
        client.compute_route([(5.6037, -0.1870), (5.6060, -0.1850)])


def test_empty_route_list_raises_no_route_found():
    client, _ = make_client(FakeResponse({"code": "Ok", "routes": []}))

    with pytest.raises(NoRouteFound):
        client.compute_route([(5.6037, -0.1870), (5.6060, -0.1850)])


def test_provider_error_code_raises_computation_failed():
    client, _ = make_client(FakeResponse({"code": "InvalidQuery", "message": "Query string malformed"}, 400))

    with pytest.raises(RouteComputationFailed, match="Query string malformed"):
        client.compute_route([(5.6037, -0.1870), (5.6060, -0.1850)])


def test_network_error_raises_computation_failed():
    client, _ = make_client(requests.ConnectionError("connection refused"))

    with pytest.raises(RouteComputationFailed):
        client.compute_route([(5.6037, -0.1870), (5.6060, -0.1850)])


def test_non_json_response_raises_computation_failed():
    client, _ = make_client(FakeResponse(ValueError("Expecting value"), 502))

    with pytest.raises(RouteComputationFailed, match="502"):
        client.compute_route([(5.6037, -0.1870), (5.6060, -0.1850)])


def test_needs_two_coordinates():
    client, _ = make_client(FakeResponse({"code": "Ok", "routes": []}))

    with pytest.raises(ValueError):
        client.compute_route([(5.6037, -0.1870)])


def test_missing_base_url_is_rejected(monkeypatch):
    monkeypatch.setattr("routing.osrm_client.BASE_URL", None)
    with pytest.raises(ValueError):
        OSRMClient()


def test_straight_line_router_stretches_great_circle_distance():
    router = StraightLineRouter(average_speed_mps=10.0, detour_factor=1.5)
    a, b = (5.6037, -0.1870), (5.6060, -0.1850)

    result = router.compute_route([a, b])

    direct = haversine_m(a, b)
    assert 300 < direct < 350
    assert result["distance"] == pytest.approx(direct * 1.5)
    assert result["duration"] == pytest.approx(direct * 1.5 / 10.0)


def test_straight_line_router_validates_parameters():
    with pytest.raises(ValueError):
        StraightLineRouter(average_speed_mps=0)
    with pytest.raises(ValueError):
        StraightLineRouter(detour_factor=0.9)
