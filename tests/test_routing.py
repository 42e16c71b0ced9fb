import asyncio

import httpx
import pytest

from trafficroute import config
from trafficroute.geo import distance_km
from trafficroute.models import GeoPoint, Severity, TravelMode
from trafficroute.incidents import IncidentStore
from trafficroute.routing import FALLBACK_INSTRUCTION, Geocoder, GeocodingError, RouteProvider

START = GeoPoint(lat=51.505, lon=-0.09)
END = GeoPoint(lat=51.515, lon=-0.07)


def _assert_fallback(route):
    assert route.coordinates == [START, END]
    assert route.distance_meters == pytest.approx(distance_km(START, END) * 1000)
    assert route.duration_seconds == pytest.approx(distance_km(START, END) * 60)
    assert route.instructions == [FALLBACK_INSTRUCTION]
    assert route.alternatives == []


def test_transport_failure_falls_back_to_direct_path(empty_store, mock_client):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    provider = RouteProvider(empty_store, client=mock_client(handler), base_url="http://osrm.test")
    route = asyncio.run(provider.get_route([START, END], False))
    _assert_fallback(route)


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="upstream exploded"),
        httpx.Response(200, json={"code": "NoRoute", "message": "Impossible route"}),
        httpx.Response(200, json={"code": "Ok", "routes": []}),
        httpx.Response(200, text="<html>not json</html>"),
        httpx.Response(200, json={"code": "Ok", "routes": [{"distance": 1}]}),
    ],
    ids=["http-500", "osrm-error", "no-routes", "not-json", "malformed-route"],
)
def test_unusable_answers_fall_back(empty_store, mock_client, response):
    provider = RouteProvider(empty_store, client=mock_client(lambda request: response), base_url="http://osrm.test")
    route = asyncio.run(provider.get_route([START, END], True))
    _assert_fallback(route)


def test_fewer_than_two_points_is_not_found(empty_store, mock_client):
    def handler(request):
        pytest.fail("no request expected")

    provider = RouteProvider(empty_store, client=mock_client(handler), base_url="http://osrm.test")
    assert asyncio.run(provider.get_route([START], False)) is None


def test_parses_primary_and_alternatives(empty_store, mock_client, osrm_route, line):
    primary = line(51.505, -0.09, -0.07)
    alt_one = line(51.507, -0.09, -0.07)
    alt_two = line(51.509, -0.09, -0.07)
    alt_three = line(51.511, -0.09, -0.07)
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "code": "Ok",
                "routes": [
                    osrm_route(primary, 1500, 200),
                    osrm_route(alt_one, 1600, 210),
                    osrm_route(alt_two, 1700, 220),
                    osrm_route(alt_three, 1800, 230),
                ],
            },
        )

    provider = RouteProvider(empty_store, client=mock_client(handler), base_url="http://osrm.test")
    route = asyncio.run(provider.get_route([START, END], False))

    assert route.coordinates == primary
    assert route.distance_meters == 1500
    assert route.duration_seconds == 200
    assert route.instructions == ["Head east on Main Road", "You have arrived"]
    assert [alt.label for alt in route.alternatives] == ["Alternative 1", "Alternative 2"]
    assert route.alternatives[0].coordinates == alt_one
    assert route.alternatives[1].distance_meters == 1700

    request = seen[0]
    assert request.url.path == "/route/v1/driving/-0.09,51.505;-0.07,51.515"
    assert request.url.params["alternatives"] == "true"
    assert request.url.params["number"] == "3"
    assert request.url.params["geometries"] == "geojson"
    assert request.url.params["steps"] == "true"
    assert config.ROUTING_EXCLUDE_PARAM not in request.url.params


def test_avoid_severe_sends_exclusions(clock, mock_client, osrm_route, system_incident):
    store = IncidentStore(
        seed=[
            system_incident(51.51, -0.08, Severity.critical, incident_id="a"),
            system_incident(51.52, -0.06, Severity.minor, incident_id="b"),
            system_incident(51.50, -0.05, Severity.major, incident_id="c"),
        ],
        clock=clock,
    )
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"code": "Ok", "routes": [osrm_route([START, END])]})

    provider = RouteProvider(store, client=mock_client(handler), base_url="http://osrm.test")
    asyncio.run(provider.get_route([START, END], True, TravelMode.emergency))

    assert seen[0].url.params[config.ROUTING_EXCLUDE_PARAM] == "-0.08,51.51;-0.05,51.5"


def test_school_mode_visits_waypoints_in_order(seeded_store, mock_client, osrm_route):
    stops = [GeoPoint(lat=51.510, lon=-0.095), GeoPoint(lat=51.512, lon=-0.100)]
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"code": "Ok", "routes": [osrm_route([START, *stops, END])]})

    provider = RouteProvider(seeded_store, client=mock_client(handler), base_url="http://osrm.test")
    route = asyncio.run(provider.get_route([START, *stops, END], True, TravelMode.school))

    params = seen[0].url.params
    assert seen[0].url.path.endswith("-0.09,51.505;-0.095,51.51;-0.1,51.512;-0.07,51.515")
    assert params["alternatives"] == "false"
    assert "number" not in params
    assert config.ROUTING_EXCLUDE_PARAM not in params
    assert route.coordinates == [START, *stops, END]
    assert route.alternatives == []


def test_instruction_text_is_composed_when_missing(empty_store, mock_client):
    raw = {
        "geometry": {"coordinates": [[START.lon, START.lat], [END.lon, END.lat]]},
        "distance": 10,
        "duration": 2,
        "legs": [{"steps": [{"name": "High Street", "maneuver": {"type": "turn", "modifier": "left"}}]}],
    }
    handler = lambda request: httpx.Response(200, json={"code": "Ok", "routes": [raw]})

    provider = RouteProvider(empty_store, client=mock_client(handler), base_url="http://osrm.test")
    route = asyncio.run(provider.get_route([START, END], False))
    assert route.instructions == ["turn left onto High Street"]


def test_geocoder_parses_results(mock_client):
    def handler(request):
        assert request.url.params["q"] == "Tower Bridge"
        return httpx.Response(
            200, json=[{"lat": "51.5055", "lon": "-0.0754", "display_name": "Tower Bridge, London"}]
        )

    geocoder = Geocoder(client=mock_client(handler), base_url="http://geo.test")
    results = asyncio.run(geocoder.search("Tower Bridge"))
    assert results[0].lat == pytest.approx(51.5055)
    assert results[0].display_name == "Tower Bridge, London"

    point = asyncio.run(geocoder.first("Tower Bridge"))
    assert point == GeoPoint(lat=51.5055, lon=-0.0754)


def test_geocoder_errors_propagate(mock_client):
    geocoder = Geocoder(client=mock_client(lambda request: httpx.Response(503)), base_url="http://geo.test")
    with pytest.raises(GeocodingError):
        asyncio.run(geocoder.search("anywhere"))
