import random
from typing import Callable, List

import httpx
import pytest

from trafficroute.incidents import IncidentStore
from trafficroute.models import GeoPoint, Incident, IncidentType, Reporter, Severity

HOUR_MS = 3600 * 1000


class FakeClock:
    """Epoch-millis clock that only moves when told to."""

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def empty_store(clock) -> IncidentStore:
    return IncidentStore(seed=[], clock=clock)


@pytest.fixture
def seeded_store(clock) -> IncidentStore:
    return IncidentStore(clock=clock)


@pytest.fixture
def line() -> Callable[..., List[GeoPoint]]:
    """East-west polyline at a fixed latitude, `n` evenly spaced points."""

    def build(lat: float, lon_start: float, lon_end: float, n: int = 11) -> List[GeoPoint]:
        step = (lon_end - lon_start) / (n - 1)
        return [GeoPoint(lat=lat, lon=lon_start + i * step) for i in range(n)]

    return build


@pytest.fixture
def system_incident() -> Callable[..., Incident]:
    def build(
        lat: float,
        lon: float,
        severity: Severity = Severity.critical,
        description: str = "Accident, road blocked",
        incident_id: str = "sys-test",
    ) -> Incident:
        return Incident(
            id=incident_id,
            location=GeoPoint(lat=lat, lon=lon),
            severity=severity,
            type=IncidentType.accident,
            description=description,
            reported_by=Reporter.system,
            timestamp=0,
        )

    return build


@pytest.fixture
def osrm_route() -> Callable[..., dict]:
    """Raw OSRM route entry for a list of GeoPoints."""

    def build(points: List[GeoPoint], distance: float = 1000.0, duration: float = 120.0) -> dict:
        return {
            "geometry": {"type": "LineString", "coordinates": [[p.lon, p.lat] for p in points]},
            "distance": distance,
            "duration": duration,
            "legs": [
                {
                    "steps": [
                        {"name": "Main Road", "maneuver": {"type": "depart", "instruction": "Head east on Main Road"}},
                        {"name": "", "maneuver": {"type": "arrive", "instruction": "You have arrived"}},
                    ]
                }
            ],
        }

    return build


@pytest.fixture
def mock_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    def build(handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return build


@pytest.fixture
def rng() -> random.Random:
    return random.Random(7)
