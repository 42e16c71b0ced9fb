import math

import pytest

from trafficroute.geo import distance_km, distance_m, path_length_km
from trafficroute.models import GeoPoint

POINTS = [
    GeoPoint(lat=0.0, lon=0.0),
    GeoPoint(lat=51.505, lon=-0.09),
    GeoPoint(lat=11.002, lon=76.001),
    GeoPoint(lat=-33.8688, lon=151.2093),
    GeoPoint(lat=89.9, lon=179.9),
]


@pytest.mark.parametrize("point", POINTS)
def test_distance_to_self_is_zero(point):
    assert distance_km(point, point) == 0


def test_distance_is_symmetric_and_non_negative():
    for a in POINTS:
        for b in POINTS:
            assert distance_km(a, b) >= 0
            assert distance_km(a, b) == pytest.approx(distance_km(b, a))


def test_one_degree_of_longitude_at_equator():
    # 2 * pi * R / 360
    expected = 2 * math.pi * 6371.0 / 360
    assert distance_km(GeoPoint(lat=0, lon=0), GeoPoint(lat=0, lon=1)) == pytest.approx(expected)


def test_known_city_pair():
    london = GeoPoint(lat=51.5074, lon=-0.1278)
    paris = GeoPoint(lat=48.8566, lon=2.3522)
    assert distance_km(london, paris) == pytest.approx(343.5, abs=1.0)


def test_distance_grows_along_a_fixed_bearing():
    origin = GeoPoint(lat=10.0, lon=20.0)
    previous = 0.0
    for i in range(1, 50):
        d = distance_km(origin, GeoPoint(lat=10.0 + i * 0.5, lon=20.0))
        assert d > previous
        previous = d


def test_antipodal_points_do_not_blow_up():
    d = distance_km(GeoPoint(lat=0, lon=0), GeoPoint(lat=0, lon=180))
    assert d == pytest.approx(math.pi * 6371.0)


def test_distance_m_and_path_length(line):
    a, b = GeoPoint(lat=0, lon=0), GeoPoint(lat=0, lon=0.01)
    assert distance_m(a, b) == pytest.approx(distance_km(a, b) * 1000)

    points = line(0.0, 0.0, 0.01, n=5)
    assert path_length_km(points) == pytest.approx(distance_km(points[0], points[-1]))
    assert path_length_km(points[:1]) == 0
    assert path_length_km([]) == 0
