import math

import pytest

from medtour.search.geo import EARTH_RADIUS_M, distance_meters

POINTS = [
    (55.7558, 37.6173),
    (59.9343, 30.3351),
    (43.5855, 39.7231),
    (-33.8688, 151.2093),
    (0.0, 0.0),
]


@pytest.mark.parametrize("lat,lon", POINTS)
def test_distance_to_itself_is_zero(lat, lon):
    assert distance_meters(lat, lon, lat, lon) == 0.0


def test_distance_is_symmetric():
    for lat1, lon1 in POINTS:
        for lat2, lon2 in POINTS:
            assert distance_meters(lat1, lon1, lat2, lon2) == distance_meters(lat2, lon2, lat1, lon1)


def test_moscow_to_saint_petersburg():
    d = distance_meters(55.7558, 37.6173, 59.9343, 30.3351)
    assert 630_000 < d < 640_000


def test_quarter_of_the_equator():
    d = distance_meters(0.0, 0.0, 0.0, 90.0)
    assert d == pytest.approx(math.pi / 2 * EARTH_RADIUS_M)


def test_nan_coordinates_propagate():
    assert math.isnan(distance_meters(float("nan"), 0.0, 10.0, 10.0))
