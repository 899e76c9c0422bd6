import math

import pytest

from fieldclock.services.geo import (
    driving_miles,
    format_position,
    haversine_miles,
    parse_coordinates,
    parse_odometer,
)

CHICAGO = (41.8781, -87.6298)
MILWAUKEE = (43.0389, -87.9065)


def test_haversine_same_point_is_zero():
    assert haversine_miles(*CHICAGO, *CHICAGO) == 0


def test_haversine_is_symmetric():
    assert haversine_miles(*CHICAGO, *MILWAUKEE) == pytest.approx(haversine_miles(*MILWAUKEE, *CHICAGO))


def test_haversine_chicago_to_milwaukee():
    assert 80 < haversine_miles(*CHICAGO, *MILWAUKEE) < 83


def test_driving_miles_applies_factor():
    straight = haversine_miles(*CHICAGO, *MILWAUKEE)
    assert driving_miles(*CHICAGO, *MILWAUKEE) == pytest.approx(straight * 1.50)
    assert driving_miles(*CHICAGO, *MILWAUKEE, factor=1.19) == pytest.approx(straight * 1.19)


def test_haversine_nan_propagates():
    assert math.isnan(haversine_miles(float("nan"), 0, 0, 0))


@pytest.mark.parametrize("value,expected", [
    ("41.8781,-87.6298", (41.8781, -87.6298)),
    (" 41.8781 , -87.6298 ", (41.8781, -87.6298)),
    ("0,0", (0.0, 0.0)),
])
def test_parse_coordinates_valid(value, expected):
    assert parse_coordinates(value) == expected


@pytest.mark.parametrize("value", [
    "1,250",        # odometer with thousands separator
    "12,345.6",
    "91,0",         # latitude out of range
    "45,181",
    "1,2,3",
    "north,south",
    "nan,nan",
    "",
    None,
    "1250",
])
def test_parse_coordinates_rejects(value):
    assert parse_coordinates(value) is None


def test_parse_odometer():
    assert parse_odometer("1,250") == 1250.0
    assert parse_odometer("98765.4") == 98765.4
    assert parse_odometer(1250) == 1250.0
    assert parse_odometer("") is None
    assert parse_odometer("n/a") is None


def test_format_position_round_trips_through_parser():
    assert parse_coordinates(format_position(41.5, -88.25)) == (41.5, -88.25)
