import pytest

from vegindex.services.exceptions import InvalidInput
from vegindex.services.indices import IndexType
from vegindex.utils.validation import (
    validate_cloud_tolerance,
    validate_coordinates,
    validate_index_request,
    validate_polygon,
)


def test_validate_coordinates_ranges():
    assert validate_coordinates(10, 105) == (True, None)
    valid, message = validate_coordinates(91, 0)
    assert not valid and "Latitude" in message
    valid, message = validate_coordinates(0, -181)
    assert not valid and "Longitude" in message


@pytest.mark.parametrize("value", [-1, 101, "abc", None])
def test_validate_cloud_tolerance_rejects(value):
    valid, message = validate_cloud_tolerance(value)
    assert not valid
    assert message


def test_polygon_needs_three_points():
    with pytest.raises(InvalidInput):
        validate_polygon([{"lat": 0, "lng": 0}, {"lat": 1, "lng": 1}])


def test_closing_point_does_not_count():
    ring = [{"lat": 0, "lng": 0}, {"lat": 0, "lng": 1}, {"lat": 0, "lng": 0}]
    with pytest.raises(InvalidInput):
        validate_polygon(ring)


def test_degenerate_polygon_rejected():
    line = [{"lat": 0, "lng": 0}, {"lat": 0, "lng": 1}, {"lat": 0, "lng": 2}]
    with pytest.raises(InvalidInput):
        validate_polygon(line)


def test_malformed_point_rejected():
    with pytest.raises(InvalidInput):
        validate_polygon([{"lat": 0}, {"lat": 0, "lng": 1}, {"lat": 1, "lng": 1}])


def test_validate_index_request(field_coordinates):
    request = validate_index_request(field_coordinates, "ndre", "35")
    assert request.index_type is IndexType.NDRE
    assert request.cloud_tolerance == 35.0
    assert len(request.polygon) == 4
