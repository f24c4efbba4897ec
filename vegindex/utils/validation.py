from typing import Iterable, Optional, Tuple

from vegindex.models.domain import IndexRequest
from vegindex.services.exceptions import InvalidInput
from vegindex.services.indices import parse_index_type
from vegindex.utils.geometry import PointLike, Polygon, polygon_area_m2


def validate_coordinates(latitude: float, longitude: float) -> Tuple[bool, Optional[str]]:
    """
    Validate latitude and longitude coordinates.

    Args:
        latitude: Latitude value
        longitude: Longitude value

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not (-90 <= latitude <= 90):
        return False, f"Latitude must be between -90 and 90, got {latitude}"

    if not (-180 <= longitude <= 180):
        return False, f"Longitude must be between -180 and 180, got {longitude}"

    return True, None


def validate_cloud_tolerance(value) -> Tuple[bool, Optional[str]]:
    """
    Validate cloud coverage tolerance (percentage).

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        tolerance = float(value)
    except (TypeError, ValueError):
        return False, f"Cloud coverage must be a number, got {value!r}"

    if not (0 <= tolerance <= 100):
        return False, f"Cloud coverage must be between 0 and 100, got {tolerance:g}"

    return True, None


def validate_polygon(coordinates: Iterable[PointLike]) -> Polygon:
    """
    Build a Polygon from raw points, raising InvalidInput if unusable.

    Requires at least 3 distinct points, each within valid lat/lng ranges,
    enclosing a non-zero area.
    """
    try:
        polygon = Polygon.from_points(coordinates or [])
    except (TypeError, ValueError) as e:
        raise InvalidInput(f"Invalid coordinates: {e}") from None

    if len(polygon) < 3:
        raise InvalidInput("Invalid coordinates. At least 3 points required for a polygon.")

    for point in polygon.points:
        valid, message = validate_coordinates(point.lat, point.lng)
        if not valid:
            raise InvalidInput(message)

    if polygon_area_m2(polygon) <= 0:
        raise InvalidInput("Polygon must enclose a non-zero area.")

    return polygon


def validate_index_request(
    coordinates: Iterable[PointLike], index_type, cloud_tolerance
) -> IndexRequest:
    """Validate all request fields into an IndexRequest."""
    polygon = validate_polygon(coordinates)
    parsed_index = parse_index_type(index_type)

    valid, message = validate_cloud_tolerance(cloud_tolerance)
    if not valid:
        raise InvalidInput(message)

    return IndexRequest(
        polygon=polygon, index_type=parsed_index, cloud_tolerance=float(cloud_tolerance)
    )
