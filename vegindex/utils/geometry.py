"""
Local geometry helpers for field polygons.

All functions are pure and never touch Earth Engine, so planning decisions
(area, clip box, thumbnail bounds) cost no remote round trip.
"""

import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, NamedTuple, Sequence, Tuple, Union

# WGS84 equatorial radius in meters
EARTH_RADIUS = 6378137.0

# Meters per degree of latitude (mean)
METERS_PER_DEGREE = 111320.0

# 5 decimal places is ~1 meter
CANONICAL_PRECISION = 5


class LatLng(NamedTuple):
    lat: float
    lng: float


PointLike = Union[LatLng, Dict[str, float], Sequence[float]]


def to_latlng(point: PointLike) -> LatLng:
    """
    Coerce a point into a LatLng.

    Accepts LatLng, {"lat", "lng"} mappings (also "latitude"/"longitude") and
    (lat, lng) pairs.
    """
    if isinstance(point, LatLng):
        return point
    if isinstance(point, dict):
        lat = point.get("lat", point.get("latitude"))
        lng = point.get("lng", point.get("longitude"))
        if lat is None or lng is None:
            raise ValueError(f"Point is missing lat/lng: {point}")
        return LatLng(float(lat), float(lng))
    lat, lng = point
    return LatLng(float(lat), float(lng))


@dataclass(frozen=True)
class Polygon:
    """
    Ordered ring of (lat, lng) points.

    The ring is open: a closing point equal to the first one is dropped on
    construction, so ``points[0] != points[-1]``.
    """

    points: Tuple[LatLng, ...]

    @classmethod
    def from_points(cls, points: Iterable[PointLike]) -> "Polygon":
        ring = [to_latlng(p) for p in points]
        if len(ring) > 1 and ring[0] == ring[-1]:
            ring = ring[:-1]
        return cls(points=tuple(ring))

    def __len__(self) -> int:
        return len(self.points)

    def as_dicts(self) -> List[Dict[str, float]]:
        return [{"lat": p.lat, "lng": p.lng} for p in self.points]


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    min_lng: float
    max_lat: float
    max_lng: float

    @property
    def width_degrees(self) -> float:
        return self.max_lng - self.min_lng

    @property
    def height_degrees(self) -> float:
        return self.max_lat - self.min_lat

    def contains(self, other: "BoundingBox") -> bool:
        return (
            self.min_lat <= other.min_lat
            and self.min_lng <= other.min_lng
            and self.max_lat >= other.max_lat
            and self.max_lng >= other.max_lng
        )

    def to_ee_coordinates(self) -> List[List[float]]:
        """Closed [lng, lat] ring suitable for ee.Geometry.Polygon."""
        return [
            [self.min_lng, self.min_lat],
            [self.max_lng, self.min_lat],
            [self.max_lng, self.max_lat],
            [self.min_lng, self.max_lat],
            [self.min_lng, self.min_lat],
        ]


def polygon_area_m2(polygon: Polygon) -> float:
    """
    Approximate polygon area on a sphere using the spherical excess method.

    Args:
        polygon: Field polygon

    Returns:
        Area in square meters (always non-negative)
    """
    points = polygon.points
    if len(points) < 3:
        return 0.0

    total = 0.0
    for i, p1 in enumerate(points):
        p2 = points[(i + 1) % len(points)]
        lat1 = math.radians(p1.lat)
        lat2 = math.radians(p2.lat)
        total += math.radians(p2.lng - p1.lng) * (
            2 + math.sin(lat1) + math.sin(lat2)
        )

    return abs(total * EARTH_RADIUS * EARTH_RADIUS / 2)


def square_meters_to_km2(sq_meters: float) -> float:
    return sq_meters / 1_000_000


def square_meters_to_hectares(sq_meters: float) -> float:
    return sq_meters / 10_000


def format_area(polygon: Polygon) -> Dict[str, str]:
    """Area for display, in km2 and hectares with two decimals."""
    area = polygon_area_m2(polygon)
    return {
        "km2": f"{square_meters_to_km2(area):.2f}",
        "hectares": f"{square_meters_to_hectares(area):.2f}",
    }


def bounding_box(polygon: Polygon) -> BoundingBox:
    if not polygon.points:
        raise ValueError("Cannot calculate bounding box for empty polygon")

    lats = [p.lat for p in polygon.points]
    lngs = [p.lng for p in polygon.points]
    return BoundingBox(
        min_lat=min(lats), min_lng=min(lngs), max_lat=max(lats), max_lng=max(lngs)
    )


def buffer_bbox_meters(bbox: BoundingBox, meters: float) -> BoundingBox:
    """
    Expand a bounding box by a fixed distance on every side.

    Longitude degrees are scaled by the cosine of the box's widest latitude so
    the buffer is never narrower than requested.
    """
    lat_delta = meters / METERS_PER_DEGREE
    widest_lat = max(abs(bbox.min_lat), abs(bbox.max_lat))
    cos_lat = max(math.cos(math.radians(widest_lat)), 1e-6)
    lng_delta = meters / (METERS_PER_DEGREE * cos_lat)

    return BoundingBox(
        min_lat=max(-90.0, bbox.min_lat - lat_delta),
        min_lng=bbox.min_lng - lng_delta,
        max_lat=min(90.0, bbox.max_lat + lat_delta),
        max_lng=bbox.max_lng + lng_delta,
    )


def pad_bbox_percent(bbox: BoundingBox, percent: float) -> BoundingBox:
    """Expand a bounding box by a percentage of its own size."""
    lat_padding = bbox.height_degrees * (percent / 100)
    lng_padding = bbox.width_degrees * (percent / 100)
    return BoundingBox(
        min_lat=bbox.min_lat - lat_padding,
        min_lng=bbox.min_lng - lng_padding,
        max_lat=bbox.max_lat + lat_padding,
        max_lng=bbox.max_lng + lng_padding,
    )


def bbox_center(bbox: BoundingBox) -> LatLng:
    return LatLng(
        (bbox.min_lat + bbox.max_lat) / 2, (bbox.min_lng + bbox.max_lng) / 2
    )


def to_ee_coordinates(polygon: Polygon) -> List[List[float]]:
    """Closed [lng, lat] ring for ee.Geometry.Polygon."""
    ring = [[p.lng, p.lat] for p in polygon.points]
    if ring:
        ring.append(list(ring[0]))
    return ring


def canonical_ring(polygon: Polygon) -> List[Tuple[float, float]]:
    """
    Canonical form of a polygon ring used for cache keys.

    Points are rounded to ~1 m, the ring is rotated to start at its smallest
    point and walked in whichever direction yields the smaller sequence. Any
    rotation or reversal of the same ring maps to the same result; rings with
    the same vertices in a different order do not.
    """
    ring = [
        (round(p.lat, CANONICAL_PRECISION), round(p.lng, CANONICAL_PRECISION))
        for p in polygon.points
    ]
    if len(ring) > 1 and ring[0] == ring[-1]:
        ring = ring[:-1]
    if not ring:
        return []

    smallest = min(ring)
    candidates = []
    for sequence in (ring, ring[::-1]):
        # Ties on the smallest point are possible after rounding
        for i, point in enumerate(sequence):
            if point == smallest:
                candidates.append(sequence[i:] + sequence[:i])

    return min(candidates)
