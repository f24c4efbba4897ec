import logging
from typing import Optional, Sequence

from vegindex.config.settings import Settings, get_settings
from vegindex.models.domain import ComputePlan
from vegindex.utils.geometry import (
    Polygon,
    bounding_box,
    buffer_bbox_meters,
    polygon_area_m2,
    square_meters_to_km2,
)

logger = logging.getLogger(__name__)


def scale_for_area(
    area_km2: float,
    thresholds: Sequence[float] = (10, 50, 100),
    steps: Sequence[int] = (100, 150, 200, 250),
) -> int:
    """
    Processing resolution (meters/pixel) for a polygon area.

    ``steps`` has one more entry than ``thresholds``; an area equal to a
    threshold stays in the finer step.
    """
    for threshold, scale in zip(thresholds, steps):
        if area_km2 <= threshold:
            return scale
    return steps[len(thresholds)]


class ComputePlanner:
    """Chooses clip region and scale locally, without a remote round trip."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def plan(self, polygon: Polygon) -> ComputePlan:
        area_km2 = square_meters_to_km2(polygon_area_m2(polygon))
        scale = scale_for_area(
            area_km2,
            self.settings.scale_thresholds_km2,
            self.settings.scale_steps_meters,
        )
        clip_region = buffer_bbox_meters(
            bounding_box(polygon), self.settings.clip_buffer_meters
        )
        logger.info(f"Planned {area_km2:.2f} km² at {scale}m/pixel")
        return ComputePlan(clip_region=clip_region, scale=scale, area_km2=area_km2)
