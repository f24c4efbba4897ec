import logging
import math
from typing import Any, Dict, Optional, Tuple

from vegindex.config.settings import Settings, get_settings
from vegindex.models.domain import StatsResult, VisualizationArtifact
from vegindex.services import indices
from vegindex.services.earth_engine_service import (
    EarthEngineClient,
    index_thumbnail_params,
    rgb_thumbnail_params,
    vis_params,
)
from vegindex.services.exceptions import StatisticsMissingKeys
from vegindex.utils.geometry import BoundingBox

logger = logging.getLogger(__name__)


def _usable(value: Any) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value)


def parse_statistics(raw: Dict[str, Any], index_type) -> StatsResult:
    """
    Turn a combined reducer dictionary into a StatsResult.

    Missing or null min/max means the region had no valid pixels. A missing
    mean falls back to the midpoint; the mean is clamped into [min, max].
    """
    name = indices.parse_index_type(index_type).value
    minimum = raw.get(f"{name}_min")
    maximum = raw.get(f"{name}_max")
    if not _usable(minimum) or not _usable(maximum):
        raise StatisticsMissingKeys(name, raw.keys())

    minimum, maximum = float(minimum), float(maximum)
    if minimum > maximum:
        logger.warning(
            f"{name} reducer returned min {minimum} > max {maximum}; swapping"
        )
        minimum, maximum = maximum, minimum

    mean = raw.get(f"{name}_mean")
    if not _usable(mean):
        mean = (minimum + maximum) / 2
    elif not minimum <= mean <= maximum:
        logger.warning(
            f"{name} mean {mean} outside [{minimum}, {maximum}]; clamping"
        )
        mean = min(max(float(mean), minimum), maximum)
    mean = float(mean)

    return StatsResult(min=minimum, max=maximum, mean=mean)


class StatisticsService:
    """Statistics and visualization for an index raster."""

    def __init__(self, client: EarthEngineClient, settings: Optional[Settings] = None):
        self.client = client
        self.settings = settings or get_settings()

    async def compute_stats(self, raster, region, index_type, scale: int) -> StatsResult:
        raw = await self.client.reduce_statistics(raster, region, scale)
        stats = parse_statistics(raw, index_type)
        logger.info(
            f"{index_type} stats: min={stats.min:.3f} max={stats.max:.3f} mean={stats.mean:.3f}"
        )
        return stats

    async def build_tiles(
        self, raster, stats: StatsResult, index_type
    ) -> VisualizationArtifact:
        params = vis_params(stats.min, stats.max, indices.get_palette(index_type))
        tile_url = await self.client.tile_url(raster, params)
        return VisualizationArtifact(tile_url=tile_url)

    async def build_thumbnails(
        self, scene, raster, stats: StatsResult, index_type, bbox: BoundingBox
    ) -> Tuple[str, str]:
        """
        RGB and index thumbnail URLs over the same box and dimensions.

        Both images share region and size so they align pixel for pixel in the
        fallback composite.
        """
        region = self.client.rectangle(bbox)
        size = self.settings.render_size
        rgb_url = await self.client.thumbnail_url(scene, rgb_thumbnail_params(region, size))
        index_url = await self.client.thumbnail_url(
            raster,
            index_thumbnail_params(
                region, size, stats.min, stats.max, indices.get_palette(index_type)
            ),
        )
        return rgb_url, index_url
