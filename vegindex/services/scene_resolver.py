import logging
from typing import List, Optional, Sequence, Union

from vegindex.config.settings import Settings, get_settings
from vegindex.models.domain import NoImagery, ResolvedScene, SceneSelection
from vegindex.services.earth_engine_service import EarthEngineClient
from vegindex.utils.geometry import Polygon

logger = logging.getLogger(__name__)


def cloud_tier_ladder(tolerance: float, tiers: Sequence[float]) -> List[float]:
    """
    Cloud-coverage ceilings to try, strictest first.

    The caller's tolerance is the loosest acceptable ceiling: configured tiers
    below it are tried first, then the tolerance itself.

    >>> cloud_tier_ladder(50, [20, 30, 40, 50])
    [20, 30, 40, 50]
    >>> cloud_tier_ladder(35, [20, 30, 40, 50])
    [20, 30, 35]
    """
    ladder = sorted({t for t in tiers if t < tolerance})
    ladder.append(tolerance)
    return ladder


class SceneResolver:
    """Finds the best recent scene over a polygon by cascading cloud tiers."""

    def __init__(self, client: EarthEngineClient, settings: Optional[Settings] = None):
        self.client = client
        self.settings = settings or get_settings()

    async def resolve(
        self,
        polygon: Polygon,
        cloud_tolerance: float,
        selection: Optional[SceneSelection] = None,
    ) -> Union[ResolvedScene, NoImagery]:
        """
        Resolve the most recent scene from the strictest tier that has any.

        Once a tier yields a scene no looser tier is queried.

        Args:
            polygon: Field polygon
            cloud_tolerance: Maximum acceptable cloud coverage (0-100)
            selection: Latest (default) or an explicit date range

        Returns:
            ResolvedScene, or NoImagery when every tier is empty
        """
        selection = selection or SceneSelection.latest()
        start_date, end_date = (None, None)
        if selection.date_range is not None:
            start_date, end_date = selection.date_range.as_strings()

        region = self.client.polygon(polygon)
        tried: List[float] = []

        for tier in cloud_tier_ladder(cloud_tolerance, self.settings.cloud_coverage_tiers):
            tried.append(tier)
            collection = self.client.scene_collection(
                region, tier, start_date=start_date, end_date=end_date
            )
            count = await self.client.collection_size(collection)
            logger.info(f"Found {count} scenes with cloud cover <= {tier:g}%")

            if count > 0:
                image = self.client.most_recent(collection)
                capture_date = await self.client.scene_date(image)
                logger.info(f"Selected scene captured {capture_date} (tier {tier:g}%)")
                return ResolvedScene(
                    image=image,
                    capture_date=capture_date,
                    cloud_tier=tier,
                    tiers_tried=list(tried),
                )

            logger.warning(f"No scenes at {tier:g}% cloud cover, widening search")

        logger.warning(f"No imagery found after tiers {tried}")
        return NoImagery(tiers_tried=tuple(tried))
