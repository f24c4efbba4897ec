"""
Single entry point for vegetation index processing.

Dashboard, scheduled report and export flows all call ``process_index``; the
only thing that differs between them is the SceneSelection they pass.

Stages run strictly in sequence because each remote handle chains into the
next: cache check, resolve scene, plan, clip to buffered box, apply index,
clip to polygon, statistics, tiles, cache write. Nothing is retried.
"""

import logging
import time
from typing import Iterable, Optional

from vegindex.config.settings import Settings, get_settings
from vegindex.models.domain import (
    LATEST,
    CachedResponse,
    IndexOutcome,
    IndexRequest,
    IndexResult,
    NoImagery,
    PipelineHandles,
    SceneSelection,
    VisualizationArtifact,
)
from vegindex.services.compute_planner import ComputePlanner
from vegindex.services.earth_engine_service import EarthEngineClient
from vegindex.services.result_cache import ResultCache, make_fingerprint
from vegindex.services.scene_resolver import SceneResolver
from vegindex.services.statistics_service import StatisticsService
from vegindex.utils.geometry import PointLike
from vegindex.utils.validation import validate_index_request

logger = logging.getLogger(__name__)


class IndexPipeline:
    """Scene resolution, index computation, statistics, tiles and caching."""

    def __init__(
        self,
        client: EarthEngineClient,
        cache: Optional[ResultCache] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.client = client
        self.cache = cache
        self.resolver = SceneResolver(client, self.settings)
        self.planner = ComputePlanner(self.settings)
        self.statistics = StatisticsService(client, self.settings)

    @staticmethod
    def build_request(
        coordinates: Iterable[PointLike], index_type, cloud_tolerance
    ) -> IndexRequest:
        """Validate raw inputs into an IndexRequest (raises InvalidInput)."""
        return validate_index_request(coordinates, index_type, cloud_tolerance)

    async def _cached(self, request: IndexRequest, token: str) -> Optional[IndexResult]:
        if self.cache is None:
            return None
        cached = await self.cache.get(make_fingerprint(request, token))
        if cached is None:
            return None
        return IndexResult(
            index_type=cached.index_type,
            visualization=VisualizationArtifact(tile_url=cached.tile_url),
            stats=cached.stats,
            scene_date_token=cached.scene_date_token,
            cached=True,
            scene_date=None if cached.scene_date_token == LATEST else cached.scene_date_token,
        )

    async def process_index(
        self,
        request: IndexRequest,
        selection: Optional[SceneSelection] = None,
        use_cache: bool = True,
    ) -> IndexOutcome:
        """
        Run the full pipeline for one polygon and index.

        Args:
            request: Validated polygon, index type and cloud tolerance
            selection: Latest scene (default) or an explicit date range
            use_cache: Skip cache lookup when False (the result is still stored)

        Returns:
            IndexResult, or NoImagery when no cloud tier has a scene

        Raises:
            RemoteTimeout: A remote call exceeded its budget
            RemoteComputeError: The remote service failed a call
            StatisticsMissingKeys: The polygon had no valid pixels
        """
        selection = selection or SceneSelection.latest()
        start_time = time.time()
        index_name = request.index_type.value

        logger.info(
            f"Processing {index_name} for {len(request.polygon)}-point polygon "
            f"(cloud <= {request.cloud_tolerance:g}%)"
        )

        # Latest-scene requests can be answered before any remote work
        if use_cache and selection.always_latest:
            hit = await self._cached(request, LATEST)
            if hit is not None:
                return hit

        scene = await self.resolver.resolve(
            request.polygon, request.cloud_tolerance, selection
        )
        if isinstance(scene, NoImagery):
            return scene

        token = LATEST if selection.always_latest else scene.capture_date
        if use_cache and not selection.always_latest:
            hit = await self._cached(request, token)
            if hit is not None:
                return hit

        plan = self.planner.plan(request.polygon)

        polygon_geometry = self.client.polygon(request.polygon)
        clip_geometry = self.client.rectangle(plan.clip_region)
        clipped_scene = self.client.clip(scene.image, clip_geometry)
        index_raster = self.client.apply_index(clipped_scene, request.index_type)
        field_raster = self.client.clip(index_raster, polygon_geometry)

        stats = await self.statistics.compute_stats(
            field_raster, polygon_geometry, request.index_type, plan.scale
        )
        visualization = await self.statistics.build_tiles(
            field_raster, stats, request.index_type
        )

        if self.cache is not None:
            await self.cache.put(
                make_fingerprint(request, token),
                request,
                CachedResponse(
                    tile_url=visualization.tile_url,
                    min=stats.min,
                    max=stats.max,
                    mean=stats.mean,
                    scene_date_token=token,
                    index_type=request.index_type,
                ),
            )

        elapsed_ms = int((time.time() - start_time) * 1000)
        logger.info(f"{index_name} processed in {elapsed_ms}ms (scene {scene.capture_date})")

        return IndexResult(
            index_type=request.index_type,
            visualization=visualization,
            stats=stats,
            scene_date_token=token,
            cached=False,
            scene_date=scene.capture_date,
            scale=plan.scale,
            area_km2=plan.area_km2,
            cloud_tier=scene.cloud_tier,
            handles=PipelineHandles(
                scene=scene.image, index_raster=field_raster, plan=plan
            ),
        )

    async def process(
        self,
        coordinates: Iterable[PointLike],
        index_type,
        cloud_tolerance,
        selection: Optional[SceneSelection] = None,
    ) -> IndexOutcome:
        """Validate raw inputs, then run ``process_index``."""
        request = self.build_request(coordinates, index_type, cloud_tolerance)
        return await self.process_index(request, selection)