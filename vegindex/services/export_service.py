"""
Flat image exports for reports and messages.

An export runs the index pipeline uncached (render inputs need live remote
handles), renders a PNG, and stores it under a content-addressed path. Missing
imagery, a failed render or an unreachable image store leave the export without
an image; they never fail the surrounding report.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from vegindex.config.settings import Settings, get_settings
from vegindex.models.domain import (
    IndexRequest,
    IndexResult,
    NoImagery,
    SceneSelection,
    StatsResult,
)
from vegindex.services.exceptions import (
    ImageStoreError,
    IndexPipelineError,
    InvalidInput,
    RenderingFailed,
)
from vegindex.services.index_pipeline import IndexPipeline
from vegindex.services.rendering_service import RenderingOrchestrator, thumbnail_bounds
from vegindex.storage.minio_client import MinIOClient
from vegindex.utils.geometry import PointLike
from vegindex.utils.validation import validate_cloud_tolerance, validate_polygon

logger = logging.getLogger(__name__)


@dataclass
class ExportResult:
    index_type: str
    image_url: Optional[str] = None
    stats: Optional[StatsResult] = None
    scene_date: Optional[str] = None
    no_imagery: bool = False
    error: Optional[Dict] = None

    @property
    def has_image(self) -> bool:
        return self.image_url is not None


@dataclass
class ReportExport:
    area_name: str
    results: List[ExportResult] = field(default_factory=list)

    @property
    def succeeded(self) -> List[str]:
        return [r.index_type for r in self.results if r.has_image]

    @property
    def failed(self) -> List[str]:
        return [r.index_type for r in self.results if not r.has_image]


class ExportService:
    """Pipeline, rendering and image store wired together for exports."""

    def __init__(
        self,
        pipeline: IndexPipeline,
        renderer: RenderingOrchestrator,
        store: MinIOClient,
        settings: Optional[Settings] = None,
    ):
        self.pipeline = pipeline
        self.renderer = renderer
        self.store = store
        self.settings = settings or get_settings()

    def _thumbnail_provider(self, request: IndexRequest, result: IndexResult):
        async def provide():
            bbox = thumbnail_bounds(
                request.polygon, self.settings.thumbnail_padding_percent
            )
            return await self.pipeline.statistics.build_thumbnails(
                result.handles.scene,
                result.handles.index_raster,
                result.stats,
                request.index_type,
                bbox,
            )

        return provide

    async def export_index_image(
        self,
        area_name: str,
        request: IndexRequest,
        selection: Optional[SceneSelection] = None,
    ) -> ExportResult:
        """
        Render and store one index image for an area.

        Raises:
            IndexPipelineError: Pipeline failures. No imagery, rendering and
                image store failures are reported in the result instead.
        """
        index_name = request.index_type.value
        outcome = await self.pipeline.process_index(request, selection, use_cache=False)

        if isinstance(outcome, NoImagery):
            logger.warning(f"No imagery for {area_name} {index_name}: {outcome.message}")
            return ExportResult(index_type=index_name, no_imagery=True)

        export = ExportResult(
            index_type=index_name, stats=outcome.stats, scene_date=outcome.scene_date
        )

        thumbnails = (
            self._thumbnail_provider(request, outcome) if outcome.handles else None
        )
        try:
            png = await self.renderer.render(
                request.polygon, outcome.visualization.tile_url, thumbnails
            )
        except RenderingFailed as e:
            logger.error(f"Could not render {index_name} for {area_name}: {e.message}")
            export.error = e.to_dict()
            return export

        try:
            export.image_url = await self.store.store_export_image(area_name, index_name, png)
        except ImageStoreError as e:
            logger.error(f"Could not store {index_name} for {area_name}: {e.message}")
            export.error = e.to_dict()
            return export

        logger.info(f"Exported {index_name} for {area_name}: {export.image_url}")
        return export

    async def export_report_images(
        self,
        area_name: str,
        coordinates: Iterable[PointLike],
        index_types: Iterable,
        cloud_tolerance: float,
        selection: Optional[SceneSelection] = None,
    ) -> ReportExport:
        """
        Export one image per index. A failing index is recorded and the
        remaining indices still run.

        Raises:
            InvalidInput: Coordinates or cloud tolerance are invalid
        """
        points = list(coordinates)
        validate_polygon(points)
        valid, message = validate_cloud_tolerance(cloud_tolerance)
        if not valid:
            raise InvalidInput(message)

        report = ReportExport(area_name=area_name)

        for index_type in index_types:
            try:
                request = self.pipeline.build_request(points, index_type, cloud_tolerance)
            except InvalidInput as e:
                report.results.append(
                    ExportResult(index_type=str(index_type), error=e.to_dict())
                )
                continue

            try:
                result = await self.export_index_image(area_name, request, selection)
            except IndexPipelineError as e:
                logger.error(f"Error exporting {request.index_type.value}: {e.message}")
                result = ExportResult(
                    index_type=request.index_type.value, error=e.to_dict()
                )
            report.results.append(result)

        logger.info(
            f"Report export for {area_name}: {len(report.succeeded)} succeeded, "
            f"{len(report.failed)} without image"
        )
        return report
