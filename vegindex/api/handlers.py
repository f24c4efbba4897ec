import logging
import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from vegindex.config.settings import get_settings
from vegindex.database.connection import get_session_maker
from vegindex.models.domain import NoImagery
from vegindex.models.requests import ExportRequest, IndexProcessRequest, PlanRequest
from vegindex.models.response import (
    ExportImageResponse,
    ExportResponse,
    HealthCheckResponse,
    IndexProcessResponse,
    IndexStats,
    IndexTypeInfo,
    IndexTypesResponse,
    PlanResponse,
)
from vegindex.services.compute_planner import ComputePlanner
from vegindex.services.earth_engine_service import get_earth_engine_client
from vegindex.services.exceptions import (
    IndexPipelineError,
    InvalidInput,
    RemoteComputeError,
    RemoteTimeout,
    StatisticsMissingKeys,
)
from vegindex.services.export_service import ExportService
from vegindex.services.index_pipeline import IndexPipeline
from vegindex.services.indices import band_names, describe_indices
from vegindex.services.rendering_service import RenderingOrchestrator
from vegindex.services.result_cache import ResultCache
from vegindex.storage.minio_client import get_minio_client
from vegindex.utils.async_helpers import run_in_executor
from vegindex.utils.geometry import format_area, polygon_area_m2, square_meters_to_hectares
from vegindex.utils.validation import validate_polygon

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/satellite", tags=["satellite"])

_rendering_orchestrator: Optional[RenderingOrchestrator] = None


# Dependency injection
def get_index_pipeline() -> IndexPipeline:
    cache = ResultCache(get_session_maker())
    return IndexPipeline(get_earth_engine_client(), cache)


def get_rendering_orchestrator() -> RenderingOrchestrator:
    """Shared orchestrator so the headless browser is launched once."""
    global _rendering_orchestrator
    if _rendering_orchestrator is None:
        _rendering_orchestrator = RenderingOrchestrator()
    return _rendering_orchestrator


async def close_rendering_orchestrator() -> None:
    global _rendering_orchestrator
    if _rendering_orchestrator is not None:
        await _rendering_orchestrator.close()
        _rendering_orchestrator = None


def get_export_service(
    pipeline: IndexPipeline = Depends(get_index_pipeline),
    renderer: RenderingOrchestrator = Depends(get_rendering_orchestrator),
) -> ExportService:
    return ExportService(pipeline, renderer, get_minio_client())


def http_error(error: IndexPipelineError) -> HTTPException:
    """Map a pipeline failure to an HTTP error."""
    if isinstance(error, InvalidInput):
        status_code = 400
    elif isinstance(error, StatisticsMissingKeys):
        status_code = 422
    elif isinstance(error, RemoteTimeout):
        status_code = 504
    elif isinstance(error, RemoteComputeError):
        status_code = 502
    else:
        status_code = 500
    return HTTPException(status_code=status_code, detail=error.to_dict())


@router.get("/health", response_model=HealthCheckResponse)
async def health_check() -> HealthCheckResponse:
    """Check health status of the index service and its dependencies."""
    settings = get_settings()
    gee_status = await run_in_executor(get_earth_engine_client().test_connection)
    return HealthCheckResponse(
        status="healthy" if gee_status.get("status") == "ok" else "degraded",
        service=settings.app_name,
        version=settings.app_version,
        timestamp=datetime.now(timezone.utc),
        dependencies={"google_earth_engine": gee_status.get("status", "unknown")},
    )


@router.get("/index/types", response_model=IndexTypesResponse)
async def list_index_types() -> IndexTypesResponse:
    """Supported indices with their bands, value range and palette."""
    return IndexTypesResponse(
        indices=[
            IndexTypeInfo(
                name=item["index_type"],
                description=f"{item['name']}: {item['description']}",
                bands=band_names(item["index_type"]),
                value_range=item["value_range"],
                palette=item["palette"],
            )
            for item in describe_indices()
        ]
    )


@router.post("/index/plan", response_model=PlanResponse)
async def plan_index(request: PlanRequest) -> PlanResponse:
    """Preview area and reducer scale for a polygon without remote calls."""
    try:
        polygon = validate_polygon(request.point_dicts())
    except InvalidInput as e:
        raise http_error(e)

    plan = ComputePlanner(get_settings()).plan(polygon)
    display = format_area(polygon)
    return PlanResponse(
        area_km2=plan.area_km2,
        area_hectares=square_meters_to_hectares(polygon_area_m2(polygon)),
        area_display=f"{display['km2']} km2 ({display['hectares']} ha)",
        scale_meters=plan.scale,
        clip_region={
            "min_lat": plan.clip_region.min_lat,
            "min_lng": plan.clip_region.min_lng,
            "max_lat": plan.clip_region.max_lat,
            "max_lng": plan.clip_region.max_lng,
        },
    )


@router.post("/index/process", response_model=IndexProcessResponse)
async def process_index(
    request: IndexProcessRequest,
    pipeline: IndexPipeline = Depends(get_index_pipeline),
) -> IndexProcessResponse:
    """
    Compute a vegetation index over a field polygon.

    Returns a map tile template and min/max/mean statistics for the most
    recent acceptable scene (or the given date range). Repeated requests for
    the latest scene are served from the result cache.
    """
    start_time = time.time()
    logger.info(
        f"Index request: {request.index_type} over {len(request.coordinates)} points"
    )

    try:
        outcome = await pipeline.process(
            request.point_dicts(),
            request.index_type,
            request.cloud_coverage,
            request.selection(),
        )
    except IndexPipelineError as e:
        logger.error(f"Index processing failed ({e.kind}): {e.message}")
        raise http_error(e)

    processing_time_ms = int((time.time() - start_time) * 1000)

    if isinstance(outcome, NoImagery):
        return IndexProcessResponse(
            success=False,
            message=outcome.message,
            index_type=request.index_type.upper(),
            no_imagery=True,
            tiers_tried=list(outcome.tiers_tried),
            processing_time_ms=processing_time_ms,
        )

    return IndexProcessResponse(
        success=True,
        message="Index computed from cache" if outcome.cached else "Index computed",
        index_type=outcome.index_type.value,
        tile_url=outcome.visualization.tile_url,
        stats=IndexStats(**outcome.stats.as_dict()),
        scene_date_token=outcome.scene_date_token,
        scene_date=outcome.scene_date,
        cloud_tier=outcome.cloud_tier,
        scale_meters=outcome.scale,
        area_km2=outcome.area_km2,
        processing_time_ms=processing_time_ms,
        cached=outcome.cached,
    )


@router.post("/index/export", response_model=ExportResponse)
async def export_index_images(
    request: ExportRequest,
    export_service: ExportService = Depends(get_export_service),
) -> ExportResponse:
    """
    Render and store one flat PNG per requested index for a report.

    Indices without imagery or whose rendering failed are listed under
    ``failed``; they do not fail the request.
    """
    try:
        report = await export_service.export_report_images(
            request.area_name,
            request.point_dicts(),
            request.index_types,
            request.cloud_coverage,
            request.selection(),
        )
    except IndexPipelineError as e:
        logger.error(f"Export failed ({e.kind}): {e.message}")
        raise http_error(e)

    return ExportResponse(
        success=bool(report.succeeded),
        area_name=report.area_name,
        images=[
            ExportImageResponse(
                index_type=result.index_type,
                image_url=result.image_url,
                stats=IndexStats(**result.stats.as_dict()) if result.stats else None,
                scene_date=result.scene_date,
                no_imagery=result.no_imagery,
                error=result.error,
            )
            for result in report.results
        ],
        succeeded=report.succeeded,
        failed=report.failed,
    )
