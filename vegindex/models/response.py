from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class IndexStats(BaseModel):
    min: float
    max: float
    mean: float


class IndexProcessResponse(BaseModel):
    """Response model for vegetation index processing."""

    success: bool
    message: str
    index_type: str

    # Visualization and statistics (absent when no imagery was found)
    tile_url: Optional[str] = None
    stats: Optional[IndexStats] = None

    # Metadata
    scene_date_token: Optional[str] = None
    scene_date: Optional[str] = None
    cloud_tier: Optional[float] = None
    scale_meters: Optional[int] = None
    area_km2: Optional[float] = None
    no_imagery: bool = False
    tiers_tried: List[float] = Field(default_factory=list)

    # Processing info
    processing_time_ms: Optional[int] = None
    cached: bool = False


class ExportImageResponse(BaseModel):
    index_type: str
    image_url: Optional[str] = None
    stats: Optional[IndexStats] = None
    scene_date: Optional[str] = None
    no_imagery: bool = False
    error: Optional[Dict[str, Any]] = None


class ExportResponse(BaseModel):
    """Response model for report image export."""

    success: bool
    area_name: str
    images: List[ExportImageResponse]
    succeeded: List[str]
    failed: List[str]


class PlanResponse(BaseModel):
    area_km2: float
    area_hectares: float
    area_display: str
    scale_meters: int
    clip_region: Dict[str, float]


class IndexTypeInfo(BaseModel):
    name: str
    description: str
    bands: List[str]
    value_range: List[float]
    palette: List[str]


class IndexTypesResponse(BaseModel):
    indices: List[IndexTypeInfo]


class ErrorResponse(BaseModel):
    """Standard error response model."""

    success: bool = False
    error_code: str
    message: str
    details: Optional[Dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class HealthCheckResponse(BaseModel):
    """Health check response model."""

    status: str
    service: str
    version: str
    timestamp: datetime
    dependencies: Dict[str, str]  # service_name -> status
