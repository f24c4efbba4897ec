from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from vegindex.models.domain import SceneSelection


class Coordinate(BaseModel):
    """One polygon vertex."""

    lat: float = Field(..., description="Latitude coordinate", ge=-90, le=90)
    lng: float = Field(..., description="Longitude coordinate", ge=-180, le=180)


class IndexProcessRequest(BaseModel):
    """Request model for vegetation index processing."""

    coordinates: List[Coordinate] = Field(
        ..., description="Field polygon vertices (closing point optional)", min_length=3
    )
    index_type: str = Field(default="NDVI", description="Index name, e.g. NDVI")
    cloud_coverage: float = Field(
        default=20, description="Maximum acceptable cloud coverage (%)", ge=0, le=100
    )

    # Optional historical lookback; omit both for the latest scene
    start_date: Optional[str] = Field(
        default=None, description="Start date for scene search (YYYY-MM-DD format)"
    )
    end_date: Optional[str] = Field(
        default=None, description="End date for scene search (YYYY-MM-DD format)"
    )

    @field_validator("start_date", "end_date")
    @classmethod
    def validate_date_format(cls, v):
        if v is not None:
            try:
                datetime.strptime(v, "%Y-%m-%d")
            except ValueError:
                raise ValueError("Date must be in YYYY-MM-DD format")
        return v

    @model_validator(mode="after")
    def validate_date_range(self):
        if (self.start_date is None) != (self.end_date is None):
            raise ValueError("start_date and end_date must be given together")
        if self.start_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self

    def point_dicts(self) -> List[dict]:
        return [point.model_dump() for point in self.coordinates]

    def selection(self) -> SceneSelection:
        if self.start_date is None:
            return SceneSelection.latest()
        return SceneSelection.between(
            date.fromisoformat(self.start_date), date.fromisoformat(self.end_date)
        )


class ExportRequest(IndexProcessRequest):
    """Request model for report image export (one image per index)."""

    area_name: str = Field(..., description="Area name used in stored image paths", min_length=1)
    index_types: List[str] = Field(
        default_factory=lambda: ["NDVI"], description="Indices to export", min_length=1
    )


class PlanRequest(BaseModel):
    """Request model for a compute plan preview."""

    coordinates: List[Coordinate] = Field(..., min_length=3)

    def point_dicts(self) -> List[dict]:
        return [point.model_dump() for point in self.coordinates]
