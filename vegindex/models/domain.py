"""Value objects passed between pipeline stages."""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, List, Optional, Tuple, Union

from vegindex.services.indices import IndexType
from vegindex.utils.geometry import BoundingBox, Polygon

LATEST = "latest"


@dataclass(frozen=True)
class IndexRequest:
    polygon: Polygon
    index_type: IndexType
    cloud_tolerance: float


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date

    def as_strings(self) -> Tuple[str, str]:
        return self.start.isoformat(), self.end.isoformat()


@dataclass(frozen=True)
class SceneSelection:
    """
    How the resolver picks a scene.

    ``latest`` always targets the most recent scene in the lookback window and
    lets the cache be consulted before any remote work. An explicit date range
    (historical lookback) needs the scene date before the cache can be keyed.
    """

    date_range: Optional[DateRange] = None

    @property
    def always_latest(self) -> bool:
        return self.date_range is None

    @classmethod
    def latest(cls) -> "SceneSelection":
        return cls()

    @classmethod
    def between(cls, start: date, end: date) -> "SceneSelection":
        return cls(date_range=DateRange(start, end))


@dataclass
class ResolvedScene:
    image: Any
    capture_date: str
    cloud_tier: float
    tiers_tried: List[float]


@dataclass(frozen=True)
class NoImagery:
    """No scene in any cloud-coverage tier. A normal outcome, not an error."""

    tiers_tried: Tuple[float, ...]
    message: str = "No satellite imagery available for this area"


@dataclass(frozen=True)
class ComputePlan:
    clip_region: BoundingBox
    scale: int
    area_km2: float


@dataclass(frozen=True)
class StatsResult:
    min: float
    max: float
    mean: float

    def as_dict(self) -> dict:
        return {"min": self.min, "max": self.max, "mean": self.mean}


@dataclass(frozen=True)
class VisualizationArtifact:
    """Either a tile template (interactive maps) or flattened PNG bytes."""

    tile_url: Optional[str] = None
    png: Optional[bytes] = None


@dataclass(frozen=True)
class CachedResponse:
    tile_url: str
    min: float
    max: float
    mean: float
    scene_date_token: str
    index_type: IndexType

    @property
    def stats(self) -> StatsResult:
        return StatsResult(min=self.min, max=self.max, mean=self.mean)


@dataclass
class PipelineHandles:
    """Remote graph handles from a fresh run, reused by export rendering."""

    scene: Any
    index_raster: Any
    plan: ComputePlan


@dataclass
class IndexResult:
    index_type: IndexType
    visualization: VisualizationArtifact
    stats: StatsResult
    scene_date_token: str
    cached: bool
    scene_date: Optional[str] = None
    scale: Optional[int] = None
    area_km2: Optional[float] = None
    cloud_tier: Optional[float] = None
    handles: Optional[PipelineHandles] = field(default=None, repr=False)


IndexOutcome = Union[IndexResult, NoImagery]
