import ee
import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Sequence

from vegindex.config.settings import Settings, get_settings
from vegindex.services import indices
from vegindex.services.exceptions import RemoteComputeError
from vegindex.utils.async_helpers import run_with_timeout
from vegindex.utils.geometry import BoundingBox, Polygon, to_ee_coordinates

logger = logging.getLogger(__name__)


class EarthEngineClient:
    """
    Adapter over the Google Earth Engine API.

    Graph-building methods (``polygon``, ``scene_collection``, ``clip`` ...) are
    local and cheap. Methods that force a round trip are coroutines that run
    the blocking call in the thread pool under an explicit deadline.

    Construct once per process and ``connect()`` before use.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._connected = False

    def connect(self) -> None:
        """Authenticate with Google Earth Engine and initialize the API."""
        if self._connected:
            return

        try:
            if self.settings.gee_service_account_key:
                # Use service account authentication
                credentials = ee.ServiceAccountCredentials(
                    email=self.settings.gee_service_account_email,
                    key_file=self.settings.gee_service_account_key,
                )
                ee.Initialize(credentials, project=self.settings.gee_project_id or None)
            else:
                # Use default authentication (requires gcloud auth)
                ee.Initialize(project=self.settings.gee_project_id or None)

            self._connected = True
            logger.info("Google Earth Engine initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize Google Earth Engine: {e}")
            raise RemoteComputeError(
                f"Earth Engine initialization failed: {e}", stage="connect"
            ) from e

    def is_connected(self) -> bool:
        """Check if Earth Engine is properly initialized."""
        return self._connected

    def _require_connection(self) -> None:
        if not self._connected:
            raise RemoteComputeError(
                "Google Earth Engine not initialized", stage="connect"
            )

    # Graph builders (no round trip)

    def polygon(self, polygon: Polygon) -> ee.Geometry:
        return ee.Geometry.Polygon([to_ee_coordinates(polygon)], "EPSG:4326", False)

    def rectangle(self, bbox: BoundingBox) -> ee.Geometry:
        return ee.Geometry.Polygon([bbox.to_ee_coordinates()], "EPSG:4326", False)

    def scene_collection(
        self,
        region: ee.Geometry,
        max_cloud_cover: float,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> ee.ImageCollection:
        """
        Cloud-masked scenes over a region within a cloud-coverage ceiling.

        Both dates are inclusive (YYYY-MM-DD); ``filterDate`` excludes its end,
        so the window is extended by one day. Defaults to the last
        ``scene_lookback_days`` days.
        """
        last_day = date.fromisoformat(end_date) if end_date else date.today()
        end_date = (last_day + timedelta(days=1)).isoformat()
        if not start_date:
            start_date = (
                date.today() - timedelta(days=self.settings.scene_lookback_days)
            ).isoformat()

        collection = (
            ee.ImageCollection(self.settings.gee_collection_id)
            .filterBounds(region)
            .filterDate(start_date, end_date)
            .filter(ee.Filter.lte("CLOUDY_PIXEL_PERCENTAGE", max_cloud_cover))
        )
        return collection.map(indices.mask_clouds)

    def most_recent(self, collection: ee.ImageCollection) -> ee.Image:
        return ee.Image(collection.sort("system:time_start", False).first())

    def clip(self, image: ee.Image, region: ee.Geometry) -> ee.Image:
        return image.clip(region)

    def apply_index(self, image: ee.Image, index_type) -> ee.Image:
        return indices.compute_index(image, index_type)

    # Round trips

    async def _get(self, func, operation: str, timeout: float, *args, **kwargs):
        self._require_connection()
        try:
            return await run_with_timeout(
                func, *args, timeout=timeout, operation=operation, **kwargs
            )
        except ee.EEException as e:
            logger.error(f"Earth Engine error during {operation}: {e}")
            raise RemoteComputeError(
                f"Earth Engine API error: {e}", stage=operation
            ) from e

    async def collection_size(self, collection: ee.ImageCollection) -> int:
        count = await self._get(
            collection.size().getInfo,
            "scene_count",
            self.settings.scene_count_timeout,
        )
        return int(count or 0)

    async def scene_date(self, image: ee.Image) -> str:
        """Capture date (YYYY-MM-DD) of a scene."""
        capture = ee.Date(image.get("system:time_start")).format("YYYY-MM-dd")
        return await self._get(
            capture.getInfo, "scene_fetch", self.settings.scene_fetch_timeout
        )

    async def reduce_statistics(
        self, raster: ee.Image, region: ee.Geometry, scale: int
    ) -> Dict[str, Any]:
        """
        Min, max and mean in a single combined reducer call.

        ``bestEffort`` lets the service coarsen the scale under load instead of
        failing; ``tileScale`` trades speed for memory on large regions.
        """
        reducer = ee.Reducer.minMax().combine(ee.Reducer.mean(), sharedInputs=True)
        stats = raster.reduceRegion(
            reducer=reducer,
            geometry=region,
            scale=scale,
            maxPixels=self.settings.reducer_max_pixels,
            bestEffort=True,
            tileScale=self.settings.reducer_tile_scale,
        )
        result = await self._get(
            stats.getInfo, "statistics", self.settings.statistics_timeout
        )
        return result or {}

    async def tile_url(self, raster: ee.Image, vis_params: Dict[str, Any]) -> str:
        """Tile URL template ({z}/{x}/{y}) for an interactive map layer."""
        map_id = await self._get(
            raster.getMapId, "tiles", self.settings.tile_timeout, vis_params
        )
        url = _extract_tile_url(map_id)
        if not url:
            raise RemoteComputeError(
                "Failed to extract tile URL from Earth Engine map id", stage="tiles"
            )
        return url

    async def thumbnail_url(self, image: ee.Image, params: Dict[str, Any]) -> str:
        """URL of a flattened PNG thumbnail."""
        return await self._get(
            image.getThumbURL, "thumbnail", self.settings.thumbnail_timeout, params
        )

    def test_connection(self) -> Dict[str, Any]:
        """Test Google Earth Engine connection."""
        try:
            if not self._connected:
                return {"status": "error", "message": "Not initialized"}

            dataset = ee.ImageCollection(self.settings.gee_collection_id)
            info = dataset.limit(1).getInfo()

            return {
                "status": "ok",
                "message": "Connected to Google Earth Engine",
                "test_dataset_features": len(info.get("features", [])),
            }

        except Exception as e:
            return {"status": "error", "message": f"Connection test failed: {e}"}


def _extract_tile_url(map_id: Any) -> Optional[str]:
    if not map_id:
        return None
    fetcher = map_id.get("tile_fetcher") if isinstance(map_id, dict) else None
    if fetcher is not None and getattr(fetcher, "url_format", None):
        return fetcher.url_format
    for key in ("urlFormat", "url_format"):
        if isinstance(map_id, dict) and map_id.get(key):
            return map_id[key]
    return None


def vis_params(minimum: float, maximum: float, palette: Sequence[str]) -> Dict[str, Any]:
    return {"min": minimum, "max": maximum, "palette": list(palette)}


def rgb_thumbnail_params(region: ee.Geometry, dimensions: int) -> Dict[str, Any]:
    """True-colour Sentinel-2 thumbnail (B4/B3/B2, 0-3000 reflectance DN)."""
    return {
        "dimensions": dimensions,
        "format": "png",
        "region": region,
        "bands": ["B4", "B3", "B2"],
        "min": [0, 0, 0],
        "max": [3000, 3000, 3000],
    }


def index_thumbnail_params(
    region: ee.Geometry,
    dimensions: int,
    minimum: float,
    maximum: float,
    palette: List[str],
) -> Dict[str, Any]:
    params = vis_params(minimum, maximum, palette)
    params.update({"dimensions": dimensions, "format": "png", "region": region})
    return params


_client: Optional[EarthEngineClient] = None


def get_earth_engine_client() -> EarthEngineClient:
    """Process-wide client instance; call ``connect()`` at startup."""
    global _client
    if _client is None:
        _client = EarthEngineClient()
    return _client
