"""
Result cache for index pipeline responses.

Entries are keyed by a fingerprint over the canonical polygon ring, index,
cloud tolerance and scene date token. A fingerprint always maps to the same
result, so duplicate writes are harmless; the one exception is the
``"latest"`` token, whose entry keeps serving the scene it was computed from
after a newer scene appears (see ``cache_ttl_days``).
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from vegindex.config.settings import Settings, get_settings
from vegindex.database.models import IndexResultCacheEntry
from vegindex.models.domain import LATEST, CachedResponse, IndexRequest
from vegindex.services.exceptions import CacheWriteFailed
from vegindex.services.indices import parse_index_type
from vegindex.utils.geometry import canonical_ring
from vegindex.utils.string_utils import canonical_json, get_current_timestamp, sha256_hex

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheFingerprint:
    value: str
    scene_date_token: str

    def __str__(self) -> str:
        return self.value

    @property
    def short(self) -> str:
        return self.value[:8]


def make_fingerprint(request: IndexRequest, scene_date_token: str = LATEST) -> CacheFingerprint:
    """
    Deterministic cache key for a request.

    The polygon enters in canonical ring form, so the same field drawn from a
    different starting vertex or in the opposite direction shares an entry.
    """
    payload = {
        "coords": [list(point) for point in canonical_ring(request.polygon)],
        "indexType": parse_index_type(request.index_type).value,
        "cloudCoverage": float(request.cloud_tolerance),
        "imageDate": scene_date_token or LATEST,
    }
    digest = sha256_hex(canonical_json(payload).encode("utf-8"))
    return CacheFingerprint(value=digest, scene_date_token=scene_date_token or LATEST)


class ResultCache:
    """SQL-backed store of CachedResponse entries."""

    def __init__(
        self,
        session_maker: async_sessionmaker,
        settings: Optional[Settings] = None,
    ):
        self.session_maker = session_maker
        self.settings = settings or get_settings()

    def _expired(self, entry: IndexResultCacheEntry) -> bool:
        ttl_days = self.settings.cache_ttl_days
        if not ttl_days:
            return False
        age_days = (get_current_timestamp() - entry.created_at) / 86400
        if age_days > ttl_days:
            logger.info(f"Cache entry {entry.fingerprint[:8]} expired ({age_days:.1f} days old)")
            return True
        return False

    async def get(self, fingerprint: CacheFingerprint) -> Optional[CachedResponse]:
        """
        Look up a cached response.

        Read failures are logged and reported as a miss so the pipeline can
        still run.
        """
        try:
            async with self.session_maker() as session:
                entry = await session.get(IndexResultCacheEntry, fingerprint.value)
        except Exception as e:
            logger.error(f"Error reading from cache: {e}")
            return None

        if entry is None or self._expired(entry):
            return None

        logger.info(f"Cache hit for {fingerprint.short}...")
        return CachedResponse(
            tile_url=entry.tile_url,
            min=entry.min_value,
            max=entry.max_value,
            mean=entry.mean_value,
            scene_date_token=entry.scene_date_token,
            index_type=parse_index_type(entry.index_type),
        )

    async def put(
        self,
        fingerprint: CacheFingerprint,
        request: IndexRequest,
        response: CachedResponse,
    ) -> bool:
        """
        Store a response, overwriting any entry with the same fingerprint.

        Never raises: a failed write only forfeits future reuse.

        Returns:
            bool: True if stored, False otherwise
        """
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    await session.merge(
                        IndexResultCacheEntry(
                            fingerprint=fingerprint.value,
                            tile_url=response.tile_url,
                            min_value=response.min,
                            max_value=response.max,
                            mean_value=response.mean,
                            scene_date_token=response.scene_date_token,
                            index_type=parse_index_type(response.index_type).value,
                            cloud_tolerance=float(request.cloud_tolerance),
                            coordinates=request.polygon.as_dicts(),
                            created_at=get_current_timestamp(),
                        )
                    )
            logger.info(f"Stored result in cache with hash: {fingerprint.short}...")
            return True
        except Exception as e:
            error = CacheWriteFailed(f"Error storing in cache: {e}", stage="cache_write")
            logger.error(f"{error.message} ({error.kind})")
            return False

    async def count(self) -> int:
        async with self.session_maker() as session:
            result = await session.execute(
                select(func.count()).select_from(IndexResultCacheEntry)
            )
            return int(result.scalar_one())
