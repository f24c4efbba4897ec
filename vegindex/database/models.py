from sqlalchemy import JSON, Column, Float, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from .connection import Base
from ..utils.string_utils import get_current_timestamp


class IndexResultCacheEntry(Base):
    """Cached index pipeline result, keyed by content fingerprint."""

    __tablename__ = "index_result_cache"

    fingerprint = Column(String(64), primary_key=True)

    # Cached response
    tile_url = Column(Text, nullable=False)
    min_value = Column(Float, nullable=False)
    max_value = Column(Float, nullable=False)
    mean_value = Column(Float, nullable=False)
    scene_date_token = Column(String(32), nullable=False)  # YYYY-MM-DD or "latest"
    index_type = Column(String(16), nullable=False)

    # Request parameters, kept for debugging and cleanup
    cloud_tolerance = Column(Float, nullable=False)
    coordinates = Column(JSON().with_variant(JSONB, "postgresql"))

    # Timestamps (Unix seconds)
    created_at = Column(Integer, default=get_current_timestamp, nullable=False)

    __table_args__ = (
        Index("ix_index_result_cache_created_at", "created_at"),
    )

    def __repr__(self):
        return (
            f"<IndexResultCacheEntry(fingerprint='{self.fingerprint[:8]}', "
            f"index_type='{self.index_type}', scene='{self.scene_date_token}')>"
        )
