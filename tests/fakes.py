from __future__ import annotations

import io
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from PIL import Image

from vegindex.services.exceptions import RemoteTimeout
from vegindex.services.indices import parse_index_type


def make_png(color=(40, 120, 40, 255), size=(60, 60)) -> bytes:
    out = io.BytesIO()
    Image.new("RGBA", size, color).save(out, "PNG")
    return out.getvalue()


@dataclass
class FakeHandle:
    """Stand-in for an ee graph node; records how it was built."""

    kind: str
    args: tuple = ()
    parent: Optional["FakeHandle"] = None


@dataclass
class FakeEarthEngineClient:
    """
    In-memory remote compute client.

    ``scene_counts`` maps a cloud tier to the number of scenes available at
    that ceiling; missing tiers have none. ``stats`` is returned verbatim by
    the reducer unless ``stats_by_index`` has an entry for the index.
    ``timeouts`` names operations that raise RemoteTimeout.
    """

    scene_counts: Dict[float, int] = field(default_factory=dict)
    capture_date: str = "2025-06-14"
    stats: Dict[str, Any] = field(default_factory=dict)
    stats_by_index: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    timeouts: List[str] = field(default_factory=list)
    calls: List[str] = field(default_factory=list)
    tile_template: str = "https://earthengine.example/map/{index}/{{z}}/{{x}}/{{y}}"

    def _check(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.timeouts:
            raise RemoteTimeout(operation, 0.01)

    def count(self, operation: str) -> int:
        return self.calls.count(operation)

    # Graph builders

    def polygon(self, polygon):
        return FakeHandle("polygon", (polygon,))

    def rectangle(self, bbox):
        return FakeHandle("rectangle", (bbox,))

    def scene_collection(self, region, max_cloud_cover, start_date=None, end_date=None):
        return FakeHandle("collection", (max_cloud_cover, start_date, end_date), region)

    def most_recent(self, collection):
        return FakeHandle("scene", (), collection)

    def clip(self, image, region):
        return FakeHandle("clip", (region,), image)

    def apply_index(self, image, index_type):
        return FakeHandle("index", (parse_index_type(index_type).value,), image)

    # Round trips

    async def collection_size(self, collection) -> int:
        self._check("scene_count")
        return self.scene_counts.get(collection.args[0], 0)

    async def scene_date(self, image) -> str:
        self._check("scene_fetch")
        return self.capture_date

    async def reduce_statistics(self, raster, region, scale) -> Dict[str, Any]:
        self._check("statistics")
        index_name = _index_of(raster)
        return dict(self.stats_by_index.get(index_name, self.stats))

    async def tile_url(self, raster, vis_params) -> str:
        self._check("tiles")
        return self.tile_template.format(index=_index_of(raster))

    async def thumbnail_url(self, image, params) -> str:
        self._check("thumbnail")
        kind = "index" if "palette" in params else "rgb"
        return f"https://earthengine.example/thumb/{kind}.png"


def _index_of(handle: Optional[FakeHandle]) -> Optional[str]:
    while handle is not None:
        if handle.kind == "index":
            return handle.args[0]
        handle = handle.parent
    return None


class FakeRenderer:
    """Primary renderer that either returns fixed bytes or raises."""

    def __init__(self, png: Optional[bytes] = None, error: Optional[Exception] = None):
        self.png = png
        self.error = error
        self.calls = 0
        self.closed = False

    async def render(self, polygon, tile_url) -> bytes:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.png

    async def close(self) -> None:
        self.closed = True


class FakeImageStore:
    def __init__(self):
        self.stored: List[tuple] = []

    async def store_export_image(self, area_name, index_type, image_bytes) -> str:
        self.stored.append((area_name, index_type, image_bytes))
        return f"https://storage.example/{area_name}/{index_type}.png"
