"""
Flat image rendering for document and messaging exports.

Primary path: a headless Chromium page composes basemap tiles, the index tile
overlay and the polygon outline, then screenshots it. Fallback path: two Earth
Engine thumbnails (true colour and index colour) over the same padded box are
downloaded and composited with Pillow. If both fail the caller gets
RenderingFailed and carries on without an image.
"""

import io
import json
import logging
from typing import Awaitable, Callable, Optional, Tuple

import requests
from PIL import Image, ImageDraw
from playwright.async_api import async_playwright

from vegindex.config.settings import Settings, get_settings
from vegindex.services.exceptions import RenderingFailed
from vegindex.utils.async_helpers import run_in_executor
from vegindex.utils.geometry import (
    BoundingBox,
    Polygon,
    bbox_center,
    bounding_box,
    pad_bbox_percent,
)

logger = logging.getLogger(__name__)

USER_AGENT = "VegIndex-Export-Service/1.0"

ThumbnailProvider = Callable[[], Awaitable[Tuple[str, str]]]


def thumbnail_bounds(polygon: Polygon, padding_percent: float) -> BoundingBox:
    """Padded box shared by both fallback thumbnails and the composite."""
    return pad_bbox_percent(bounding_box(polygon), padding_percent)


def latlng_to_pixel(
    lat: float, lng: float, bbox: BoundingBox, width: int, height: int
) -> Tuple[int, int]:
    """Project a point linearly into image pixels (y grows southwards)."""
    x = (lng - bbox.min_lng) / (bbox.max_lng - bbox.min_lng) * width
    y = (bbox.max_lat - lat) / (bbox.max_lat - bbox.min_lat) * height
    return round(x), round(y)


def composite_index_overlay(
    base_png: bytes,
    overlay_png: bytes,
    polygon: Polygon,
    bbox: BoundingBox,
    opacity: float = 0.7,
    outline_color: str = "#5db815",
    background_color: str = "#d9d9d9",
) -> bytes:
    """
    Blend an index thumbnail over a true-colour thumbnail.

    Cloud-masked (transparent) base pixels are filled with ``background_color``.
    The overlay is resized to the base, its alpha scaled by ``opacity`` and
    masked to the polygon interior; the polygon outline is drawn on top.
    ``bbox`` must be the box both thumbnails were requested for.

    Returns:
        PNG bytes
    """
    base = Image.open(io.BytesIO(base_png)).convert("RGBA")
    width, height = base.size
    base = Image.alpha_composite(Image.new("RGBA", base.size, background_color), base)

    overlay = Image.open(io.BytesIO(overlay_png)).convert("RGBA")
    if overlay.size != base.size:
        overlay = overlay.resize(base.size)

    pixels = [
        latlng_to_pixel(p.lat, p.lng, bbox, width, height) for p in polygon.points
    ]

    alpha = overlay.getchannel("A").point(lambda a: round(a * opacity))
    mask = Image.new("L", base.size, 0)
    ImageDraw.Draw(mask).polygon(pixels, fill=255)
    overlay.putalpha(Image.composite(alpha, mask, mask))

    composed = Image.alpha_composite(base, overlay)

    stroke = max(3, round(width / 300))
    draw = ImageDraw.Draw(composed)
    draw.line(
        pixels + [pixels[0]],
        fill=outline_color,
        width=stroke,
        joint="curve",
    )

    out = io.BytesIO()
    composed.convert("RGB").save(out, "PNG")
    return out.getvalue()


def download_image(url: str, timeout: float) -> bytes:
    """Download an image, raising on HTTP errors or non-image payloads."""
    response = requests.get(url, headers={"User-Agent": USER_AGENT}, timeout=timeout)
    response.raise_for_status()
    content = response.content
    if not content:
        raise ValueError(f"Empty image downloaded from {url[:80]}")
    # Reject error pages served with 200
    Image.open(io.BytesIO(content)).verify()
    return content


def build_map_html(
    polygon: Polygon,
    tile_url: str,
    basemap_url: str,
    outline_color: str,
    opacity: float,
    settle_ms: int,
    size: int,
    padding_percent: float = 5,
) -> str:
    """Leaflet page showing basemap, index tiles and polygon outline."""
    bbox = pad_bbox_percent(bounding_box(polygon), padding_percent)
    center = bbox_center(bbox)
    ring = json.dumps([[p.lat, p.lng] for p in polygon.points])
    bounds = json.dumps([[bbox.min_lat, bbox.min_lng], [bbox.max_lat, bbox.max_lng]])

    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <link rel="stylesheet" href="https://unpkg.com/leaflet@1.9.4/dist/leaflet.css">
  <script src="https://unpkg.com/leaflet@1.9.4/dist/leaflet.js"></script>
  <style>
    html, body {{ margin: 0; padding: 0; width: {size}px; height: {size}px; overflow: hidden; }}
    #map {{ width: 100%; height: 100%; }}
  </style>
</head>
<body>
  <div id="map"></div>
  <script>
    window.renderComplete = false;
    const map = L.map('map', {{
      center: [{center.lat}, {center.lng}],
      zoom: 15,
      zoomControl: false,
      attributionControl: false,
      fadeAnimation: false,
      zoomAnimation: false,
    }});
    map.fitBounds({bounds});

    const basemap = L.tileLayer({json.dumps(basemap_url)}, {{ maxZoom: 19 }}).addTo(map);
    const index = L.tileLayer({json.dumps(tile_url)}, {{ opacity: {opacity}, maxZoom: 19 }}).addTo(map);
    L.polygon({ring}, {{ color: {json.dumps(outline_color)}, weight: 3, fill: false }}).addTo(map);

    let pending = 2;
    function layerDone() {{
      pending -= 1;
      if (pending === 0) {{
        setTimeout(() => {{ window.renderComplete = true; }}, {settle_ms});
      }}
    }}
    basemap.once('load', layerDone);
    index.once('load', layerDone);
  </script>
</body>
</html>"""


class TileMapRenderer:
    """Headless Chromium screenshots of the interactive map composition."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._playwright = None
        self._browser = None

    async def _get_browser(self):
        if self._browser is not None and self._browser.is_connected():
            return self._browser

        logger.info("Launching headless browser...")
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=True, args=["--no-sandbox", "--disable-setuid-sandbox"]
        )
        logger.info("Browser launched")
        return self._browser

    async def render(self, polygon: Polygon, tile_url: str) -> bytes:
        size = self.settings.render_size
        browser = await self._get_browser()
        page = await browser.new_page(viewport={"width": size, "height": size})
        try:
            html = build_map_html(
                polygon,
                tile_url,
                self.settings.basemap_tile_url,
                self.settings.polygon_outline_color,
                self.settings.overlay_opacity,
                self.settings.render_settle_ms,
                size,
                self.settings.thumbnail_padding_percent,
            )
            timeout_ms = self.settings.render_timeout * 1000
            await page.set_content(html, wait_until="networkidle", timeout=timeout_ms)
            await page.wait_for_function(
                "window.renderComplete === true", timeout=timeout_ms
            )
            screenshot = await page.screenshot(
                type="png", clip={"x": 0, "y": 0, "width": size, "height": size}
            )
            logger.info(f"Screenshot captured ({len(screenshot)} bytes)")
            return screenshot
        finally:
            await page.close()

    async def close(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
            logger.info("Browser closed")
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None


class RenderingOrchestrator:
    """PrimaryRender, then FallbackComposite, then RenderingFailed."""

    def __init__(
        self,
        renderer: Optional[TileMapRenderer] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.renderer = renderer or TileMapRenderer(self.settings)

    async def render(
        self,
        polygon: Polygon,
        tile_url: str,
        thumbnails: Optional[ThumbnailProvider] = None,
    ) -> bytes:
        """
        Produce a flat PNG of the index over its field.

        Args:
            polygon: Field polygon
            tile_url: Index tile template from the pipeline
            thumbnails: Coroutine factory returning (rgb_url, index_url) for
                the padded thumbnail box; only awaited if the primary path fails

        Returns:
            PNG bytes

        Raises:
            RenderingFailed: Both paths failed
        """
        try:
            return await self.renderer.render(polygon, tile_url)
        except Exception as e:
            logger.warning(f"Headless browser rendering failed: {e}")

        if thumbnails is None:
            raise RenderingFailed("Primary render failed and no fallback source available")

        try:
            return await self._fallback_composite(polygon, thumbnails)
        except Exception as e:
            logger.error(f"Composite also failed: {e}")
            raise RenderingFailed(
                f"Both headless browser and composite failed: {e}", stage="render"
            ) from e

    async def _fallback_composite(
        self, polygon: Polygon, thumbnails: ThumbnailProvider
    ) -> bytes:
        logger.info("Falling back to thumbnail composite")
        rgb_url, index_url = await thumbnails()
        timeout = self.settings.download_timeout
        base_png = await run_in_executor(download_image, rgb_url, timeout)
        overlay_png = await run_in_executor(download_image, index_url, timeout)

        png = await run_in_executor(
            composite_index_overlay,
            base_png,
            overlay_png,
            polygon,
            thumbnail_bounds(polygon, self.settings.thumbnail_padding_percent),
            self.settings.overlay_opacity,
            self.settings.polygon_outline_color,
        )
        logger.info(f"Composite image created ({len(png)} bytes)")
        return png

    async def close(self) -> None:
        await self.renderer.close()
