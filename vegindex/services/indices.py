"""
Vegetation index formula library.

Each index is a band-arithmetic expression over Sentinel-2 surface reflectance
bands, evaluated server-side by Earth Engine. Indices whose formula has an
additive constant (EVI, MSAVI) are evaluated on reflectance scaled to 0-1;
pure ratios are scale-free and use the raw digital numbers.
"""

import ee
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Tuple

from vegindex.services.exceptions import InvalidInput

logger = logging.getLogger(__name__)

# Sentinel-2 L2A digital numbers to reflectance
REFLECTANCE_SCALE = 0.0001

# QA60 cloud bits
OPAQUE_CLOUD_BIT = 1 << 10
CIRRUS_BIT = 1 << 11


class IndexType(str, Enum):
    NDVI = "NDVI"
    NDRE = "NDRE"
    EVI = "EVI"
    NDWI = "NDWI"
    MSAVI = "MSAVI"
    PSRI = "PSRI"


# Palettes by index family
VIGOR_PALETTE = ["red", "yellow", "green"]
WATER_PALETTE = ["f7fbff", "9ecae1", "4292c6", "08519c", "08306b"]
SENESCENCE_PALETTE = ["green", "yellow", "orange", "red"]
GENERIC_PALETTE = ["blue", "cyan", "yellow", "orange", "red"]


@dataclass(frozen=True)
class IndexDefinition:
    index_type: IndexType
    name: str
    expression: str
    bands: Dict[str, str]
    value_range: Tuple[float, float]
    palette: List[str]
    description: str
    scale_reflectance: bool = False

    @property
    def formula(self) -> str:
        return self.expression


INDEX_DEFINITIONS: Dict[IndexType, IndexDefinition] = {
    IndexType.NDVI: IndexDefinition(
        index_type=IndexType.NDVI,
        name="Normalized Difference Vegetation Index",
        expression="(NIR - RED) / (NIR + RED)",
        bands={"NIR": "B8", "RED": "B4"},
        value_range=(-1.0, 1.0),
        palette=VIGOR_PALETTE,
        description="General vegetation vigor and canopy density",
    ),
    IndexType.NDRE: IndexDefinition(
        index_type=IndexType.NDRE,
        name="Normalized Difference Red Edge",
        expression="(NIR - REDEDGE) / (NIR + REDEDGE)",
        bands={"NIR": "B8", "REDEDGE": "B5"},
        value_range=(-1.0, 1.0),
        palette=VIGOR_PALETTE,
        description="Chlorophyll content in mid and late season crops",
    ),
    IndexType.EVI: IndexDefinition(
        index_type=IndexType.EVI,
        name="Enhanced Vegetation Index",
        expression="2.5 * ((NIR - RED) / (NIR + 6 * RED - 7.5 * BLUE + 1))",
        bands={"NIR": "B8", "RED": "B4", "BLUE": "B2"},
        value_range=(-1.0, 1.0),
        palette=GENERIC_PALETTE,
        description="Vegetation vigor with reduced saturation in dense canopy",
        scale_reflectance=True,
    ),
    IndexType.NDWI: IndexDefinition(
        index_type=IndexType.NDWI,
        name="Normalized Difference Water Index",
        expression="(GREEN - NIR) / (GREEN + NIR)",
        bands={"GREEN": "B3", "NIR": "B8"},
        value_range=(-1.0, 1.0),
        palette=WATER_PALETTE,
        description="Surface water and canopy water content",
    ),
    IndexType.MSAVI: IndexDefinition(
        index_type=IndexType.MSAVI,
        name="Modified Soil Adjusted Vegetation Index",
        expression=(
            "(2 * NIR + 1 - sqrt((2 * NIR + 1) ** 2 - 8 * (NIR - RED))) / 2"
        ),
        bands={"NIR": "B8", "RED": "B4"},
        value_range=(-1.0, 1.0),
        palette=VIGOR_PALETTE,
        description="Vegetation vigor over exposed soil and early season crops",
        scale_reflectance=True,
    ),
    IndexType.PSRI: IndexDefinition(
        index_type=IndexType.PSRI,
        name="Plant Senescence Reflectance Index",
        expression="(RED - BLUE) / REDEDGE2",
        bands={"RED": "B4", "BLUE": "B2", "REDEDGE2": "B6"},
        value_range=(-1.0, 1.0),
        palette=SENESCENCE_PALETTE,
        description="Canopy senescence and ripening",
    ),
}


def parse_index_type(value) -> IndexType:
    """Resolve a user-supplied index name, raising InvalidInput if unknown."""
    if isinstance(value, IndexType):
        return value
    try:
        return IndexType(str(value).strip().upper())
    except ValueError:
        supported = ", ".join(t.value for t in IndexType)
        raise InvalidInput(
            f"Unsupported index type: {value}. Must be one of {supported}."
        ) from None


def get_definition(index_type) -> IndexDefinition:
    return INDEX_DEFINITIONS[parse_index_type(index_type)]


def get_palette(index_type) -> List[str]:
    return list(get_definition(index_type).palette)


def band_names(index_type) -> List[str]:
    return sorted(set(get_definition(index_type).bands.values()))


def mask_clouds(image: ee.Image) -> ee.Image:
    """Mask opaque clouds and cirrus using the Sentinel-2 QA60 band."""
    qa = image.select("QA60")
    clouds = qa.bitwiseAnd(OPAQUE_CLOUD_BIT).Or(qa.bitwiseAnd(CIRRUS_BIT))
    return image.updateMask(clouds.Not())


def compute_index(image: ee.Image, index_type) -> ee.Image:
    """
    Apply an index formula to a scene.

    Args:
        image: Sentinel-2 surface reflectance image
        index_type: Index to compute (IndexType or its name)

    Returns:
        Single-band image named after the index
    """
    definition = get_definition(index_type)
    source = image
    if definition.scale_reflectance:
        source = image.multiply(REFLECTANCE_SCALE)

    band_map = {
        variable: source.select(band) for variable, band in definition.bands.items()
    }
    return image.expression(definition.expression, band_map).rename(
        definition.index_type.value
    )


def describe_indices() -> List[Dict[str, object]]:
    """Catalogue of supported indices for API clients."""
    return [
        {
            "index_type": definition.index_type.value,
            "name": definition.name,
            "formula": definition.formula,
            "bands": definition.bands,
            "value_range": list(definition.value_range),
            "palette": definition.palette,
            "description": definition.description,
        }
        for definition in INDEX_DEFINITIONS.values()
    ]
