from unittest.mock import MagicMock

import pytest

from vegindex.services import indices
from vegindex.services.exceptions import InvalidInput
from vegindex.services.indices import IndexType


@pytest.mark.parametrize("value", ["ndvi", " NDVI ", IndexType.NDVI])
def test_parse_index_type_normalizes(value):
    assert indices.parse_index_type(value) is IndexType.NDVI


def test_parse_index_type_rejects_unknown():
    with pytest.raises(InvalidInput) as exc_info:
        indices.parse_index_type("SAVI")
    assert "SAVI" in exc_info.value.message
    assert exc_info.value.kind == "invalid_input"


def test_palettes_by_family():
    assert indices.get_palette("NDVI") == ["red", "yellow", "green"]
    assert indices.get_palette("PSRI") == ["green", "yellow", "orange", "red"]
    assert indices.get_palette("NDWI")[0] == "f7fbff"


def test_every_index_is_described():
    described = {item["index_type"] for item in indices.describe_indices()}
    assert described == {t.value for t in IndexType}


def test_band_names():
    assert indices.band_names("NDVI") == ["B4", "B8"]
    assert indices.band_names("PSRI") == ["B2", "B4", "B6"]


def test_compute_index_uses_raw_bands_for_ratios():
    image = MagicMock()
    indices.compute_index(image, "NDWI")

    image.multiply.assert_not_called()
    expression, band_map = image.expression.call_args.args
    assert expression == "(GREEN - NIR) / (GREEN + NIR)"
    assert set(band_map) == {"GREEN", "NIR"}
    image.expression.return_value.rename.assert_called_once_with("NDWI")


def test_compute_index_scales_reflectance_for_evi():
    image = MagicMock()
    indices.compute_index(image, "EVI")

    image.multiply.assert_called_once_with(indices.REFLECTANCE_SCALE)
    scaled = image.multiply.return_value
    scaled.select.assert_any_call("B8")
    scaled.select.assert_any_call("B2")
