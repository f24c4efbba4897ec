import pytest

from vegindex.services.compute_planner import ComputePlanner, scale_for_area
from vegindex.utils.geometry import Polygon, bounding_box


@pytest.mark.parametrize(
    "area_km2, expected",
    [(0.5, 100), (5, 100), (10, 100), (10.01, 150), (50, 150), (75, 200), (100, 200), (400, 250)],
)
def test_scale_for_area_steps(area_km2, expected):
    assert scale_for_area(area_km2) == expected


def test_scale_is_monotonic_in_area():
    scales = [scale_for_area(area) for area in range(0, 500, 5)]
    assert scales == sorted(scales)
    assert set(scales) <= {100, 150, 200, 250}


def test_plan_buffers_bbox_and_picks_scale(settings, field_coordinates):
    polygon = Polygon.from_points(field_coordinates)
    plan = ComputePlanner(settings).plan(polygon)

    assert plan.scale == 100
    assert 0 < plan.area_km2 < 1
    assert plan.clip_region.contains(bounding_box(polygon))
    # 1 km on each side
    assert plan.clip_region.max_lat - bounding_box(polygon).max_lat == pytest.approx(
        1000 / 111320
    )


def test_plan_respects_configured_steps(settings, field_coordinates):
    settings.scale_thresholds_km2 = [0.1]
    settings.scale_steps_meters = [10, 20]
    plan = ComputePlanner(settings).plan(Polygon.from_points(field_coordinates))
    assert plan.scale == 20
