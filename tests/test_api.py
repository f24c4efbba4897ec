import pytest
from fastapi.testclient import TestClient

from vegindex.api import handlers
from vegindex.main import app
from vegindex.services.export_service import ExportService
from vegindex.services.index_pipeline import IndexPipeline
from vegindex.services.rendering_service import RenderingOrchestrator

from tests.fakes import FakeEarthEngineClient, FakeImageStore, FakeRenderer


@pytest.fixture
def client_for(settings):
    def build(ee_client):
        pipeline = IndexPipeline(ee_client, None, settings)
        export_service = ExportService(
            pipeline,
            RenderingOrchestrator(FakeRenderer(png=b"png"), settings),
            FakeImageStore(),
            settings,
        )
        app.dependency_overrides[handlers.get_index_pipeline] = lambda: pipeline
        app.dependency_overrides[handlers.get_export_service] = lambda: export_service
        return TestClient(app)

    yield build
    app.dependency_overrides.clear()


def test_root_health(client_for):
    response = client_for(FakeEarthEngineClient()).get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_index_types(client_for):
    response = client_for(FakeEarthEngineClient()).get("/satellite/index/types")
    names = [item["name"] for item in response.json()["indices"]]
    assert names == ["NDVI", "NDRE", "EVI", "NDWI", "MSAVI", "PSRI"]


def test_plan_preview(client_for, field_coordinates):
    response = client_for(FakeEarthEngineClient()).post(
        "/satellite/index/plan", json={"coordinates": field_coordinates}
    )
    body = response.json()
    assert response.status_code == 200
    assert body["scale_meters"] == 100
    assert body["clip_region"]["min_lat"] < field_coordinates[0]["lat"]


def test_process_index(client_for, fake_client, field_coordinates):
    response = client_for(fake_client).post(
        "/satellite/index/process",
        json={"coordinates": field_coordinates, "index_type": "ndvi", "cloud_coverage": 50},
    )
    body = response.json()
    assert response.status_code == 200
    assert body["success"] is True
    assert body["stats"] == {"min": 0.12, "max": 0.81, "mean": 0.55}
    assert body["tile_url"].startswith("https://earthengine.example/map/NDVI/")
    assert body["scene_date_token"] == "latest"


def test_process_index_no_imagery(client_for, field_coordinates):
    response = client_for(FakeEarthEngineClient()).post(
        "/satellite/index/process",
        json={"coordinates": field_coordinates, "cloud_coverage": 30},
    )
    body = response.json()
    assert response.status_code == 200
    assert body["no_imagery"] is True
    assert body["tiers_tried"] == [20, 30]


@pytest.mark.parametrize(
    "ee_client, payload_index, status_code",
    [
        (FakeEarthEngineClient(scene_counts={20: 1}), "SAVI", 400),
        (FakeEarthEngineClient(scene_counts={20: 1}, stats={}), "NDVI", 422),
        (FakeEarthEngineClient(scene_counts={20: 1}, timeouts=["statistics"]), "NDVI", 504),
    ],
)
def test_process_index_error_mapping(client_for, field_coordinates, ee_client, payload_index, status_code):
    response = client_for(ee_client).post(
        "/satellite/index/process",
        json={"coordinates": field_coordinates, "index_type": payload_index},
    )
    assert response.status_code == status_code
    assert response.json()["detail"]["kind"]


def test_process_index_rejects_half_date_range(client_for, field_coordinates):
    response = client_for(FakeEarthEngineClient()).post(
        "/satellite/index/process",
        json={"coordinates": field_coordinates, "start_date": "2025-06-01"},
    )
    assert response.status_code == 422


def test_export(client_for, fake_client, field_coordinates):
    response = client_for(fake_client).post(
        "/satellite/index/export",
        json={
            "area_name": "North Field",
            "coordinates": field_coordinates,
            "index_types": ["NDVI", "SAVI"],
            "cloud_coverage": 50,
        },
    )
    body = response.json()
    assert response.status_code == 200
    assert body["succeeded"] == ["NDVI"]
    assert body["failed"] == ["SAVI"]
    assert body["images"][0]["image_url"] == "https://storage.example/North Field/NDVI.png"
