import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vegindex.config.settings import Settings
from vegindex.database.connection import create_engine_for, init_db

from tests.fakes import FakeEarthEngineClient

# Small rice field in the Mekong delta (about 0.3 km2)
FIELD = [
    {"lat": 9.96866, "lng": 105.47811},
    {"lat": 9.97166, "lng": 105.47811},
    {"lat": 9.97166, "lng": 105.48311},
    {"lat": 9.96866, "lng": 105.48311},
]


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        cloud_coverage_tiers=[20, 30, 40, 50],
        cache_ttl_days=None,
    )


@pytest.fixture
def field_coordinates():
    return [dict(point) for point in FIELD]


@pytest.fixture
def fake_client():
    return FakeEarthEngineClient(
        scene_counts={20: 0, 30: 2, 40: 5, 50: 9},
        stats={"NDVI_min": 0.12, "NDVI_max": 0.81, "NDVI_mean": 0.55},
    )


@pytest.fixture
async def session_maker(tmp_path):
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}")
    await init_db(engine)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()
