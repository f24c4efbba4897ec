from unittest.mock import MagicMock

from vegindex.models.domain import LATEST, CachedResponse
from vegindex.services.indices import IndexType
from vegindex.services.result_cache import ResultCache, make_fingerprint
from vegindex.utils.string_utils import get_current_timestamp
from vegindex.utils.validation import validate_index_request


def _response(token=LATEST, index_type=IndexType.NDVI):
    return CachedResponse(
        tile_url="https://earthengine.example/map/NDVI/{z}/{x}/{y}",
        min=0.1,
        max=0.8,
        mean=0.5,
        scene_date_token=token,
        index_type=index_type,
    )


def test_fingerprint_is_stable_under_ring_rotation(field_coordinates):
    rotated = field_coordinates[2:] + field_coordinates[:2]
    a = make_fingerprint(validate_index_request(field_coordinates, "NDVI", 50))
    b = make_fingerprint(validate_index_request(list(reversed(rotated)), "ndvi", 50.0))
    assert a.value == b.value
    assert len(a.value) == 64


def test_fingerprint_changes_with_inputs(field_coordinates):
    request = validate_index_request(field_coordinates, "NDVI", 50)
    base = make_fingerprint(request)
    assert base != make_fingerprint(request, "2025-06-14")
    assert base != make_fingerprint(validate_index_request(field_coordinates, "NDRE", 50))
    assert base != make_fingerprint(validate_index_request(field_coordinates, "NDVI", 40))
    assert base.scene_date_token == LATEST


async def test_put_then_get(session_maker, settings, field_coordinates):
    cache = ResultCache(session_maker, settings)
    request = validate_index_request(field_coordinates, "NDVI", 50)
    fingerprint = make_fingerprint(request)

    assert await cache.get(fingerprint) is None
    assert await cache.put(fingerprint, request, _response()) is True

    cached = await cache.get(fingerprint)
    assert cached == _response()
    assert await cache.count() == 1


async def test_duplicate_put_overwrites(session_maker, settings, field_coordinates):
    cache = ResultCache(session_maker, settings)
    request = validate_index_request(field_coordinates, "NDVI", 50)
    fingerprint = make_fingerprint(request)

    await cache.put(fingerprint, request, _response())
    await cache.put(fingerprint, request, _response())
    assert await cache.count() == 1


async def test_expired_entries_are_misses(session_maker, settings, field_coordinates, monkeypatch):
    settings.cache_ttl_days = 30
    cache = ResultCache(session_maker, settings)
    request = validate_index_request(field_coordinates, "NDVI", 50)
    fingerprint = make_fingerprint(request)
    stored_at = get_current_timestamp()
    await cache.put(fingerprint, request, _response())
    assert await cache.get(fingerprint) is not None

    monkeypatch.setattr(
        "vegindex.services.result_cache.get_current_timestamp",
        lambda: stored_at + 31 * 86400,
    )
    assert await cache.get(fingerprint) is None


async def test_write_failure_is_swallowed(settings, field_coordinates):
    broken = MagicMock(side_effect=RuntimeError("database is down"))
    cache = ResultCache(broken, settings)
    request = validate_index_request(field_coordinates, "NDVI", 50)

    assert await cache.put(make_fingerprint(request), request, _response()) is False
    assert await cache.get(make_fingerprint(request)) is None
