from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from minio.error import S3Error

from vegindex.services.exceptions import ImageStoreError
from vegindex.storage.minio_client import MinIOClient, export_image_path, export_prefix
from vegindex.utils.string_utils import sha256_hex

PNG = b"\x89PNG rendered field"


class FakeS3Error(S3Error):
    def __init__(self, code):
        Exception.__init__(self, code)
        self.fake_code = code

    def __str__(self):
        return self.fake_code


def _s3_error(code="NoSuchKey"):
    return FakeS3Error(code)


@pytest.fixture
def minio():
    client = MagicMock()
    client.bucket_exists.return_value = True
    client.stat_object.side_effect = _s3_error()
    client.list_objects.return_value = []
    return client


@pytest.fixture
def store(settings, minio):
    settings.minio_public_base_url = "https://cdn.example"
    return MinIOClient(settings, client=minio)


def test_export_path_is_content_addressed():
    path = export_image_path("index-images", "North Field #2", "NDVI", PNG)
    assert path == f"index-images/north-field--2-ndvi-{sha256_hex(PNG)[:16]}.png"
    assert path.startswith(export_prefix("index-images", "North Field #2", "NDVI"))


def test_public_url_without_base(settings, minio):
    settings.minio_public_base_url = None
    settings.minio_endpoint = "minio:9000"
    client = MinIOClient(settings, client=minio)
    assert client.get_public_url("a/b.png") == "http://minio:9000/index-exports/a/b.png"


async def test_existing_content_is_not_uploaded_again(store, minio):
    minio.stat_object.side_effect = None

    url = await store.store_export_image("North Field", "NDVI", PNG)

    assert url.startswith("https://cdn.example/index-exports/index-images/north-field-ndvi-")
    minio.put_object.assert_not_called()
    minio.remove_object.assert_not_called()


async def test_new_content_replaces_previous_renders(store, minio):
    minio.list_objects.return_value = [
        SimpleNamespace(object_name="index-images/north-field-ndvi-aaaaaaaaaaaaaaaa.png")
    ]

    url = await store.store_export_image("North Field", "NDVI", PNG)

    minio.list_objects.assert_called_once_with(
        bucket_name="index-exports", prefix="index-images/north-field-ndvi-", recursive=True
    )
    minio.remove_object.assert_called_once_with(
        "index-exports", "index-images/north-field-ndvi-aaaaaaaaaaaaaaaa.png"
    )
    kwargs = minio.put_object.call_args.kwargs
    assert kwargs["object_name"] == export_image_path("index-images", "North Field", "NDVI", PNG)
    assert kwargs["content_type"] == "image/png"
    assert kwargs["length"] == len(PNG)
    assert url.endswith(kwargs["object_name"])


async def test_upload_failure_raises(store, minio):
    minio.put_object.side_effect = _s3_error("AccessDenied")
    with pytest.raises(ImageStoreError):
        await store.store_export_image("North Field", "NDVI", PNG)


async def test_connection_failure_becomes_image_store_error(store, minio):
    minio.stat_object.side_effect = ConnectionError("connection refused")

    with pytest.raises(ImageStoreError) as exc_info:
        await store.store_export_image("North Field", "NDVI", PNG)

    assert exc_info.value.kind == "image_store_error"
    assert "connection refused" in exc_info.value.message
    minio.put_object.assert_not_called()
