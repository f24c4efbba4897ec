import io
import logging
from typing import Dict, List, Optional

from minio import Minio
from minio.error import S3Error

from vegindex.config.settings import Settings, get_settings
from vegindex.services.exceptions import ImageStoreError
from vegindex.utils.async_helpers import run_in_executor
from vegindex.utils.string_utils import sha256_hex, slugify

logger = logging.getLogger(__name__)


def export_prefix(base_prefix: str, area_name: str, index_type: str) -> str:
    """Key prefix shared by every render of one (area, index) pair."""
    return f"{base_prefix}/{slugify(area_name)}-{index_type.lower()}-"


def export_image_path(
    base_prefix: str, area_name: str, index_type: str, image_bytes: bytes
) -> str:
    """Content-addressed object path: prefix plus the first 16 hex of SHA-256."""
    content_hash = sha256_hex(image_bytes)[:16]
    return f"{export_prefix(base_prefix, area_name, index_type)}{content_hash}.png"


class MinIOClient:
    """MinIO client for exported index image storage."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[Minio] = None):
        self.settings = settings or get_settings()
        self.client = client or Minio(
            endpoint=self.settings.minio_endpoint,
            access_key=self.settings.minio_access_key,
            secret_key=self.settings.minio_secret_key,
            secure=self.settings.minio_secure,
        )
        self.bucket_name = self.settings.minio_bucket_name
        self._bucket_checked = False

    def _ensure_bucket_exists(self):
        """Ensure the bucket exists, create if it doesn't."""
        if self._bucket_checked:
            return
        try:
            if not self.client.bucket_exists(self.bucket_name):
                self.client.make_bucket(self.bucket_name)
                logger.info(f"Created MinIO bucket: {self.bucket_name}")
            self._bucket_checked = True
        except S3Error as e:
            logger.error(f"Error ensuring bucket exists: {e}")
            raise

    def _put_bytes(self, file_path: str, data: bytes, content_type: str, metadata: Dict[str, str]):
        self._ensure_bucket_exists()
        self.client.put_object(
            bucket_name=self.bucket_name,
            object_name=file_path,
            data=io.BytesIO(data),
            length=len(data),
            content_type=content_type,
            metadata=metadata,
        )

    async def upload_bytes(
        self,
        file_path: str,
        data: bytes,
        content_type: str = "image/png",
        metadata: Optional[Dict[str, str]] = None,
    ) -> bool:
        """
        Upload bytes to MinIO.

        Args:
            file_path: Path within the bucket
            data: Object content
            content_type: MIME type of the file
            metadata: Optional metadata dictionary

        Returns:
            bool: True if successful, False otherwise
        """
        try:
            await run_in_executor(
                self._put_bytes,
                file_path,
                data,
                content_type,
                metadata or {"Cache-Control": "public, max-age=31536000"},
            )
            logger.info(f"Successfully uploaded file: {file_path}")
            return True

        except S3Error as e:
            logger.error(f"Error uploading file {file_path}: {e}")
            return False

    async def delete_file(self, file_path: str) -> bool:
        """
        Delete a file from MinIO.

        Returns:
            bool: True if successful, False otherwise
        """
        try:
            await run_in_executor(self.client.remove_object, self.bucket_name, file_path)
            logger.info(f"Successfully deleted file: {file_path}")
            return True

        except S3Error as e:
            logger.error(f"Error deleting file {file_path}: {e}")
            return False

    async def file_exists(self, file_path: str) -> bool:
        """
        Check if a file exists in MinIO.

        Returns:
            bool: True if file exists, False otherwise
        """
        try:
            await run_in_executor(self.client.stat_object, self.bucket_name, file_path)
            return True
        except S3Error:
            return False

    async def list_files(self, prefix: str = "") -> List[str]:
        """
        List files in the bucket with optional prefix.

        Returns:
            List of file paths
        """

        def _list() -> List[str]:
            objects = self.client.list_objects(
                bucket_name=self.bucket_name, prefix=prefix, recursive=True
            )
            return [obj.object_name for obj in objects]

        try:
            return await run_in_executor(_list)
        except S3Error as e:
            logger.error(f"Error listing files with prefix {prefix}: {e}")
            return []

    def get_public_url(self, file_path: str) -> str:
        """Public URL of an object (bucket must allow anonymous reads)."""
        if self.settings.minio_public_base_url:
            base = self.settings.minio_public_base_url.rstrip("/")
        else:
            scheme = "https" if self.settings.minio_secure else "http"
            base = f"{scheme}://{self.settings.minio_endpoint}"
        return f"{base}/{self.bucket_name}/{file_path}"

    async def store_export_image(
        self, area_name: str, index_type: str, image_bytes: bytes
    ) -> str:
        """
        Store a rendered export image under a content-addressed path.

        Identical content is never uploaded twice. Otherwise every earlier
        render for the same (area, index) is deleted before the new one is
        written, so briefly no object exists under the prefix. Concurrent
        writers are not coordinated; the last write wins.

        Returns:
            Public URL of the stored image

        Raises:
            ImageStoreError: If the store is unreachable or the upload fails
        """
        base_prefix = self.settings.export_image_prefix
        path = export_image_path(base_prefix, area_name, index_type, image_bytes)

        try:
            if await self.file_exists(path):
                logger.info(f"File already exists, skipping upload: {path}")
                return self.get_public_url(path)

            prefix = export_prefix(base_prefix, area_name, index_type)
            for stale in await self.list_files(prefix):
                await self.delete_file(stale)

            uploaded = await self.upload_bytes(path, image_bytes, content_type="image/png")
        except Exception as e:
            # Connection-level failures (urllib3, socket) are not S3Errors
            logger.error(f"Image store unavailable while storing {path}: {e}")
            raise ImageStoreError(
                f"Image store unavailable: {e}", stage="store"
            ) from e

        if not uploaded:
            raise ImageStoreError(f"Failed to upload export image {path}", stage="store")

        return self.get_public_url(path)


_minio_client: Optional[MinIOClient] = None


def get_minio_client() -> MinIOClient:
    """Process-wide MinIO client, created on first use."""
    global _minio_client
    if _minio_client is None:
        _minio_client = MinIOClient()
    return _minio_client
