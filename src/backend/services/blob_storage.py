"""
MinIO blob storage for attachments.

Objects live in a single bucket under
`{container}/{directory}/{file_name}.{extension}`, where `directory` is the
serial number of the owning record (e.g. `incidents/INC-000042/3f9c....png`).
Deleting a record removes its whole directory.

The client is process-wide state with an explicit lifecycle: the application
lifespan calls `initialize()` once at startup and `shutdown()` at exit.
Operations are not retried; failures propagate to the caller.
"""

import logging
from io import BytesIO
from typing import Optional

import urllib3
from minio import Minio
from minio.deleteobjects import DeleteObject
from minio.error import S3Error
from urllib3.exceptions import MaxRetryError

from core.async_utils import run_blocking
from core.config import MinIOSettings, settings

logger = logging.getLogger(__name__)


class BlobStorageError(RuntimeError):
    """A storage operation partially failed."""


class StorageNotInitializedError(BlobStorageError):
    """Raised when blob storage is used before `initialize()` or after `shutdown()`."""


def build_object_key(container: str, directory: str, file_name: str, extension: str = "") -> str:
    """
    Example:
        >>> build_object_key("incidents", "INC-000042", "3f9c", "png")
        'incidents/INC-000042/3f9c.png'
    """
    name = f"{file_name}.{extension}" if extension else file_name
    return f"{container}/{directory}/{name}"


def directory_prefix(container: str, directory: str) -> str:
    return f"{container}/{directory}/"


class BlobStorage:
    """Owns the MinIO client and its connection pool."""

    def __init__(self, config: Optional[MinIOSettings] = None):
        self.config = config or settings.minio
        self._client: Optional[Minio] = None
        self._http: Optional[urllib3.PoolManager] = None

    @property
    def is_initialized(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> Minio:
        if self._client is None:
            raise StorageNotInitializedError("Blob storage has not been initialized")
        return self._client

    @property
    def bucket(self) -> str:
        return self.config.bucket_name

    async def initialize(self) -> None:
        """Create the client and make sure the bucket exists. Idempotent."""
        if self._client is not None:
            return

        self._http = urllib3.PoolManager(
            timeout=urllib3.Timeout(connect=5, read=30),
            retries=urllib3.Retry(total=0),
        )
        self._client = Minio(
            endpoint=self.config.endpoint,
            access_key=self.config.access_key,
            secret_key=self.config.secret_key,
            secure=self.config.secure,
            region=self.config.region,
            http_client=self._http,
        )
        logger.info(f"MinIO client initialized: {self.config.endpoint}")

        try:
            if not await run_blocking(self._client.bucket_exists, self.bucket):
                await run_blocking(self._client.make_bucket, self.bucket, location=self.config.region)
                logger.info(f"Created MinIO bucket: {self.bucket}")
            else:
                logger.info(f"MinIO bucket already exists: {self.bucket}")
        except (S3Error, MaxRetryError):
            await self.shutdown()
            raise

    async def shutdown(self) -> None:
        """Release pooled connections. Safe to call more than once."""
        if self._http is not None:
            self._http.clear()
        self._client = None
        self._http = None
        logger.info("MinIO client closed")

    async def upload_file(
        self,
        container: str,
        directory: str,
        file_name: str,
        extension: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        """
        Store one blob.

        Returns:
            Object key of the stored blob
        """
        object_key = build_object_key(container, directory, file_name, extension)
        await run_blocking(
            self.client.put_object,
            bucket_name=self.bucket,
            object_name=object_key,
            data=BytesIO(content),
            length=len(content),
            content_type=content_type,
        )
        logger.info(f"Uploaded file to MinIO: {self.bucket}/{object_key} ({len(content)} bytes)")
        return object_key

    async def delete_file(
        self, container: str, directory: str, file_name: str, extension: str
    ) -> bool:
        """
        Delete one blob.

        Returns:
            True if deleted, False if it did not exist
        """
        object_key = build_object_key(container, directory, file_name, extension)
        try:
            await run_blocking(self.client.remove_object, self.bucket, object_key)
        except S3Error as e:
            if e.code == "NoSuchKey":
                logger.warning(f"File not found for deletion: {self.bucket}/{object_key}")
                return False
            raise
        logger.info(f"Deleted file from MinIO: {self.bucket}/{object_key}")
        return True

    def _delete_prefix_sync(self, prefix: str) -> int:
        objects = self.client.list_objects(self.bucket, prefix=prefix, recursive=True)
        to_delete = [DeleteObject(obj.object_name) for obj in objects]
        if not to_delete:
            return 0
        errors = list(self.client.remove_objects(self.bucket, to_delete))
        if errors:
            names = [error.name for error in errors]
            raise BlobStorageError(f"Failed to delete {len(errors)} object(s) under {prefix}: {names}")
        return len(to_delete)

    async def delete_directory(self, container: str, directory: str) -> int:
        """
        Delete every blob under a record's directory.

        Returns:
            Number of objects removed
        """
        prefix = directory_prefix(container, directory)
        removed = await run_blocking(self._delete_prefix_sync, prefix)
        logger.info(f"Deleted MinIO directory: {self.bucket}/{prefix} ({removed} objects)")
        return removed

    def _download_sync(self, object_key: str) -> Optional[bytes]:
        try:
            response = self.client.get_object(self.bucket, object_key)
        except S3Error as e:
            if e.code == "NoSuchKey":
                return None
            raise
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    async def download_file(
        self, container: str, directory: str, file_name: str, extension: str
    ) -> Optional[bytes]:
        """Blob content, or None if it does not exist."""
        object_key = build_object_key(container, directory, file_name, extension)
        content = await run_blocking(self._download_sync, object_key)
        if content is None:
            logger.warning(f"File not found in MinIO: {self.bucket}/{object_key}")
        return content

    async def health_check(self) -> bool:
        """True when the bucket is reachable."""
        if not self.is_initialized:
            return False
        try:
            return await run_blocking(self.client.bucket_exists, self.bucket)
        except (S3Error, MaxRetryError) as e:
            logger.error(f"MinIO health check failed: {e}")
            return False


blob_storage = BlobStorage()


def get_blob_storage() -> BlobStorage:
    """FastAPI dependency returning the process-wide storage handle."""
    return blob_storage
