# =============================================================================
# File: bidroom/infra/storage/minio_provider.py
# Description: MinIO/S3 storage provider
# =============================================================================

from __future__ import annotations

from contextlib import AsyncExitStack
from typing import Any, Optional, Sequence

import aioboto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from bidroom.common.base.base_storage_provider import BaseStorageProvider, UploadResult
from bidroom.common.exceptions.exceptions import InfrastructureError
from bidroom.config.logging_config import get_logger
from bidroom.config.storage_config import StorageConfig, get_storage_config

log = get_logger("bidroom.infra.storage.minio")


class MinIOStorageProvider(BaseStorageProvider):
    """
    MinIO/S3 storage provider.

    Works with both MinIO (development) and AWS S3 (production).
    Uses aioboto3 for async S3 operations.

    Features:
        - S3v4 signature (required for MinIO)
        - Persistent client with connection reuse
        - Configurable timeouts
    """

    def __init__(self, config: Optional[StorageConfig] = None):
        self.config = config or get_storage_config()
        self.session = aioboto3.Session()

        # Boto config (no retry - the messaging core never retries on its own)
        self._boto_config = BotoConfig(
            signature_version="s3v4",
            connect_timeout=self.config.connect_timeout,
            read_timeout=self.config.read_timeout,
            max_pool_connections=self.config.max_pool_connections,
            retries={"max_attempts": 0},
        )

        # Persistent client (lazy initialized)
        self._client: Optional[Any] = None
        self._exit_stack: Optional[AsyncExitStack] = None

    async def _get_client(self) -> Any:
        """Get or create persistent S3 client (connection reuse)"""
        if self._client is None:
            self._exit_stack = AsyncExitStack()
            self._client = await self._exit_stack.enter_async_context(
                self.session.client(
                    service_name="s3",
                    endpoint_url=self.config.endpoint_url,
                    aws_access_key_id=self.config.get_access_key(),
                    aws_secret_access_key=self.config.get_secret_key(),
                    region_name=self.config.region,
                    config=self._boto_config,
                )
            )
            log.info("MinIO S3 client initialized (persistent connection)")
        return self._client

    async def close(self) -> None:
        """Close the persistent client connection"""
        if self._exit_stack is not None:
            await self._exit_stack.aclose()
            self._client = None
            self._exit_stack = None
            log.info("MinIO S3 client closed")

    async def store(
        self,
        path: str,
        file_content: bytes,
        content_type: Optional[str] = None,
    ) -> UploadResult:
        """
        Upload bytes to MinIO/S3 under the given key.

        Returns:
            UploadResult with the object key and public URL
        """
        try:
            key = self.normalize_path(path)
        except ValueError as e:
            return UploadResult(success=False, error=str(e))

        try:
            s3 = await self._get_client()
            await s3.put_object(
                Bucket=self.config.bucket_name,
                Key=key,
                Body=file_content,
                ContentType=content_type or self.guess_content_type(key),
            )
        except ClientError as e:
            error_msg = str(e)
            log.error(f"S3 client error uploading {key}: {error_msg}")
            return UploadResult(success=False, error=error_msg)
        except BotoCoreError as e:
            log.error(f"S3 unreachable uploading {key}: {e}")
            raise InfrastructureError(f"Object storage unavailable: {e}") from e

        public_url = self.get_public_url(key)
        log.info(f"File uploaded: {key} -> {public_url}")
        return UploadResult(success=True, file_path=key, public_url=public_url)

    async def remove(self, paths: Sequence[str]) -> int:
        """
        Delete objects from MinIO/S3 in one batch request.

        Returns:
            Number of objects deleted
        """
        keys = [self.normalize_path(p) for p in paths]
        if not keys:
            return 0

        try:
            s3 = await self._get_client()
            response = await s3.delete_objects(
                Bucket=self.config.bucket_name,
                Delete={"Objects": [{"Key": k} for k in keys], "Quiet": False},
            )
        except (ClientError, BotoCoreError) as e:
            log.error(f"S3 error deleting {len(keys)} object(s): {e}")
            raise InfrastructureError(f"Object storage delete failed: {e}") from e

        for error in response.get("Errors", []):
            log.warning(f"S3 could not delete {error.get('Key')}: {error.get('Message')}")

        deleted = len(response.get("Deleted", []))
        log.info(f"Deleted {deleted}/{len(keys)} object(s)")
        return deleted

    async def exists(self, path: str) -> bool:
        """
        Check if an object exists in MinIO/S3.

        Returns:
            True if exists, False if S3 reports 404
        """
        key = self.normalize_path(path)
        try:
            s3 = await self._get_client()
            await s3.head_object(Bucket=self.config.bucket_name, Key=key)
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] in ("404", "NoSuchKey", "NotFound"):
                return False
            raise InfrastructureError(f"S3 error checking {key}: {e}") from e
        except BotoCoreError as e:
            raise InfrastructureError(f"Object storage unavailable: {e}") from e

    def get_public_url(self, path: str) -> str:
        """Get public URL for an object"""
        return f"{self.config.public_url.rstrip('/')}/{self.normalize_path(path)}"

    async def ensure_bucket_exists(self) -> bool:
        """
        Ensure the storage bucket exists.

        Returns:
            True if bucket exists or was created, False on error
        """
        try:
            s3 = await self._get_client()
            try:
                await s3.head_bucket(Bucket=self.config.bucket_name)
                log.info(f"Bucket exists: {self.config.bucket_name}")
            except ClientError as e:
                if e.response["Error"]["Code"] == "404":
                    await s3.create_bucket(Bucket=self.config.bucket_name)
                    log.info(f"Bucket created: {self.config.bucket_name}")
                else:
                    raise
            return True
        except (ClientError, BotoCoreError) as e:
            log.error(f"Failed to ensure bucket exists: {e}", exc_info=True)
            return False
