# =============================================================================
# File: bidroom/infra/storage/local_adapter.py
# Description: Local file storage adapter (for development)
# Production should use MinIO/S3
# =============================================================================

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

import aiofiles
import aiofiles.os

from bidroom.common.base.base_storage_provider import BaseStorageProvider, UploadResult
from bidroom.common.exceptions.exceptions import InfrastructureError

log = logging.getLogger("bidroom.infra.storage")


class LocalStorageAdapter(BaseStorageProvider):
    """
    Local file storage adapter for development.

    Stores files under ``base_path`` at the caller's path and serves them
    via a static files endpoint at ``base_url``.
    """

    def __init__(
        self,
        base_path: str = "storage",
        base_url: str = "/static/storage",
    ):
        self.base_path = Path(base_path)
        self.base_url = base_url.rstrip("/")
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        return self.base_path / self.normalize_path(path)

    async def store(
        self,
        path: str,
        file_content: bytes,
        content_type: Optional[str] = None,
    ) -> UploadResult:
        """
        Write bytes to local storage.

        Args:
            path: Object path relative to base_path
            file_content: File content as bytes
            content_type: MIME type (unused on disk)

        Returns:
            UploadResult with file path and public URL
        """
        try:
            key = self.normalize_path(path)
        except ValueError as e:
            return UploadResult(success=False, error=str(e))

        file_path = self.base_path / key
        try:
            await aiofiles.os.makedirs(file_path.parent, exist_ok=True)
            async with aiofiles.open(file_path, "wb") as f:
                await f.write(file_content)
        except OSError as e:
            log.error(f"Failed to store file {key}: {e}", exc_info=True)
            return UploadResult(success=False, error=str(e))

        public_url = self.get_public_url(key)
        log.info(f"File stored: {file_path} -> {public_url}")
        return UploadResult(success=True, file_path=key, public_url=public_url)

    async def remove(self, paths: Sequence[str]) -> int:
        """
        Delete files by path. Missing files are skipped.

        Returns:
            Number of files deleted
        """
        removed = 0
        for path in paths:
            file_path = self._resolve(path)
            try:
                if await aiofiles.os.path.exists(file_path):
                    await aiofiles.os.remove(file_path)
                    removed += 1
                    log.info(f"File deleted: {file_path}")
                else:
                    log.warning(f"File not found for deletion: {file_path}")
            except OSError as e:
                raise InfrastructureError(f"Failed to delete {file_path}: {e}") from e
        return removed

    async def exists(self, path: str) -> bool:
        """Check if a file exists"""
        return await aiofiles.os.path.exists(self._resolve(path))

    def get_public_url(self, path: str) -> str:
        """Get public URL for a file"""
        return f"{self.base_url}/{self.normalize_path(path)}"
