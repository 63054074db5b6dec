# =============================================================================
# File: bidroom/common/base/base_storage_provider.py
# Description: Abstract base class for object storage providers
# =============================================================================

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional, Sequence


@dataclass
class UploadResult:
    """Result of file upload operation"""

    success: bool
    file_path: Optional[str] = None
    public_url: Optional[str] = None
    error: Optional[str] = None


class BaseStorageProvider(ABC):
    """
    Abstract base class for storage providers.

    Objects are addressed by a caller-chosen path ("project/message/file.pdf").
    Providers never rename objects, so the same path always maps to the same
    public URL.

    Implementations:
        - LocalStorageAdapter (filesystem, development)
        - MinIOStorageProvider (MinIO/S3)
    """

    @abstractmethod
    async def store(
        self,
        path: str,
        file_content: bytes,
        content_type: Optional[str] = None,
    ) -> UploadResult:
        """
        Store raw bytes at the given path.

        Args:
            path: Object path relative to the storage root
            file_content: File content as bytes
            content_type: MIME type (optional)

        Returns:
            UploadResult with the stored path and a retrievable public URL
        """
        pass

    @abstractmethod
    async def remove(self, paths: Sequence[str]) -> int:
        """
        Remove objects by path.

        Args:
            paths: Object paths to delete

        Returns:
            Number of objects actually removed
        """
        pass

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """Check if an object exists in storage."""
        pass

    @abstractmethod
    def get_public_url(self, path: str) -> str:
        """Get public URL for an object path."""
        pass

    @staticmethod
    def normalize_path(path: str) -> str:
        """
        Normalize an object path: forward slashes, no leading slash,
        no empty or parent ("..") segments.
        """
        parts = [p for p in PurePosixPath(path.replace("\\", "/")).parts if p not in ("", "/", ".")]
        if not parts or ".." in parts:
            raise ValueError(f"Invalid storage path: {path!r}")
        return "/".join(parts)

    @staticmethod
    def guess_content_type(filename: str) -> str:
        """Map a filename extension to a MIME type (application/octet-stream if unknown)"""
        extension_map = {
            ".webp": "image/webp",
            ".png": "image/png",
            ".jpg": "image/jpeg",
            ".jpeg": "image/jpeg",
            ".gif": "image/gif",
            ".svg": "image/svg+xml",
            ".pdf": "application/pdf",
            ".json": "application/json",
            ".txt": "text/plain",
            ".csv": "text/csv",
            ".mp4": "video/mp4",
            ".webm": "video/webm",
            ".doc": "application/msword",
            ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            ".xls": "application/vnd.ms-excel",
            ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            ".zip": "application/zip",
        }
        return extension_map.get(PurePosixPath(filename).suffix.lower(), "application/octet-stream")
