# =============================================================================
# File: bidroom/infra/storage/__init__.py
# Description: Attachment storage infrastructure
# =============================================================================

from bidroom.infra.storage.local_adapter import LocalStorageAdapter
from bidroom.infra.storage.minio_provider import MinIOStorageProvider
from bidroom.infra.storage.factory import create_storage_provider

__all__ = ["LocalStorageAdapter", "MinIOStorageProvider", "create_storage_provider"]
