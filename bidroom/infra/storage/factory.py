# =============================================================================
# File: bidroom/infra/storage/factory.py
# Description: Build the configured storage provider
# =============================================================================

from typing import Optional

from bidroom.common.base.base_storage_provider import BaseStorageProvider
from bidroom.config.storage_config import StorageConfig, get_storage_config
from bidroom.infra.storage.local_adapter import LocalStorageAdapter
from bidroom.infra.storage.minio_provider import MinIOStorageProvider


def create_storage_provider(config: Optional[StorageConfig] = None) -> BaseStorageProvider:
    """LocalStorageAdapter for backend=local, MinIOStorageProvider for backend=minio."""
    config = config or get_storage_config()
    if config.backend == "minio":
        return MinIOStorageProvider(config)
    return LocalStorageAdapter(base_path=config.local_path, base_url=config.local_url)
