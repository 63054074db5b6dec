# =============================================================================
# File: bidroom/config/storage_config.py
# Description: Attachment object storage configuration (local or MinIO/S3)
# =============================================================================

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import SettingsConfigDict

from bidroom.common.base.base_config import BaseConfig, BASE_CONFIG_DICT


class StorageConfig(BaseConfig):
    """
    Storage configuration for message attachments.

    backend=local stores files on disk (development),
    backend=minio talks to MinIO or AWS S3.
    """

    model_config = SettingsConfigDict(
        **BASE_CONFIG_DICT,
        env_prefix='STORAGE_',
    )

    backend: Literal["local", "minio"] = Field(default="local", description="Storage backend")

    # Local backend
    local_path: str = Field(default="storage", description="Root directory for local storage")
    local_url: str = Field(default="/static/storage", description="URL prefix for local files")

    # MinIO/S3 backend
    endpoint_url: str = Field(default="http://localhost:9000", description="MinIO/S3 endpoint")
    access_key: SecretStr = Field(default=SecretStr("minioadmin"), description="Access key")
    secret_key: SecretStr = Field(default=SecretStr("minioadmin"), description="Secret key")
    region: str = Field(default="us-east-1", description="AWS region")
    bucket_name: str = Field(default="bidroom", description="Bucket name")
    public_url: str = Field(default="http://localhost:9000/bidroom", description="Public URL")

    # Performance settings
    connect_timeout: int = Field(default=5, description="Connection timeout (seconds)")
    read_timeout: int = Field(default=30, description="Read timeout (seconds)")
    max_pool_connections: int = Field(default=25, description="Max connection pool size")

    def get_access_key(self) -> str:
        """Get access key as plain string"""
        return self.access_key.get_secret_value()

    def get_secret_key(self) -> str:
        """Get secret key as plain string"""
        return self.secret_key.get_secret_value()


@lru_cache(maxsize=1)
def get_storage_config() -> StorageConfig:
    """Get storage configuration singleton (cached)."""
    return StorageConfig()


def reset_storage_config() -> None:
    """Reset config singleton (for testing)."""
    get_storage_config.cache_clear()
