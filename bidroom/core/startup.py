# =============================================================================
# File: bidroom/core/startup.py
# Description: Composition root. Builds one instance of every collaborator
#              and injects them into the messaging core.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from bidroom.common.base.base_storage_provider import BaseStorageProvider
from bidroom.config.messaging_config import MessagingConfig, get_messaging_config
from bidroom.config.pg_client_config import PostgresConfig, get_postgres_config
from bidroom.config.storage_config import StorageConfig
from bidroom.infra.persistence.pg_client import PostgresClient
from bidroom.infra.persistence.pg_project_directory import PostgresProjectDirectory
from bidroom.infra.persistence.pg_record_store import PostgresRecordStore
from bidroom.infra.realtime.pg_change_feed import PostgresChangeFeed
from bidroom.infra.storage.factory import create_storage_provider
from bidroom.infra.storage.minio_provider import MinIOStorageProvider
from bidroom.messaging.alias_registry import AliasRegistry
from bidroom.messaging.message_store import MessageStoreAdapter
from bidroom.messaging.messaging_service import MessagingService
from bidroom.messaging.ports.session_port import SessionPort

logger = logging.getLogger("bidroom.startup")


@dataclass
class MessagingRuntime:
    """Everything built at startup; close() releases connections."""
    pg_client: PostgresClient
    storage: BaseStorageProvider
    change_feed: PostgresChangeFeed
    store: MessageStoreAdapter
    aliases: AliasRegistry

    def service_for(self, session: SessionPort) -> MessagingService:
        """MessagingService bound to one caller's session."""
        return MessagingService(self.store, self.aliases, session, self.store.config)

    async def health_check(self) -> dict:
        return {
            "postgres": await self.pg_client.health_check(),
            "change_feed": self.change_feed.get_metrics(),
            "storage": type(self.storage).__name__,
        }

    async def close(self) -> None:
        logger.info("Shutting down messaging runtime...")
        await self.change_feed.stop()
        if isinstance(self.storage, MinIOStorageProvider):
            await self.storage.close()
        await self.pg_client.close()
        logger.info("Messaging runtime stopped")


async def build_messaging_runtime(
        messaging_config: Optional[MessagingConfig] = None,
        postgres_config: Optional[PostgresConfig] = None,
        storage_config: Optional[StorageConfig] = None,
        apply_schema: bool = False,
) -> MessagingRuntime:
    """
    Connect to PostgreSQL, start the change feed and wire the messaging core.

    Args:
        messaging_config: Messaging settings (default: from environment)
        postgres_config: Database settings (default: from environment)
        storage_config: Storage settings (default: from environment)
        apply_schema: Run bidroom/database/messaging.sql before starting
    """
    messaging_config = messaging_config or get_messaging_config()
    postgres_config = postgres_config or get_postgres_config()

    logger.info("Initializing messaging runtime...")

    pg_client = PostgresClient(postgres_config)
    await pg_client.init()
    if apply_schema:
        await pg_client.run_schema_from_file()

    change_feed = PostgresChangeFeed(pg_client)
    await change_feed.start()

    storage = create_storage_provider(storage_config)
    if isinstance(storage, MinIOStorageProvider) and not await storage.ensure_bucket_exists():
        logger.warning("Attachment bucket is not available; uploads will fail until it is created")
    logger.info(f"Attachment storage: {type(storage).__name__}")

    store = MessageStoreAdapter(
        records=PostgresRecordStore(pg_client),
        storage=storage,
        feed=change_feed,
        directory=PostgresProjectDirectory(pg_client),
        config=messaging_config,
    )
    aliases = AliasRegistry(store, messaging_config)

    logger.info("Messaging runtime ready")
    return MessagingRuntime(
        pg_client=pg_client,
        storage=storage,
        change_feed=change_feed,
        store=store,
        aliases=aliases,
    )
