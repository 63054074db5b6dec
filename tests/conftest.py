# =============================================================================
# File: tests/conftest.py
# Description: Shared fixtures - fakes wired into the real messaging core
# =============================================================================

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from bidroom.config.messaging_config import MessagingConfig
from bidroom.messaging.alias_registry import AliasRegistry
from bidroom.messaging.message_store import MessageStoreAdapter
from bidroom.messaging.messaging_service import MessagingService
from tests.fakes import (
    FakeChangeFeed,
    FakeProjectDirectory,
    FakeRecordStore,
    FakeSession,
    FakeStorageProvider,
)

PROJECT = "proj-1"
OWNER = "home-1"

# Bids are placed before any message in tests (messages use wall-clock time)
BID_T0 = datetime(2025, 4, 12, 14, 30, tzinfo=timezone.utc)


def bid_time(minutes: int) -> datetime:
    return BID_T0 + timedelta(minutes=minutes)


@pytest.fixture
def messaging_config() -> MessagingConfig:
    return MessagingConfig(
        store_timeout_seconds=0.2,
        max_attachment_bytes=1024,
        subscription_seen_limit=50,
    )


@pytest.fixture
def records() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def storage() -> FakeStorageProvider:
    return FakeStorageProvider()


@pytest.fixture
def feed() -> FakeChangeFeed:
    return FakeChangeFeed()


@pytest.fixture
def directory() -> FakeProjectDirectory:
    directory = FakeProjectDirectory()
    directory.set_owner(PROJECT, OWNER)
    return directory


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def store(records, storage, feed, directory, messaging_config) -> MessageStoreAdapter:
    return MessageStoreAdapter(records, storage, feed, directory, messaging_config)


@pytest.fixture
def aliases(store, messaging_config) -> AliasRegistry:
    return AliasRegistry(store, messaging_config)


@pytest.fixture
def service(store, aliases, session, messaging_config) -> MessagingService:
    return MessagingService(store, aliases, session, messaging_config)
