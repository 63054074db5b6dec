# =============================================================================
# File: tests/fakes/__init__.py
# Description: In-memory fakes for the messaging collaborator ports
# =============================================================================

from tests.fakes.fake_change_feed import FakeChangeFeed
from tests.fakes.fake_project_directory import FakeProjectDirectory
from tests.fakes.fake_record_store import FakeRecordStore
from tests.fakes.fake_session import FakeSession
from tests.fakes.fake_storage_provider import FakeStorageProvider

__all__ = [
    "FakeChangeFeed",
    "FakeProjectDirectory",
    "FakeRecordStore",
    "FakeSession",
    "FakeStorageProvider",
]
