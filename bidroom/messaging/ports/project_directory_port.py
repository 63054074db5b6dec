# =============================================================================
# File: bidroom/messaging/ports/project_directory_port.py
# Description: Port interface for project, bid and profile lookups
# Pattern: Hexagonal Architecture / Ports & Adapters
# =============================================================================

from __future__ import annotations

from typing import Dict, List, Optional, Protocol, Sequence, runtime_checkable

from bidroom.messaging.value_objects import BidSummary, UserProfile


@runtime_checkable
class ProjectDirectoryPort(Protocol):
    """
    Port: Project Directory

    Defined by: Messaging Domain
    Implemented by: PostgresProjectDirectory (bidroom/infra/persistence/pg_project_directory.py)

    Read-only view of project/bid persistence, which the messaging core
    does not own.
    """

    async def get_project_owner(self, project_id: str) -> Optional[str]:
        """Homeowner id of the project, or None if the project has no recorded owner."""
        ...

    async def list_bids(self, project_id: str) -> List[BidSummary]:
        """All bids on the project, oldest first."""
        ...

    async def get_profiles(self, user_ids: Sequence[str]) -> Dict[str, UserProfile]:
        """Profiles keyed by user id; unknown ids are absent."""
        ...
