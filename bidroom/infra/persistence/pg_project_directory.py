# =============================================================================
# File: bidroom/infra/persistence/pg_project_directory.py
# Description: Project/bid/profile lookups over the marketplace tables
#              (projects, bids, profiles), which messaging only reads
# =============================================================================

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from bidroom.infra.persistence.pg_client import PostgresClient
from bidroom.messaging.value_objects import BidSummary, UserProfile

log = logging.getLogger("bidroom.infra.pg_project_directory")


class PostgresProjectDirectory:
    """ProjectDirectoryPort over PostgresClient."""

    def __init__(self, client: PostgresClient):
        self._client = client

    async def get_project_owner(self, project_id: str) -> Optional[str]:
        row = await self._client.fetchrow(
            "SELECT owner_id::text AS owner_id FROM projects WHERE id::text = $1",
            project_id,
        )
        return row["owner_id"] if row else None

    async def list_bids(self, project_id: str) -> List[BidSummary]:
        rows = await self._client.fetch(
            """
            SELECT contractor_id::text AS contractor_id, amount, created_at
            FROM bids
            WHERE project_id::text = $1
            ORDER BY created_at ASC
            """,
            project_id,
        )
        return [
            BidSummary(contractor_id=r["contractor_id"], amount=r["amount"], created_at=r["created_at"])
            for r in rows
        ]

    async def get_profiles(self, user_ids: Sequence[str]) -> Dict[str, UserProfile]:
        if not user_ids:
            return {}
        rows = await self._client.fetch(
            "SELECT id::text AS id, full_name, avatar_url FROM profiles WHERE id::text = ANY($1::text[])",
            list(user_ids),
        )
        return {
            r["id"]: UserProfile(id=r["id"], display_name=r["full_name"], avatar_url=r["avatar_url"])
            for r in rows
        }
