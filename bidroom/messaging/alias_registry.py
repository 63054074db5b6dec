# =============================================================================
# File: bidroom/messaging/alias_registry.py
# Description: Alias Registry - stable per-project contractor aliases
# =============================================================================

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from bidroom.config.logging_config import get_logger
from bidroom.config.messaging_config import MessagingConfig
from bidroom.messaging.exceptions import AliasAssignmentConflict, OwnerAliasError, StoreUnavailableError
from bidroom.messaging.formatting import contractor_label
from bidroom.messaging.message_store import MessageStoreAdapter
from bidroom.messaging.read_models import ContractorWithAliasReadModel
from bidroom.messaging.value_objects import alias_for_index, alias_index

log = get_logger("bidroom.messaging.aliases")


class AliasRegistry:
    """
    Assigns "A", "B", "C", ... to contractors per project, in order of first
    interaction (first bid or first message, whichever is earlier).

    Aliases are never reassigned or reused. Assignment relies on the store's
    uniqueness keys (project_id, contractor_id) and (project_id, alias): an
    insert that loses a race is skipped by the store, and the registry
    re-reads instead of overwriting. There is no client-side locking.
    """

    def __init__(self, store: MessageStoreAdapter, config: Optional[MessagingConfig] = None):
        self._store = store
        self._config = config or store.config

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_alias(self, project_id: str, contractor_id: str) -> Optional[str]:
        row = await self._store.get_alias(project_id, contractor_id)
        return row.alias if row else None

    async def get_alias_map(self, project_id: str) -> Dict[str, str]:
        """contractor_id -> alias. Contractors without an alias are absent."""
        return {row.contractor_id: row.alias for row in await self._store.list_aliases(project_id)}

    async def list_contractors_with_aliases(
            self,
            project_id: str,
            sync: bool = False,
    ) -> List[ContractorWithAliasReadModel]:
        """
        Aliased contractors joined with profile data and their latest bid
        amount, ordered by alias. With ``sync`` every contractor that has
        interacted with the project is aliased first.

        This is the one place the participant set of a project is derived;
        group fan-out and participant pickers both read it.
        """
        if sync:
            await self.sync_aliases(project_id)

        aliases = await self._store.list_aliases(project_id)
        if not aliases:
            return []

        bid_amounts: Dict[str, Optional[Decimal]] = {}
        for bid in await self._store.list_bids(project_id):
            bid_amounts[bid.contractor_id] = bid.amount

        profiles = await self._store.get_profiles([a.contractor_id for a in aliases])

        contractors = []
        for row in aliases:
            profile = profiles.get(row.contractor_id)
            contractors.append(ContractorWithAliasReadModel(
                contractor_id=row.contractor_id,
                alias=row.alias,
                display_name=(profile.display_name if profile and profile.display_name
                              else contractor_label(row.alias)),
                avatar_url=profile.avatar_url if profile else None,
                bid_amount=bid_amounts.get(row.contractor_id),
            ))
        return contractors

    # =========================================================================
    # Assignment
    # =========================================================================

    async def ensure_alias(self, project_id: str, contractor_id: str) -> str:
        """
        Return the contractor's alias, assigning one if needed.

        Contractors whose first interaction precedes this one and who still
        lack an alias are aliased first, so letters always follow interaction
        order. A contractor with no recorded interaction goes after every
        recorded one.

        Raises:
            OwnerAliasError: contractor_id is the project owner (homeowners are never aliased)
            StoreUnavailableError: the store is unreachable or assignment kept conflicting
        """
        existing = await self._store.get_alias(project_id, contractor_id)
        if existing:
            return existing.alias

        owner_id = await self._store.get_project_owner(project_id)
        if owner_id is not None and owner_id == contractor_id:
            raise OwnerAliasError(project_id, contractor_id)

        order = await self._interaction_order(project_id, owner_id)
        predecessors = order[:order.index(contractor_id)] if contractor_id in order else order

        aliased = await self.get_alias_map(project_id)
        for earlier_id in predecessors:
            if earlier_id not in aliased:
                await self._assign(project_id, earlier_id)

        return await self._assign(project_id, contractor_id)

    async def sync_aliases(self, project_id: str) -> Dict[str, str]:
        """
        Alias every contractor that has bid on or sent a message to the
        project, in first-interaction order. Returns the full alias map.
        """
        owner_id = await self._store.get_project_owner(project_id)
        order = await self._interaction_order(project_id, owner_id)
        aliased = await self.get_alias_map(project_id)

        for contractor_id in order:
            if contractor_id not in aliased:
                aliased[contractor_id] = await self._assign(project_id, contractor_id)
        return aliased

    async def _interaction_order(self, project_id: str, owner_id: Optional[str]) -> List[str]:
        first_seen: Dict[str, datetime] = {}

        for bid in await self._store.list_bids(project_id):
            seen = first_seen.get(bid.contractor_id)
            if seen is None or bid.created_at < seen:
                first_seen[bid.contractor_id] = bid.created_at

        for sender_id, sent_at in (await self._store.first_message_times(project_id)).items():
            seen = first_seen.get(sender_id)
            if seen is None or sent_at < seen:
                first_seen[sender_id] = sent_at

        first_seen.pop(owner_id, None)
        return [cid for cid, _ in sorted(first_seen.items(), key=lambda item: (item[1], item[0]))]

    async def _assign(self, project_id: str, contractor_id: str) -> str:
        attempts = self._config.alias_assignment_attempts
        conflict: Optional[AliasAssignmentConflict] = None

        for _ in range(attempts):
            aliases = await self._store.list_aliases(project_id)
            for row in aliases:
                if row.contractor_id == contractor_id:
                    return row.alias

            next_index = max((alias_index(a.alias) for a in aliases), default=-1) + 1
            candidate = alias_for_index(next_index)

            row = await self._store.insert_alias(project_id, contractor_id, candidate)
            if row is not None:
                log.info(f"Assigned alias {row.alias} to contractor {contractor_id} on project {project_id}")
                return row.alias

            conflict = AliasAssignmentConflict(project_id, contractor_id, candidate)
            log.debug(f"{conflict}; re-reading")

        log.error(f"Alias assignment for {contractor_id} on project {project_id} gave up after {attempts} attempts")
        raise StoreUnavailableError("ensure_alias", conflict)
