# =============================================================================
# File: bidroom/messaging/ports/record_store_port.py
# Description: Port interfaces for the relational store and its change feed
# Pattern: Hexagonal Architecture / Ports & Adapters
# =============================================================================

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, runtime_checkable

Row = Dict[str, Any]
RowHandler = Callable[[Row], Awaitable[None]]
Unsubscribe = Callable[[], None]


@runtime_checkable
class RecordStorePort(Protocol):
    """
    Port: Relational Store

    Defined by: Messaging Domain
    Implemented by: PostgresRecordStore (bidroom/infra/persistence/pg_record_store.py)

    Generic insert/select/update over the messaging tables. Uniqueness
    constraints live in the store: (project_id, contractor_id) and
    (project_id, alias) on contractor_aliases, (message_id, recipient_id)
    on message_recipients.

    Filter values: scalar = equality, list/tuple/set = membership,
    None = IS NULL.

    Backend failures are raised as InfrastructureError.
    """

    async def insert(
        self,
        table: str,
        values: Mapping[str, Any],
        *,
        ignore_conflicts: bool = False,
    ) -> Optional[Row]:
        """
        Insert one row and return it as stored.

        With ignore_conflicts a row violating any uniqueness constraint is
        skipped (never overwritten) and None is returned.
        """
        ...

    async def insert_many(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        *,
        ignore_conflicts: bool = False,
    ) -> int:
        """Insert several rows; returns the number actually inserted."""
        ...

    async def select(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        """Select rows matching all filters."""
        ...

    async def update(
        self,
        table: str,
        values: Mapping[str, Any],
        filters: Mapping[str, Any],
        *,
        only_if_null: Optional[str] = None,
    ) -> int:
        """
        Update matching rows; returns the number changed.

        only_if_null restricts the update to rows where that column is NULL.
        """
        ...


@runtime_checkable
class ChangeFeedPort(Protocol):
    """
    Port: Realtime Change Feed

    Implemented by: PostgresChangeFeed (bidroom/infra/realtime/pg_change_feed.py)

    Delivers "row inserted" notifications for one table, filtered by project.
    Delivery is at-least-once.
    """

    def subscribe(self, table: str, project_id: str, handler: RowHandler) -> Unsubscribe:
        """Register handler; the returned callable detaches it (idempotent)."""
        ...
