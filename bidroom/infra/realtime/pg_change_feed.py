# =============================================================================
# File: bidroom/infra/realtime/pg_change_feed.py
# Description: Realtime "row inserted" feed over PostgreSQL LISTEN/NOTIFY.
#              The insert trigger in bidroom/database/messaging.sql publishes
#              {"table", "project_id", "record"} on the notify channel.
# =============================================================================

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import time
from typing import Any, Dict, Optional, Set, Tuple

import asyncpg

from bidroom.common.exceptions.exceptions import InfrastructureError
from bidroom.infra.persistence.pg_client import PostgresClient
from bidroom.messaging.ports.record_store_port import Row, RowHandler, Unsubscribe

log = logging.getLogger("bidroom.infra.realtime.change_feed")

SubscriptionKey = Tuple[str, str]


class PostgresChangeFeed:
    """
    ChangeFeedPort backed by one dedicated LISTEN connection.

    Handlers are keyed by (table, project_id) and invoked in background
    tasks, so a slow or failing handler never blocks the listener.
    Delivery is at-least-once from the consumer's point of view; consumers
    deduplicate.
    """

    def __init__(self, client: PostgresClient, channel: Optional[str] = None):
        self._client = client
        self._channel = channel or client.config.notify_channel
        self._conn: Optional[asyncpg.Connection] = None
        self._handlers: Dict[SubscriptionKey, Dict[int, RowHandler]] = {}
        self._ids = itertools.count(1)
        self._tasks: Set[asyncio.Task] = set()

        self._notifications_received = 0
        self._handler_errors = 0

    @property
    def is_running(self) -> bool:
        return self._conn is not None and not self._conn.is_closed()

    async def start(self) -> None:
        if self.is_running:
            return
        self._conn = await self._client.connect_listener()
        try:
            await self._conn.add_listener(self._channel, self._on_notify)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            await self._conn.close()
            self._conn = None
            raise InfrastructureError(f"LISTEN {self._channel} failed: {e}") from e
        log.info(f"Change feed listening on channel '{self._channel}'")

    async def stop(self) -> None:
        log.info("Shutting down change feed...")
        conn, self._conn = self._conn, None
        if conn is not None and not conn.is_closed():
            try:
                await conn.remove_listener(self._channel, self._on_notify)
            finally:
                await conn.close()

        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        log.info(
            f"Change feed shut down - "
            f"Received: {self._notifications_received}, "
            f"Handler errors: {self._handler_errors}"
        )

    def subscribe(self, table: str, project_id: str, handler: RowHandler) -> Unsubscribe:
        key = (table, project_id)
        token = next(self._ids)
        self._handlers.setdefault(key, {})[token] = handler
        log.debug(f"Change feed subscription {token} on {table}/{project_id}")

        def unsubscribe() -> None:
            handlers = self._handlers.get(key)
            if handlers is None or handlers.pop(token, None) is None:
                return
            if not handlers:
                del self._handlers[key]
            log.debug(f"Change feed subscription {token} removed")

        return unsubscribe

    def subscription_count(self) -> int:
        return sum(len(h) for h in self._handlers.values())

    def _on_notify(self, connection: Any, pid: int, channel: str, payload: str) -> None:
        try:
            event = json.loads(payload)
            table = event["table"]
            project_id = str(event["project_id"])
            record = event["record"]
        except (ValueError, KeyError, TypeError) as e:
            log.error(f"Failed to decode notification on {channel}: {e}")
            return

        self._notifications_received += 1
        self.dispatch(table, project_id, record)

    def dispatch(self, table: str, project_id: str, record: Row) -> int:
        """Schedule every handler registered for (table, project_id). Returns how many."""
        handlers = list(self._handlers.get((table, project_id), {}).values())
        for handler in handlers:
            task = asyncio.create_task(self._safe_invoke_handler(handler, table, dict(record)))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        return len(handlers)

    async def _safe_invoke_handler(self, handler: RowHandler, table: str, record: Row) -> None:
        start = time.time()
        try:
            await handler(record)
            log.debug(f"[HANDLER_SUCCESS] {table} row handled in {(time.time() - start) * 1000:.2f}ms")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Handler errors must not kill the listener
            self._handler_errors += 1
            log.error(f"Change feed handler error (total: {self._handler_errors}) for {table}: {e}", exc_info=True)

    def get_metrics(self) -> Dict[str, Any]:
        return {
            "running": self.is_running,
            "channel": self._channel,
            "subscriptions": self.subscription_count(),
            "notifications_received": self._notifications_received,
            "handler_errors": self._handler_errors,
        }
