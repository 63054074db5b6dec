# =============================================================================
# File: bidroom/messaging/subscription.py
# Description: Live message subscription with bounded id deduplication
# =============================================================================

from __future__ import annotations

import inspect
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Optional, Union

from bidroom.common.exceptions.exceptions import BidroomException
from bidroom.config.logging_config import get_logger
from bidroom.messaging.read_models import FormattedMessage, MessageReadModel
from bidroom.messaging.ports.record_store_port import Unsubscribe

log = get_logger("bidroom.messaging.subscription")

MessageCallback = Callable[[FormattedMessage], Union[None, Awaitable[None]]]
MessageFormatter = Callable[[MessageReadModel], Awaitable[FormattedMessage]]


class MessageSubscription:
    """
    One live-update listener for a project thread.

    The feed underneath delivers at-least-once; this object remembers the
    ids it has already handed to the callback (most recent
    ``seen_limit`` of them) and drops repeats. The seen set belongs to this
    instance only and is cleared when the subscription is closed.

    The instance is callable: calling it unsubscribes.
    """

    def __init__(
            self,
            project_id: str,
            viewer_id: Optional[str],
            callback: MessageCallback,
            formatter: MessageFormatter,
            seen_limit: int = 1000,
    ):
        if seen_limit <= 0:
            raise ValueError("seen_limit must be positive")
        self.project_id = project_id
        self.viewer_id = viewer_id
        self._callback = callback
        self._formatter = formatter
        self._seen_limit = seen_limit
        self._seen: "OrderedDict[str, None]" = OrderedDict()
        self._unsubscribe: Optional[Unsubscribe] = None
        self._closed = False
        self.delivered_count = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def seen_count(self) -> int:
        return len(self._seen)

    def attach(self, unsubscribe: Unsubscribe) -> None:
        """Bind the feed's unsubscribe function. Closes it at once if already closed."""
        self._unsubscribe = unsubscribe
        if self._closed:
            unsubscribe()

    def has_seen(self, message_id: str) -> bool:
        return message_id in self._seen

    def _remember(self, message_id: str) -> bool:
        # Reserve before any await so concurrent duplicates see it
        if message_id in self._seen:
            self._seen.move_to_end(message_id)
            return False
        self._seen[message_id] = None
        while len(self._seen) > self._seen_limit:
            self._seen.popitem(last=False)
        return True

    def _forget(self, message_id: str) -> None:
        self._seen.pop(message_id, None)

    async def deliver(self, message: MessageReadModel) -> bool:
        """
        Format and hand a message to the callback unless it was seen before.

        Returns True if the callback was invoked.
        """
        if self._closed:
            return False
        if not self._remember(message.id):
            log.debug(f"Duplicate live message {message.id} dropped")
            return False

        try:
            formatted = await self._formatter(message)
        except BidroomException as e:
            # Not delivered; a redelivery may succeed
            self._forget(message.id)
            log.error(f"Could not format live message {message.id}: {e}")
            return False

        if self._closed:
            return False

        result: Any = self._callback(formatted)
        if inspect.isawaitable(result):
            await result
        self.delivered_count += 1
        return True

    def close(self) -> None:
        """Detach from the feed and clear the dedup set. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._seen.clear()
        if self._unsubscribe is not None:
            self._unsubscribe()
        log.debug(f"Subscription on project {self.project_id} closed")

    def __call__(self) -> None:
        self.close()
