# =============================================================================
# File: tests/test_subscription.py
# Description: Live message subscriptions - dedup, callbacks, unsubscribe
# =============================================================================

from datetime import datetime, timezone

import pytest

from bidroom.common.exceptions.exceptions import InfrastructureError
from bidroom.messaging.enums import MessageKind, UserRole
from bidroom.messaging.read_models import FormattedMessage, MessageReadModel
from bidroom.messaging.subscription import MessageSubscription
from tests.conftest import OWNER, PROJECT, bid_time


def make_message(message_id: str, sender_id: str = "con-x") -> MessageReadModel:
    return MessageReadModel(
        id=message_id,
        project_id=PROJECT,
        sender_id=sender_id,
        message_type=MessageKind.GROUP,
        content=f"body of {message_id}",
        created_at=datetime(2025, 4, 12, 15, 0, tzinfo=timezone.utc),
    )


async def passthrough_formatter(message: MessageReadModel) -> FormattedMessage:
    return FormattedMessage(
        id=message.id,
        project_id=message.project_id,
        sender_id=message.sender_id,
        sender_alias="A",
        content=message.content,
        timestamp=message.created_at,
        is_own=False,
        is_group=message.is_group,
        message_type=message.message_type,
    )


class TestMessageSubscription:

    @pytest.mark.asyncio
    async def test_duplicate_delivery_reaches_callback_once(self):
        received = []
        subscription = MessageSubscription(PROJECT, None, received.append, passthrough_formatter)

        assert await subscription.deliver(make_message("m-1")) is True
        assert await subscription.deliver(make_message("m-1")) is False
        assert await subscription.deliver(make_message("m-2")) is True

        assert [m.id for m in received] == ["m-1", "m-2"]
        assert subscription.delivered_count == 2

    @pytest.mark.asyncio
    async def test_async_callback_is_awaited(self):
        received = []

        async def on_message(message):
            received.append(message.id)

        subscription = MessageSubscription(PROJECT, None, on_message, passthrough_formatter)
        await subscription.deliver(make_message("m-1"))

        assert received == ["m-1"]

    @pytest.mark.asyncio
    async def test_seen_set_is_bounded(self):
        subscription = MessageSubscription(PROJECT, None, lambda m: None, passthrough_formatter, seen_limit=3)

        for i in range(5):
            await subscription.deliver(make_message(f"m-{i}"))

        assert subscription.seen_count == 3
        assert not subscription.has_seen("m-0")
        assert subscription.has_seen("m-4")
        # Evicted ids can come through again
        assert await subscription.deliver(make_message("m-0")) is True

    @pytest.mark.asyncio
    async def test_formatter_failure_allows_redelivery(self):
        calls = {"n": 0}

        async def flaky_formatter(message):
            calls["n"] += 1
            if calls["n"] == 1:
                raise InfrastructureError("profiles unavailable")
            return await passthrough_formatter(message)

        received = []
        subscription = MessageSubscription(PROJECT, None, received.append, flaky_formatter)

        assert await subscription.deliver(make_message("m-1")) is False
        assert not subscription.has_seen("m-1")
        assert await subscription.deliver(make_message("m-1")) is True
        assert [m.id for m in received] == ["m-1"]

    @pytest.mark.asyncio
    async def test_closed_subscription_delivers_nothing(self):
        received = []
        unsubscribed = []
        subscription = MessageSubscription(PROJECT, None, received.append, passthrough_formatter)
        subscription.attach(lambda: unsubscribed.append(True))

        await subscription.deliver(make_message("m-1"))
        subscription()
        subscription.close()

        assert subscription.closed
        assert subscription.seen_count == 0
        assert unsubscribed == [True]
        assert await subscription.deliver(make_message("m-2")) is False
        assert [m.id for m in received] == ["m-1"]

    def test_attach_after_close_unsubscribes_immediately(self):
        unsubscribed = []
        subscription = MessageSubscription(PROJECT, None, lambda m: None, passthrough_formatter)
        subscription.close()

        subscription.attach(lambda: unsubscribed.append(True))

        assert unsubscribed == [True]

    def test_seen_limit_must_be_positive(self):
        with pytest.raises(ValueError):
            MessageSubscription(PROJECT, None, lambda m: None, passthrough_formatter, seen_limit=0)


class TestServiceSubscription:

    @pytest.mark.asyncio
    async def test_live_message_is_formatted_once(self, service, session, records, feed, directory):
        directory.add_bid(PROJECT, "con-x", 900, bid_time(0))
        received = []
        subscription = await service.subscribe_to_messages(PROJECT, OWNER, received.append)

        session.login_as("con-x")
        sent = await service.send(PROJECT, "Materials list ready", "group")
        row = records.rows("messages")[0]

        await feed.emit("messages", PROJECT, row)
        await feed.emit("messages", PROJECT, row)

        assert len(received) == 1
        live = received[0]
        assert live.id == sent.message.id
        assert live.sender_alias == "A"
        assert live.is_own is False
        assert live.is_group is True
        subscription()

    @pytest.mark.asyncio
    async def test_direct_message_to_someone_else_is_not_delivered(self, service, session, records, feed):
        received = []
        await service.subscribe_to_messages(PROJECT, "con-y", received.append)

        session.login_as("con-x")
        await service.send(PROJECT, "Private quote", "individual", OWNER)
        await feed.emit("messages", PROJECT, records.rows("messages")[0])

        assert received == []

    @pytest.mark.asyncio
    async def test_unsubscribe_detaches_from_feed(self, service, feed):
        subscription = await service.subscribe_to_messages(PROJECT, OWNER, lambda m: None)
        assert feed.handler_count(project_id=PROJECT) == 1

        subscription()
        subscription()

        assert feed.handler_count(project_id=PROJECT) == 0
        assert feed.unsubscribe_calls == 1

    @pytest.mark.asyncio
    async def test_resubscribing_starts_with_empty_seen_set(self, service, session, records, feed):
        session.login_as(OWNER, UserRole.HOMEOWNER)
        await service.send(PROJECT, "Welcome", "group")
        row = records.rows("messages")[0]

        first_received, second_received = [], []
        first = await service.subscribe_to_messages(PROJECT, OWNER, first_received.append)
        await feed.emit("messages", PROJECT, row)
        first()

        await service.subscribe_to_messages(PROJECT, OWNER, second_received.append)
        await feed.emit("messages", PROJECT, row)

        assert len(first_received) == 1
        assert len(second_received) == 1
        assert second_received[0].sender_alias == "Project Owner"
        assert second_received[0].is_own is True

    @pytest.mark.asyncio
    async def test_full_thread_subscription_marks_own_messages(self, service, session, records, feed):
        session.login_as(OWNER, UserRole.HOMEOWNER)
        received = []
        await service.subscribe_to_messages(PROJECT, None, received.append)

        await service.send(PROJECT, "Site visit Friday", "group")
        await feed.emit("messages", PROJECT, records.rows("messages")[0])

        assert len(received) == 1
        assert received[0].is_own is True
        assert received[0].sender_alias == "Project Owner"
