# =============================================================================
# File: tests/test_message_store.py
# Description: Message Store Adapter - validation, fan-out, attachments,
#              visibility, read marking and the store boundary
# =============================================================================

import pytest

from bidroom.messaging.enums import MessageKind, MessageState
from bidroom.messaging.exceptions import (
    EmptyMessageError,
    InvalidMessageError,
    MessageNotFoundError,
    StoreUnavailableError,
)
from bidroom.messaging.value_objects import AttachmentFile
from tests.conftest import OWNER, PROJECT


async def group_message(store, sender_id="con-x", content="Question about timeline"):
    return await store.create_message(PROJECT, sender_id, MessageKind.GROUP, None, content)


async def direct_message(store, sender_id, recipient_id, content="Two weeks"):
    return await store.create_message(PROJECT, sender_id, MessageKind.INDIVIDUAL, recipient_id, content)


class TestCreateMessage:

    @pytest.mark.asyncio
    async def test_persists_row(self, store, records):
        message = await direct_message(store, OWNER, "con-x")

        assert message.message_type == MessageKind.INDIVIDUAL
        assert message.recipient_id == "con-x"
        assert message.read_at is None
        assert records.rows("messages")[0]["id"] == message.id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind, recipient", [
        (MessageKind.INDIVIDUAL, None),
        (MessageKind.INDIVIDUAL, OWNER),
        (MessageKind.GROUP, "con-x"),
        ("broadcast", None),
    ])
    async def test_rejects_malformed_requests(self, store, records, kind, recipient):
        with pytest.raises(InvalidMessageError):
            await store.create_message(PROJECT, OWNER, kind, recipient, "hi")

        assert records.rows("messages") == []

    @pytest.mark.asyncio
    async def test_empty_content_needs_attachments(self, store):
        with pytest.raises(EmptyMessageError):
            await store.create_message(PROJECT, OWNER, MessageKind.GROUP, None, "   ")

        message = await store.create_message(PROJECT, OWNER, MessageKind.GROUP, None, "", has_attachments=True)
        assert message.content == ""

    @pytest.mark.asyncio
    async def test_backend_failure_is_store_unavailable(self, store, records):
        records.configure_failure("insert", "connection reset by peer")

        with pytest.raises(StoreUnavailableError) as exc_info:
            await group_message(store)

        assert exc_info.value.operation == "create_message"

    @pytest.mark.asyncio
    async def test_hung_backend_times_out(self, store, records):
        records.configure_delay("select", 5.0)

        with pytest.raises(StoreUnavailableError) as exc_info:
            await store.query_messages(PROJECT)

        assert exc_info.value.operation == "query_messages"


class TestFanOut:

    @pytest.mark.asyncio
    async def test_one_row_per_recipient_and_idempotent(self, store, records):
        message = await group_message(store, sender_id=OWNER)

        assert await store.fan_out_recipients(message, ["con-x", "con-y", "con-x"]) == 2
        assert await store.fan_out_recipients(message, ["con-x", "con-y"]) == 0

        recipients = await store.list_recipients(message.id)
        assert [r.recipient_id for r in recipients] == ["con-x", "con-y"]
        assert len(records.rows("message_recipients")) == 2

    @pytest.mark.asyncio
    async def test_empty_set_writes_nothing(self, store, records):
        message = await group_message(store, sender_id=OWNER)

        assert await store.fan_out_recipients(message, []) == 0
        assert not records.was_called("insert_many")


class TestReadMarking:

    @pytest.mark.asyncio
    async def test_second_mark_keeps_first_timestamp(self, store):
        message = await direct_message(store, OWNER, "con-x")
        await store.fan_out_recipients(message, ["con-x"])
        assert message.state == MessageState.CREATED

        assert await store.mark_read(message.id, "con-x") is True
        first = (await store.get_message(message.id)).read_at

        assert await store.mark_read(message.id, "con-x") is False
        again = await store.get_message(message.id)

        assert first is not None
        assert again.read_at == first
        assert again.state == MessageState.READ
        recipient = (await store.list_recipients(message.id))[0]
        assert recipient.read_at == first

    @pytest.mark.asyncio
    async def test_unknown_message_is_not_an_error(self, store):
        assert await store.mark_read("missing") is False

    @pytest.mark.asyncio
    async def test_reader_row_only_leaves_message_unread(self, store):
        message = await group_message(store, sender_id=OWNER)
        await store.fan_out_recipients(message, ["con-x", "con-y"])

        assert await store.mark_read(message.id, "con-x", message_level=False) is True
        assert await store.mark_read(message.id, "con-x", message_level=False) is False

        assert (await store.get_message(message.id)).read_at is None
        states = {r.recipient_id: r.read_at for r in await store.list_recipients(message.id)}
        assert states["con-x"] is not None
        assert states["con-y"] is None


class TestVisibility:

    @pytest.mark.asyncio
    async def test_viewer_filtering(self, store, aliases):
        await aliases.ensure_alias(PROJECT, "con-x")
        group = await group_message(store, sender_id="con-x")
        to_x = await direct_message(store, OWNER, "con-x")
        to_z = await direct_message(store, OWNER, "con-z", content="Are you available?")

        everything = await store.query_messages(PROJECT)
        for_x = await store.query_messages(PROJECT, "con-x")
        for_z = await store.query_messages(PROJECT, "con-z")
        for_owner = await store.query_messages(PROJECT, OWNER)

        assert [m.id for m in everything] == [group.id, to_x.id, to_z.id]
        assert [m.id for m in for_x] == [group.id, to_x.id]
        # con-z has no alias, so group messages stay hidden
        assert [m.id for m in for_z] == [to_z.id]
        assert [m.id for m in for_owner] == [group.id, to_x.id, to_z.id]

    @pytest.mark.asyncio
    async def test_other_projects_are_excluded(self, store, directory):
        directory.set_owner("proj-2", "home-2")
        await store.create_message("proj-2", "home-2", MessageKind.GROUP, None, "elsewhere")
        mine = await group_message(store, sender_id=OWNER)

        assert [m.id for m in await store.query_messages(PROJECT)] == [mine.id]


class TestAttachFiles:

    @pytest.mark.asyncio
    async def test_path_is_scoped_to_project_and_message(self, store, storage):
        message = await direct_message(store, OWNER, "con-x")

        result = await store.attach_files(message.id, [AttachmentFile("plans/plan.pdf", b"%PDF-1.4")])

        expected_path = f"message-attachments/{PROJECT}/{message.id}/plan.pdf"
        assert result.complete
        assert [a.file_name for a in result.attachments] == ["plan.pdf"]
        attachment = result.attachments[0]
        assert attachment.storage_path == expected_path
        assert attachment.file_url == storage.get_public_url(expected_path)
        assert attachment.file_type == "application/pdf"
        assert attachment.file_size == 8
        assert storage.objects[expected_path] == b"%PDF-1.4"

    @pytest.mark.asyncio
    async def test_traversal_in_file_name_is_stripped(self, store, storage):
        message = await direct_message(store, OWNER, "con-x")

        result = await store.attach_files(message.id, [AttachmentFile("../../etc/passwd", b"x")],
                                          project_id=PROJECT)

        assert result.attachments[0].storage_path.endswith(f"/{message.id}/passwd")
        assert all(".." not in key for key in storage.objects)

    @pytest.mark.asyncio
    async def test_one_bad_file_does_not_abort_the_rest(self, store, storage):
        storage.reject_names.add("blocked.exe")
        message = await direct_message(store, OWNER, "con-x")
        files = [
            AttachmentFile("plan.pdf", b"pdf"),
            AttachmentFile("huge.mov", b"x" * 2048),
            AttachmentFile("blocked.exe", b"mz"),
            AttachmentFile("   ", b"?"),
            AttachmentFile("photo.jpg", b"jpg"),
        ]

        result = await store.attach_files(message.id, files)

        assert [a.file_name for a in result.attachments] == ["plan.pdf", "photo.jpg"]
        assert set(result.failures) == {"huge.mov", "blocked.exe", "   "}
        failure = result.to_failure()
        assert failure is not None
        assert failure.message_id == message.id
        assert set(failure.failed_file_names) == {"huge.mov", "blocked.exe", "   "}

    @pytest.mark.asyncio
    async def test_storage_outage_is_reported_per_file(self, store, storage):
        storage.configure_failure("store", "endpoint unreachable")
        message = await direct_message(store, OWNER, "con-x")

        result = await store.attach_files(message.id, [AttachmentFile("a.txt", b"a"), AttachmentFile("b.txt", b"b")])

        assert result.attachments == []
        assert set(result.failures) == {"a.txt", "b.txt"}

    @pytest.mark.asyncio
    async def test_orphaned_object_is_removed_when_row_write_fails(self, store, storage, records):
        message = await direct_message(store, OWNER, "con-x")
        records.configure_failure("insert:message_attachments", "deadlock detected")

        result = await store.attach_files(message.id, [AttachmentFile("plan.pdf", b"pdf")])

        path = f"message-attachments/{PROJECT}/{message.id}/plan.pdf"
        assert "plan.pdf" in result.failures
        assert storage.removed == [path]
        assert path not in storage.objects

    @pytest.mark.asyncio
    async def test_duplicate_names_get_distinct_paths(self, store):
        message = await direct_message(store, OWNER, "con-x")

        result = await store.attach_files(message.id, [AttachmentFile("plan.pdf", b"1"), AttachmentFile("plan.pdf", b"2")])

        assert [a.file_name for a in result.attachments] == ["plan.pdf", "plan (1).pdf"]

    @pytest.mark.asyncio
    async def test_unknown_message(self, store):
        with pytest.raises(MessageNotFoundError):
            await store.attach_files("missing", [AttachmentFile("a.txt", b"a")])

    @pytest.mark.asyncio
    async def test_attachments_grouped_by_message(self, store):
        first = await direct_message(store, OWNER, "con-x")
        second = await direct_message(store, OWNER, "con-y")
        await store.attach_files(first.id, [AttachmentFile("a.txt", b"a")])
        await store.attach_files(second.id, [AttachmentFile("b.txt", b"b"), AttachmentFile("c.txt", b"c")])

        grouped = await store.list_attachments([first.id, second.id])

        assert [a.file_name for a in grouped[first.id]] == ["a.txt"]
        assert [a.file_name for a in grouped[second.id]] == ["b.txt", "c.txt"]


class TestSubscribe:

    @pytest.mark.asyncio
    async def test_only_visible_rows_reach_the_listener(self, store, feed, records):
        received = []

        async def on_insert(message):
            received.append(message.id)

        unsubscribe = store.subscribe(PROJECT, "con-x", on_insert)
        to_x = await direct_message(store, OWNER, "con-x")
        to_y = await direct_message(store, OWNER, "con-y")
        for row in records.rows("messages"):
            await feed.emit("messages", PROJECT, row)

        assert received == [to_x.id]
        assert to_y.id not in received

        unsubscribe()
        assert feed.handler_count(project_id=PROJECT) == 0

    @pytest.mark.asyncio
    async def test_malformed_rows_are_ignored(self, store, feed):
        received = []

        async def on_insert(message):
            received.append(message)

        store.subscribe(PROJECT, None, on_insert)
        await feed.emit("messages", PROJECT, {"id": "m-1"})

        assert received == []

    @pytest.mark.asyncio
    async def test_feed_failure_is_store_unavailable(self, store, feed):
        feed.configure_failure("subscribe", "listener connection lost")

        async def on_insert(message):
            pass

        with pytest.raises(StoreUnavailableError):
            store.subscribe(PROJECT, None, on_insert)
