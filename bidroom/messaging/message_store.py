# =============================================================================
# File: bidroom/messaging/message_store.py
# Description: Message Store Adapter - the single persistence boundary of
#              the messaging core (records, object storage, change feed,
#              project directory)
# =============================================================================

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

from pydantic import ValidationError as PydanticValidationError

from bidroom.common.base.base_storage_provider import BaseStorageProvider
from bidroom.common.exceptions.exceptions import InfrastructureError
from bidroom.config.logging_config import get_logger
from bidroom.config.messaging_config import MessagingConfig, get_messaging_config
from bidroom.messaging.enums import MessageKind
from bidroom.messaging.exceptions import (
    EmptyMessageError,
    InvalidMessageError,
    MessageNotFoundError,
    StoreUnavailableError,
)
from bidroom.messaging.ports.project_directory_port import ProjectDirectoryPort
from bidroom.messaging.ports.record_store_port import ChangeFeedPort, RecordStorePort, Row, Unsubscribe
from bidroom.messaging.read_models import (
    AttachmentBatchResult,
    ContractorAliasReadModel,
    MessageAttachmentReadModel,
    MessageReadModel,
    MessageRecipientReadModel,
)
from bidroom.messaging.value_objects import AttachmentFile, BidSummary, UserProfile, alias_index

log = get_logger("bidroom.messaging.store")

T = TypeVar("T")

# Table names
ALIASES_TABLE = "contractor_aliases"
MESSAGES_TABLE = "messages"
RECIPIENTS_TABLE = "message_recipients"
ATTACHMENTS_TABLE = "message_attachments"

# Errors that mean "the backend did not answer"
UNAVAILABLE_ERRORS = (asyncio.TimeoutError, TimeoutError, InfrastructureError, ConnectionError, OSError)

MessageListener = Callable[[MessageReadModel], Awaitable[None]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MessageStoreAdapter:
    """
    Sole boundary to persistence for the messaging core.

    Every collaborator call runs under an outer timeout
    (``store_timeout_seconds``); timeouts and backend failures surface as
    StoreUnavailableError carrying the operation name. Validation failures
    raise InvalidMessageError before anything is written.
    """

    def __init__(
            self,
            records: RecordStorePort,
            storage: BaseStorageProvider,
            feed: ChangeFeedPort,
            directory: ProjectDirectoryPort,
            config: Optional[MessagingConfig] = None,
    ):
        self._records = records
        self._storage = storage
        self._feed = feed
        self._directory = directory
        self._config = config or get_messaging_config()

    @property
    def config(self) -> MessagingConfig:
        return self._config

    async def _guard(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._config.store_timeout_seconds)
        except StoreUnavailableError:
            raise
        except UNAVAILABLE_ERRORS as e:
            log.error(f"Store unavailable during {operation}: {type(e).__name__}: {e}")
            raise StoreUnavailableError(operation, e) from e

    # =========================================================================
    # Messages
    # =========================================================================

    async def create_message(
            self,
            project_id: str,
            sender_id: str,
            message_type: MessageKind | str,
            recipient_id: Optional[str],
            content: str,
            has_attachments: bool = False,
    ) -> MessageReadModel:
        """
        Validate and persist one message row.

        Raises:
            InvalidMessageError: bad type, missing/forbidden recipient, or sender == recipient
            EmptyMessageError: empty content and no attachments
            StoreUnavailableError: the row could not be written
        """
        try:
            kind = MessageKind(message_type)
        except ValueError:
            raise InvalidMessageError(f"unknown message type {message_type!r}")

        if not project_id or not sender_id:
            raise InvalidMessageError("project and sender are required")

        if kind == MessageKind.INDIVIDUAL:
            if not recipient_id:
                raise InvalidMessageError("individual message needs a recipient")
            if recipient_id == sender_id:
                raise InvalidMessageError("sender and recipient must differ")
        elif recipient_id is not None:
            raise InvalidMessageError("group message cannot name a single recipient")

        content = (content or "").strip()
        if not content and not has_attachments:
            raise EmptyMessageError()

        row = await self._guard(
            "create_message",
            self._records.insert(MESSAGES_TABLE, {
                "id": str(uuid.uuid4()),
                "project_id": project_id,
                "sender_id": sender_id,
                "message_type": kind.value,
                "recipient_id": recipient_id,
                "content": content,
                "created_at": utc_now(),
            }),
        )
        message = MessageReadModel.model_validate(row)
        log.info(f"Message {message.id} created on project {project_id} ({kind.value}) by {sender_id}")
        return message

    async def get_message(self, message_id: str) -> Optional[MessageReadModel]:
        rows = await self._guard(
            "get_message",
            self._records.select(MESSAGES_TABLE, {"id": message_id}, limit=1),
        )
        return MessageReadModel.model_validate(rows[0]) if rows else None

    async def query_messages(self, project_id: str, viewer_id: Optional[str] = None) -> List[MessageReadModel]:
        """
        Messages of a project in created_at order.

        Without a viewer the whole thread is returned (homeowner-side view).
        With a viewer: messages they sent, individual messages addressed to
        them, and group messages when they are a participant (the homeowner
        or an aliased contractor).
        """
        rows = await self._guard(
            "query_messages",
            self._records.select(MESSAGES_TABLE, {"project_id": project_id}, order_by="created_at"),
        )
        messages = sorted((MessageReadModel.model_validate(r) for r in rows), key=lambda m: m.created_at)

        if viewer_id is None:
            return messages

        participant: Optional[bool] = None
        visible = []
        for message in messages:
            if message.sender_id == viewer_id or message.recipient_id == viewer_id:
                visible.append(message)
            elif message.is_group:
                if participant is None:
                    participant = await self.is_participant(project_id, viewer_id)
                if participant:
                    visible.append(message)
        return visible

    async def is_participant(self, project_id: str, user_id: str) -> bool:
        """Homeowner of the project or a contractor holding an alias on it."""
        owner_id = await self.get_project_owner(project_id)
        if owner_id is not None and owner_id == user_id:
            return True
        return await self.get_alias(project_id, user_id) is not None

    async def is_visible_to(self, message: MessageReadModel, viewer_id: Optional[str]) -> bool:
        if viewer_id is None:
            return True
        if message.sender_id == viewer_id or message.recipient_id == viewer_id:
            return True
        if message.is_group:
            return await self.is_participant(message.project_id, viewer_id)
        return False

    async def first_message_times(self, project_id: str) -> Dict[str, datetime]:
        """Earliest message timestamp per sender on the project."""
        messages = await self.query_messages(project_id)
        first: Dict[str, datetime] = {}
        for message in messages:
            first.setdefault(message.sender_id, message.created_at)
        return first

    async def mark_read(
            self,
            message_id: str,
            reader_id: Optional[str] = None,
            *,
            message_level: bool = True,
    ) -> bool:
        """
        Set read_at once. Returns True if this call changed any row.

        ``message_level`` stamps the message row itself (direct messages,
        read by their recipient); a reader's fan-out row is stamped whenever
        ``reader_id`` is given. Both are compare-and-set on NULL, so a second
        call is a no-op and never overwrites the first timestamp.
        """
        now = utc_now()
        changed = 0
        if message_level:
            changed += await self._guard(
                "mark_read",
                self._records.update(MESSAGES_TABLE, {"read_at": now}, {"id": message_id}, only_if_null="read_at"),
            )
        if reader_id:
            changed += await self._guard(
                "mark_read.recipient",
                self._records.update(
                    RECIPIENTS_TABLE,
                    {"read_at": now},
                    {"message_id": message_id, "recipient_id": reader_id},
                    only_if_null="read_at",
                ),
            )
        if changed:
            log.debug(f"Message {message_id} marked read (reader={reader_id})")
        return changed > 0

    # =========================================================================
    # Fan-out
    # =========================================================================

    async def fan_out_recipients(self, message: MessageReadModel, recipient_ids: Iterable[str]) -> int:
        """
        One message_recipients row per recipient. Idempotent: rows that
        already exist are skipped on the (message_id, recipient_id) key.

        Returns the number of rows created by this call.
        """
        unique_ids = sorted({r for r in recipient_ids if r})
        if not unique_ids:
            return 0

        now = utc_now()
        rows = [
            {"message_id": message.id, "recipient_id": recipient_id, "created_at": now, "read_at": None}
            for recipient_id in unique_ids
        ]
        inserted = await self._guard(
            "fan_out_recipients",
            self._records.insert_many(RECIPIENTS_TABLE, rows, ignore_conflicts=True),
        )
        log.debug(f"Message {message.id} fanned out to {inserted}/{len(unique_ids)} new recipient(s)")
        return inserted

    async def list_recipients(self, message_id: str) -> List[MessageRecipientReadModel]:
        rows = await self._guard(
            "list_recipients",
            self._records.select(RECIPIENTS_TABLE, {"message_id": message_id}, order_by="recipient_id"),
        )
        return [MessageRecipientReadModel.model_validate(r) for r in rows]

    async def list_recipient_states(
            self,
            recipient_id: str,
            message_ids: Sequence[str],
    ) -> Dict[str, MessageRecipientReadModel]:
        """Fan-out rows of one recipient for the given messages, keyed by message id."""
        if not message_ids:
            return {}
        rows = await self._guard(
            "list_recipient_states",
            self._records.select(RECIPIENTS_TABLE, {"recipient_id": recipient_id, "message_id": list(message_ids)}),
        )
        states = (MessageRecipientReadModel.model_validate(r) for r in rows)
        return {state.message_id: state for state in states}

    # =========================================================================
    # Attachments
    # =========================================================================

    async def attach_files(
            self,
            message_id: str,
            files: Sequence[AttachmentFile],
            *,
            project_id: Optional[str] = None,
    ) -> AttachmentBatchResult:
        """
        Store each file under ``{prefix}/{project_id}/{message_id}/{file name}``
        and record an attachment row pointing at the returned URL.

        Per-file failures (empty name, too large, storage or row write error)
        are collected in the result and never abort the rest of the batch.
        When the row write fails after the bytes were stored, the stored
        object is removed.

        Raises:
            MessageNotFoundError: project_id not given and the message does not exist
            StoreUnavailableError: project_id not given and the lookup failed
        """
        if project_id is None:
            message = await self.get_message(message_id)
            if message is None:
                raise MessageNotFoundError(message_id)
            project_id = message.project_id

        result = AttachmentBatchResult(message_id=message_id)
        used_names: set[str] = set()

        for file in files:
            name = file.base_name
            label = name or file.file_name or "<unnamed>"

            if not name:
                self._record_failure(result, label, "empty file name")
                continue
            if file.size > self._config.max_attachment_bytes:
                self._record_failure(
                    result, label, f"file is {file.size} bytes, limit is {self._config.max_attachment_bytes}"
                )
                continue

            name = self._unique_name(name, used_names)
            used_names.add(name)
            path = f"{self._config.attachment_prefix}/{project_id}/{message_id}/{name}"
            content_type = file.content_type or BaseStorageProvider.guess_content_type(name)

            try:
                upload = await self._guard("attach_files.store", self._storage.store(path, file.content, content_type))
            except StoreUnavailableError as e:
                self._record_failure(result, name, str(e))
                continue

            if not upload.success or not upload.public_url:
                self._record_failure(result, name, upload.error or "storage returned no URL")
                continue

            stored_path = upload.file_path or path
            try:
                row = await self._guard(
                    "attach_files.record",
                    self._records.insert(ATTACHMENTS_TABLE, {
                        "id": str(uuid.uuid4()),
                        "message_id": message_id,
                        "file_name": name,
                        "file_size": file.size,
                        "file_type": content_type,
                        "file_url": upload.public_url,
                        "storage_path": stored_path,
                        "created_at": utc_now(),
                    }),
                )
            except StoreUnavailableError as e:
                self._record_failure(result, name, str(e))
                await self._remove_orphan(stored_path)
                continue

            result.attachments.append(MessageAttachmentReadModel.model_validate(row))

        log.info(
            f"Message {message_id}: {len(result.attachments)} attachment(s) stored, "
            f"{len(result.failures)} failed"
        )
        return result

    @staticmethod
    def _unique_name(name: str, used: set[str]) -> str:
        if name not in used:
            return name
        stem, dot, suffix = name.rpartition(".")
        if not stem:
            stem, dot, suffix = name, "", ""
        n = 1
        while True:
            candidate = f"{stem} ({n}){dot}{suffix}"
            if candidate not in used:
                return candidate
            n += 1

    @staticmethod
    def _record_failure(result: AttachmentBatchResult, name: str, reason: str) -> None:
        log.warning(f"Attachment {name!r} on message {result.message_id} failed: {reason}")
        result.failures[name] = reason

    async def _remove_orphan(self, path: str) -> None:
        try:
            await self._guard("attach_files.cleanup", self._storage.remove([path]))
        except StoreUnavailableError as e:
            log.warning(f"Could not remove orphaned object {path}: {e}")

    async def list_attachments(self, message_ids: Sequence[str]) -> Dict[str, List[MessageAttachmentReadModel]]:
        """Attachments grouped by message id, each list in created_at order."""
        if not message_ids:
            return {}
        rows = await self._guard(
            "list_attachments",
            self._records.select(ATTACHMENTS_TABLE, {"message_id": list(message_ids)}, order_by="created_at"),
        )
        grouped: Dict[str, List[MessageAttachmentReadModel]] = {}
        for row in rows:
            attachment = MessageAttachmentReadModel.model_validate(row)
            grouped.setdefault(attachment.message_id, []).append(attachment)
        return grouped

    # =========================================================================
    # Aliases (data access only; assignment policy lives in AliasRegistry)
    # =========================================================================

    async def get_alias(self, project_id: str, contractor_id: str) -> Optional[ContractorAliasReadModel]:
        rows = await self._guard(
            "get_alias",
            self._records.select(ALIASES_TABLE, {"project_id": project_id, "contractor_id": contractor_id}, limit=1),
        )
        return ContractorAliasReadModel.model_validate(rows[0]) if rows else None

    async def list_aliases(self, project_id: str) -> List[ContractorAliasReadModel]:
        """All aliases of a project in assignment order (A, B, ..., Z, AA, ...)."""
        rows = await self._guard(
            "list_aliases",
            self._records.select(ALIASES_TABLE, {"project_id": project_id}),
        )
        aliases = [ContractorAliasReadModel.model_validate(r) for r in rows]
        return sorted(aliases, key=lambda a: alias_index(a.alias))

    async def insert_alias(
            self,
            project_id: str,
            contractor_id: str,
            alias: str,
    ) -> Optional[ContractorAliasReadModel]:
        """Conditional insert; None when either uniqueness key is already taken."""
        row = await self._guard(
            "insert_alias",
            self._records.insert(
                ALIASES_TABLE,
                {"project_id": project_id, "contractor_id": contractor_id, "alias": alias, "created_at": utc_now()},
                ignore_conflicts=True,
            ),
        )
        return ContractorAliasReadModel.model_validate(row) if row else None

    # =========================================================================
    # Project directory passthroughs
    # =========================================================================

    async def get_project_owner(self, project_id: str) -> Optional[str]:
        return await self._guard("get_project_owner", self._directory.get_project_owner(project_id))

    async def list_bids(self, project_id: str) -> List[BidSummary]:
        return await self._guard("list_bids", self._directory.list_bids(project_id))

    async def get_profiles(self, user_ids: Sequence[str]) -> Dict[str, UserProfile]:
        if not user_ids:
            return {}
        return await self._guard("get_profiles", self._directory.get_profiles(list(user_ids)))

    # =========================================================================
    # Live updates
    # =========================================================================

    def subscribe(
            self,
            project_id: str,
            viewer_id: Optional[str],
            on_insert: MessageListener,
    ) -> Unsubscribe:
        """
        Listen for new message rows on a project, optionally only those
        visible to ``viewer_id``. Delivery is at-least-once; callers
        deduplicate.
        """

        async def _handle(row: Row) -> None:
            try:
                message = MessageReadModel.model_validate(row)
            except PydanticValidationError as e:
                log.warning(f"Ignoring malformed message row on project {project_id}: {e}")
                return
            if message.project_id != project_id:
                return
            try:
                visible = await self.is_visible_to(message, viewer_id)
            except StoreUnavailableError as e:
                log.error(f"Dropping live message {message.id}: visibility check failed: {e}")
                return
            if visible:
                await on_insert(message)

        try:
            unsubscribe = self._feed.subscribe(MESSAGES_TABLE, project_id, _handle)
        except (InfrastructureError, ConnectionError, OSError) as e:
            log.error(f"Store unavailable during subscribe: {e}")
            raise StoreUnavailableError("subscribe", e) from e

        log.debug(f"Subscribed to messages on project {project_id} (viewer={viewer_id})")
        return unsubscribe

