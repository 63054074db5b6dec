# =============================================================================
# File: bidroom/messaging/messaging_service.py
# Description: Messaging Service - send orchestration, thread formatting,
#              live subscriptions and read marking
# =============================================================================

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from bidroom.common.exceptions.exceptions import AuthenticationError, BidroomException
from bidroom.config.logging_config import get_logger
from bidroom.config.messaging_config import MessagingConfig
from bidroom.messaging.alias_registry import AliasRegistry
from bidroom.messaging.enums import MessageKind
from bidroom.messaging.exceptions import (
    EmptyMessageError,
    InvalidMessageError,
    RecipientNotFoundError,
    StoreUnavailableError,
)
from bidroom.messaging.formatting import UNALIASED_LABEL
from bidroom.messaging.message_store import MessageStoreAdapter
from bidroom.messaging.ports.session_port import SessionPort
from bidroom.messaging.read_models import (
    ContractorWithAliasReadModel,
    FormattedAttachment,
    FormattedMessage,
    MessageAttachmentReadModel,
    MessageReadModel,
    SendResult,
)
from bidroom.messaging.subscription import MessageCallback, MessageSubscription
from bidroom.messaging.value_objects import AttachmentFile, CurrentUser

log = get_logger("bidroom.messaging.service")


class MessagingService:
    """
    Entry point for UI code.

    Hard failures (invalid input, unresolvable recipient, store down while
    creating the message) are raised. Once the message row exists,
    fan-out and attachment problems are soft: they are logged and reported
    on the SendResult, and the message stays sent. No operation retries on
    its own.
    """

    def __init__(
            self,
            store: MessageStoreAdapter,
            aliases: AliasRegistry,
            session: SessionPort,
            config: Optional[MessagingConfig] = None,
    ):
        self._store = store
        self._aliases = aliases
        self._session = session
        self._config = config or store.config

    async def _require_user(self) -> CurrentUser:
        user = await self._session.get_current_user()
        if user is None:
            raise AuthenticationError("Sign in required for messaging")
        return user

    # =========================================================================
    # Send
    # =========================================================================

    async def send(
            self,
            project_id: str,
            body: str,
            kind: MessageKind | str,
            counterparty_id: Optional[str] = None,
            files: Optional[Sequence[AttachmentFile]] = None,
    ) -> SendResult:
        """
        Send a direct or group message on a project.

        Args:
            project_id: Project thread
            body: Message text (may be empty when files are attached)
            kind: "individual" or "group"
            counterparty_id: Recipient of an individual message
            files: Attachments

        Returns:
            SendResult; truthy once the message row exists

        Raises:
            EmptyMessageError: no text and no files
            InvalidMessageError: malformed request, e.g. individual message to oneself
            RecipientNotFoundError: counterparty or project owner cannot be resolved
            StoreUnavailableError: store down before the message was persisted
            AuthenticationError: nobody is signed in
        """
        files = list(files or [])
        content = (body or "").strip()
        if not content and not files:
            raise EmptyMessageError()

        try:
            kind = MessageKind(kind)
        except ValueError:
            raise InvalidMessageError(f"unknown message kind {kind!r}")

        user = await self._require_user()

        if kind == MessageKind.INDIVIDUAL:
            if not counterparty_id:
                raise InvalidMessageError("individual message needs a recipient")
            if counterparty_id == user.id:
                raise InvalidMessageError("cannot send an individual message to yourself")

        owner_id = await self._store.get_project_owner(project_id)
        if owner_id is None:
            raise RecipientNotFoundError(project_id, counterparty_id, "project has no recorded owner")

        sender_is_owner = user.id == owner_id
        if not sender_is_owner and user.is_homeowner:
            raise InvalidMessageError("only the project owner or contractors can message on this project")

        if kind == MessageKind.INDIVIDUAL:
            recipient_id = await self._resolve_counterparty(project_id, owner_id, sender_is_owner, counterparty_id)
            recipient_ids = [recipient_id]
        else:
            recipient_id = None
            recipient_ids = await self._resolve_group(project_id, user.id, owner_id, sender_is_owner)

        if user.is_contractor and not sender_is_owner:
            await self._aliases.ensure_alias(project_id, user.id)

        message = await self._store.create_message(
            project_id=project_id,
            sender_id=user.id,
            message_type=kind,
            recipient_id=recipient_id,
            content=content,
            has_attachments=bool(files),
        )

        result = SendResult(success=True, message=message, recipient_ids=recipient_ids)

        try:
            await self._store.fan_out_recipients(message, recipient_ids)
        except StoreUnavailableError as e:
            result.delivery_complete = False
            log.warning(f"Message {message.id} saved but fan-out failed, delivery may be incomplete: {e}")

        if files:
            batch = await self._store.attach_files(message.id, files, project_id=project_id)
            result.attachments = batch.attachments
            result.attachment_failure = batch.to_failure()
            if result.attachment_failure is not None:
                log.warning(str(result.attachment_failure))

        return result

    async def _resolve_counterparty(
            self,
            project_id: str,
            owner_id: str,
            sender_is_owner: bool,
            counterparty_id: str,
    ) -> str:
        if not sender_is_owner:
            if counterparty_id != owner_id:
                raise RecipientNotFoundError(
                    project_id, counterparty_id, "contractors can only message the project owner directly"
                )
            return owner_id

        if await self._aliases.get_alias(project_id, counterparty_id) is not None:
            return counterparty_id

        # One re-resolution: the contractor may have interacted but not been aliased yet
        alias_map = await self._aliases.sync_aliases(project_id)
        if counterparty_id in alias_map:
            return counterparty_id

        raise RecipientNotFoundError(project_id, counterparty_id, "contractor has not interacted with this project")

    async def _resolve_group(
            self,
            project_id: str,
            sender_id: str,
            owner_id: str,
            sender_is_owner: bool,
    ) -> List[str]:
        participants = await self._aliases.list_contractors_with_aliases(project_id, sync=True)
        recipient_ids = [p.contractor_id for p in participants if p.contractor_id != sender_id]
        if not sender_is_owner:
            recipient_ids.append(owner_id)
        return recipient_ids

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_messages(self, project_id: str, viewer_id: Optional[str] = None) -> List[FormattedMessage]:
        """
        Formatted thread in chronological order. Without a viewer the full
        thread is returned; ``is_own`` is then computed for the signed-in
        user, if any. Pure read: no aliases are assigned here.
        """
        messages = await self._store.query_messages(project_id, viewer_id)
        own_id = viewer_id
        if own_id is None:
            user = await self._session.get_current_user()
            own_id = user.id if user else None
        return await self._format(project_id, messages, own_id)

    async def _format(
            self,
            project_id: str,
            messages: Sequence[MessageReadModel],
            own_id: Optional[str],
    ) -> List[FormattedMessage]:
        if not messages:
            return []

        owner_id = await self._store.get_project_owner(project_id)
        alias_map = await self._aliases.get_alias_map(project_id)
        attachments = await self._store.list_attachments([m.id for m in messages])

        formatted = [
            FormattedMessage(
                id=m.id,
                project_id=m.project_id,
                sender_id=m.sender_id,
                sender_alias=self._sender_label(m.sender_id, owner_id, alias_map),
                content=m.content,
                timestamp=m.created_at,
                is_own=own_id is not None and m.sender_id == own_id,
                is_group=m.is_group,
                message_type=m.message_type,
                recipient_id=m.recipient_id,
                read_at=m.read_at,
                attachments=[self._format_attachment(a) for a in attachments.get(m.id, [])],
            )
            for m in messages
        ]
        return sorted(formatted, key=lambda f: f.timestamp)

    def _sender_label(self, sender_id: str, owner_id: Optional[str], alias_map: Dict[str, str]) -> str:
        if owner_id is not None and sender_id == owner_id:
            return self._config.owner_label
        return alias_map.get(sender_id, UNALIASED_LABEL)

    @staticmethod
    def _format_attachment(attachment: MessageAttachmentReadModel) -> FormattedAttachment:
        return FormattedAttachment(
            id=attachment.id,
            file_name=attachment.file_name,
            file_url=attachment.file_url,
            file_type=attachment.file_type,
            file_size=attachment.file_size,
        )

    async def get_contractor_alias(self, project_id: str, contractor_id: str) -> Optional[str]:
        return await self._aliases.get_alias(project_id, contractor_id)

    async def list_participants(self, project_id: str) -> List[ContractorWithAliasReadModel]:
        """Aliased contractors for pickers (aliases every interacting contractor first)."""
        return await self._aliases.list_contractors_with_aliases(project_id, sync=True)

    async def get_unread_count(self, project_id: str, viewer_id: Optional[str] = None) -> int:
        """Messages visible to the viewer, sent by someone else, not yet read by the viewer."""
        if viewer_id is None:
            viewer_id = (await self._require_user()).id

        messages = [m for m in await self._store.query_messages(project_id, viewer_id) if m.sender_id != viewer_id]
        if not messages:
            return 0

        states = await self._store.list_recipient_states(viewer_id, [m.id for m in messages])
        unread = 0
        for message in messages:
            state = states.get(message.id)
            if state is not None and state.read_at is not None:
                continue
            if message.recipient_id == viewer_id and message.read_at is not None:
                continue
            unread += 1
        return unread

    # =========================================================================
    # Live updates
    # =========================================================================

    async def subscribe_to_messages(
            self,
            project_id: str,
            viewer_id: Optional[str],
            callback: MessageCallback,
    ) -> MessageSubscription:
        """
        Deliver new messages to ``callback`` (sync or async) as FormattedMessage,
        at most once per message id. The returned subscription is callable;
        calling it detaches the listener and clears its dedup set.

        Without a viewer every project message is delivered and ``is_own``
        is computed for the user signed in when subscribing.
        """
        own_id = viewer_id
        if own_id is None:
            user = await self._session.get_current_user()
            own_id = user.id if user else None

        async def _format_one(message: MessageReadModel) -> FormattedMessage:
            return (await self._format(project_id, [message], own_id))[0]

        subscription = MessageSubscription(
            project_id=project_id,
            viewer_id=viewer_id,
            callback=callback,
            formatter=_format_one,
            seen_limit=self._config.subscription_seen_limit,
        )
        subscription.attach(self._store.subscribe(project_id, viewer_id, subscription.deliver))
        return subscription

    # =========================================================================
    # Read marking
    # =========================================================================

    async def mark_message_as_read(self, message_id: str) -> bool:
        """
        Mark a message read by the signed-in user. Returns False instead of
        raising.

        Only the direct recipient stamps a direct message. A group message
        is marked on the reader's own fan-out row; the message row is left
        alone so one reader never marks it read for everyone. A sender
        reading their own message is a no-op.
        """
        try:
            user = await self._session.get_current_user()
            if user is None:
                log.warning(f"Cannot mark message {message_id} as read without a signed-in user")
                return False

            message = await self._store.get_message(message_id)
            if message is None:
                log.warning(f"Cannot mark unknown message {message_id} as read")
                return False
            if message.sender_id == user.id:
                return True

            if message.is_group:
                if not await self._store.is_visible_to(message, user.id):
                    log.warning(f"User {user.id} is not a participant of group message {message_id}")
                    return False
                await self._store.mark_read(message_id, user.id, message_level=False)
                return True

            if message.recipient_id != user.id:
                log.warning(f"User {user.id} is not the recipient of message {message_id}")
                return False
            await self._store.mark_read(message_id, user.id)
            return True
        except BidroomException as e:
            log.warning(f"Failed to mark message {message_id} as read: {e}")
            return False
