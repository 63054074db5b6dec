# =============================================================================
# File: bidroom/messaging/read_models.py
# Description: Messaging read models (table rows and display projections)
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from bidroom.messaging.enums import MessageKind, MessageState
from bidroom.messaging.exceptions import PartialAttachmentFailure


class ContractorAliasReadModel(BaseModel):
    """Read model for aliases (PostgreSQL table: contractor_aliases)"""
    project_id: str
    contractor_id: str
    alias: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MessageReadModel(BaseModel):
    """Read model for messages (PostgreSQL table: messages)"""
    id: str
    project_id: str
    sender_id: str
    message_type: MessageKind
    recipient_id: Optional[str] = None  # None for group messages
    content: str = ""
    created_at: datetime
    read_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_group(self) -> bool:
        return self.message_type == MessageKind.GROUP

    @property
    def state(self) -> MessageState:
        return MessageState.READ if self.read_at is not None else MessageState.CREATED


class MessageRecipientReadModel(BaseModel):
    """Read model for fan-out rows (PostgreSQL table: message_recipients)"""
    message_id: str
    recipient_id: str
    created_at: datetime
    read_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MessageAttachmentReadModel(BaseModel):
    """Read model for attachments (PostgreSQL table: message_attachments)"""
    id: str
    message_id: str
    file_name: str
    file_size: int
    file_type: Optional[str] = None
    file_url: str
    storage_path: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ContractorWithAliasReadModel(BaseModel):
    """Aliased contractor joined with profile and bid data"""
    contractor_id: str
    alias: str
    display_name: str
    avatar_url: Optional[str] = None
    bid_amount: Optional[Decimal] = None

    model_config = ConfigDict(from_attributes=True)


# =============================================================================
# Display projections
# =============================================================================

class FormattedAttachment(BaseModel):
    """Attachment as shown in a thread"""
    id: str
    file_name: str
    file_url: str
    file_type: Optional[str] = None
    file_size: int = 0


class FormattedMessage(BaseModel):
    """Display-ready message for one viewer"""
    id: str
    project_id: str
    sender_id: str
    sender_alias: str
    content: str
    timestamp: datetime
    is_own: bool
    is_group: bool
    message_type: MessageKind
    recipient_id: Optional[str] = None
    read_at: Optional[datetime] = None
    attachments: List[FormattedAttachment] = Field(default_factory=list)


# =============================================================================
# Operation results
# =============================================================================

@dataclass
class AttachmentBatchResult:
    """Outcome of attaching a batch of files: stored rows plus per-file failures"""
    message_id: str
    attachments: List[MessageAttachmentReadModel] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        return not self.failures

    def to_failure(self) -> Optional[PartialAttachmentFailure]:
        if not self.failures:
            return None
        return PartialAttachmentFailure(self.message_id, self.failures)


@dataclass
class SendResult:
    """Result of MessagingService.send (truthy when the message row exists)"""
    success: bool
    message: Optional[MessageReadModel] = None
    recipient_ids: List[str] = field(default_factory=list)
    delivery_complete: bool = True
    attachments: List[MessageAttachmentReadModel] = field(default_factory=list)
    attachment_failure: Optional[PartialAttachmentFailure] = None

    def __bool__(self) -> bool:
        return self.success

    @property
    def has_warnings(self) -> bool:
        return not self.delivery_complete or self.attachment_failure is not None
