# =============================================================================
# File: bidroom/messaging/exceptions.py
# Description: Messaging domain exceptions
# =============================================================================

from __future__ import annotations

from typing import Dict, Optional

from bidroom.common.exceptions.exceptions import (
    ConflictError,
    DomainError,
    InfrastructureError,
    NotFoundError,
)


class MessagingError(DomainError):
    """Base exception for the messaging domain"""
    pass


class InvalidMessageError(MessagingError):
    """Malformed send request (never retried)"""
    def __init__(self, reason: str):
        super().__init__(f"Invalid message: {reason}")
        self.reason = reason


class EmptyMessageError(InvalidMessageError):
    """No content and no files"""
    def __init__(self):
        super().__init__("message has no content and no attachments")


class OwnerAliasError(MessagingError):
    """The project owner is never given a contractor alias"""
    def __init__(self, project_id: str, owner_id: str):
        super().__init__(f"Project owner {owner_id} cannot be given a contractor alias on project {project_id}")
        self.project_id = project_id
        self.owner_id = owner_id


class RecipientNotFoundError(NotFoundError):
    """Counterparty of a send could not be resolved"""
    def __init__(self, project_id: str, counterparty_id: Optional[str] = None, reason: str = ""):
        detail = reason or "recipient could not be resolved"
        super().__init__(f"Recipient not found on project {project_id}: {detail}")
        self.project_id = project_id
        self.counterparty_id = counterparty_id
        self.reason = detail


class StoreUnavailableError(InfrastructureError):
    """Backing store or object storage unreachable or timed out"""
    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        message = f"Store unavailable during {operation}"
        if cause is not None:
            message = f"{message}: {type(cause).__name__}: {cause}"
        super().__init__(message)
        self.operation = operation
        self.cause = cause


class PartialAttachmentFailure(MessagingError):
    """
    One or more files failed to attach while the message itself persisted.

    Reported on the send result, never raised out of a send.
    """
    def __init__(self, message_id: str, failures: Dict[str, str]):
        names = ", ".join(failures)
        super().__init__(f"{len(failures)} attachment(s) failed on message {message_id}: {names}")
        self.message_id = message_id
        self.failures = dict(failures)

    @property
    def failed_file_names(self):
        return list(self.failures)


class AliasAssignmentConflict(ConflictError):
    """Alias insert lost a race; resolved by re-reading"""
    def __init__(self, project_id: str, contractor_id: str, alias: str):
        super().__init__(f"Alias {alias} already taken on project {project_id} (contractor {contractor_id})")
        self.project_id = project_id
        self.contractor_id = contractor_id
        self.alias = alias


class MessageNotFoundError(NotFoundError):
    """Message not found"""
    def __init__(self, message_id: str):
        super().__init__(f"Message not found: {message_id}")
        self.message_id = message_id
