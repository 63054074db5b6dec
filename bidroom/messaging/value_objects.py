# =============================================================================
# File: bidroom/messaging/value_objects.py
# Description: Messaging domain value objects
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from pathlib import PurePosixPath
from typing import Optional

from bidroom.messaging.enums import UserRole


@dataclass(frozen=True)
class CurrentUser:
    """Authenticated user as reported by the session collaborator"""
    id: str
    role: UserRole

    @property
    def is_homeowner(self) -> bool:
        return self.role == UserRole.HOMEOWNER

    @property
    def is_contractor(self) -> bool:
        return self.role == UserRole.CONTRACTOR


@dataclass(frozen=True)
class BidSummary:
    """A contractor's bid on a project (first bid wins for ordering)"""
    contractor_id: str
    amount: Optional[Decimal]
    created_at: datetime


@dataclass(frozen=True)
class UserProfile:
    """Public profile data used for participant listings"""
    id: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None


@dataclass(frozen=True)
class AttachmentFile:
    """
    Value Object: raw file supplied with a send.

    Only the base name of ``file_name`` is used when building storage paths,
    so "../../etc/passwd" and "C:\\tmp\\plan.pdf" become "passwd" and "plan.pdf".
    """
    file_name: str
    content: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def base_name(self) -> str:
        return PurePosixPath(self.file_name.replace("\\", "/")).name.strip()


ALIAS_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def alias_for_index(index: int) -> str:
    """
    Alias token for a zero-based assignment index.

    0 -> "A", 25 -> "Z", 26 -> "AA", 27 -> "AB" (spreadsheet column style).
    """
    if index < 0:
        raise ValueError("alias index must be non-negative")
    token = ""
    n = index + 1
    while n:
        n, rem = divmod(n - 1, len(ALIAS_ALPHABET))
        token = ALIAS_ALPHABET[rem] + token
    return token


def alias_index(alias: str) -> int:
    """Inverse of alias_for_index; raises ValueError for anything that is not an alias token."""
    if not alias or any(ch not in ALIAS_ALPHABET for ch in alias):
        raise ValueError(f"Not an alias token: {alias!r}")
    n = 0
    for ch in alias:
        n = n * len(ALIAS_ALPHABET) + ALIAS_ALPHABET.index(ch) + 1
    return n - 1
