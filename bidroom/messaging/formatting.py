# =============================================================================
# File: bidroom/messaging/formatting.py
# Description: Display helpers for message threads and contractor pickers
# =============================================================================

from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from bidroom.messaging.read_models import ContractorWithAliasReadModel, FormattedMessage

UNALIASED_LABEL = "Contractor"


def format_timestamp(value: datetime) -> str:
    """12-hour clock time, e.g. "02:30 PM"."""
    return value.strftime("%I:%M %p")


def format_date(value: datetime) -> str:
    """Short date, e.g. "Apr 12, 2025"."""
    return f"{value:%b} {value.day}, {value.year}"


def contractor_label(alias: Optional[str]) -> str:
    if not alias:
        return UNALIASED_LABEL
    return f"{UNALIASED_LABEL} {alias}"


def filter_thread_for_contractor(
        messages: Sequence[FormattedMessage],
        contractor_id: str,
) -> List[FormattedMessage]:
    """
    Homeowner-side conversation with one contractor: that contractor's
    messages plus the homeowner's own group messages and direct replies
    to them.
    """
    return [
        m for m in messages
        if m.sender_id == contractor_id
        or (m.is_own and (m.is_group or m.recipient_id == contractor_id))
    ]


def build_contractor_options(participants: Iterable[ContractorWithAliasReadModel]) -> List[Dict[str, str]]:
    """Picker entries: {"value": contractor id, "label": "Contractor A"}."""
    return [
        {"value": p.contractor_id, "label": contractor_label(p.alias)}
        for p in participants
    ]
