# =============================================================================
# File: bidroom/messaging/ports/session_port.py
# Description: Port interface for auth/session lookup
# Pattern: Hexagonal Architecture / Ports & Adapters
# =============================================================================

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from bidroom.messaging.value_objects import CurrentUser


@runtime_checkable
class SessionPort(Protocol):
    """
    Port: Auth/Session

    Defined by: Messaging Domain
    Implemented by: the hosting application (web session, API token, ...)

    Used only to learn who is sending and whether they are the homeowner
    or a contractor.
    """

    async def get_current_user(self) -> Optional[CurrentUser]:
        """Return the authenticated user, or None when nobody is signed in."""
        ...
