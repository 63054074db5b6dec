# =============================================================================
# File: bidroom/messaging/enums.py
# Description: Messaging domain enumerations
# =============================================================================

from enum import Enum


class MessageKind(str, Enum):
    """Addressing of a message"""
    INDIVIDUAL = "individual"
    GROUP = "group"


class UserRole(str, Enum):
    """Role of the authenticated user on a project"""
    HOMEOWNER = "homeowner"
    CONTRACTOR = "contractor"


class MessageState(str, Enum):
    """Lifecycle of a message (created -> read, nothing else)"""
    CREATED = "created"
    READ = "read"
