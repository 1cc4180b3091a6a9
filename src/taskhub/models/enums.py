"""Shared enums for models."""

from enum import Enum


class UserRole(str, Enum):
    """Account-wide role."""

    ADMIN = "ADMIN"
    USER = "USER"


class ProjectStatus(str, Enum):
    """Project lifecycle status."""

    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    ON_HOLD = "ON_HOLD"
    CANCELED = "CANCELED"
    UNDER_REVIEW = "UNDER_REVIEW"


class ProjectRole(str, Enum):
    """Role of a member within a single project. The owner has no row."""

    MEMBER = "MEMBER"
    MANAGER = "MANAGER"


class MessageType(str, Enum):
    """Chat message kind."""

    CHAT = "CHAT"
    JOIN = "JOIN"
    LEAVE = "LEAVE"
