"""Repository layer - data access abstraction."""

from src.taskhub.repositories.base import BaseRepository
from src.taskhub.repositories.chat_message import (
    ChatMessageRepository,
    MessageFilters,
    MessageRow,
)
from src.taskhub.repositories.project import ProjectMembershipRepository, ProjectRepository
from src.taskhub.repositories.user import UserRepository

__all__ = [
    # Base
    "BaseRepository",
    # Directory
    "ProjectMembershipRepository",
    "ProjectRepository",
    "UserRepository",
    # Chat
    "ChatMessageRepository",
    "MessageFilters",
    "MessageRow",
]
