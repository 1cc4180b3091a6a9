from src.taskhub.services.access_control import (
    AccessIntent,
    ChatAccessController,
    ProjectCapability,
    project_policy,
)
from src.taskhub.services.chat_history_service import HistoryQueryService
from src.taskhub.services.chat_service import MessageStore
from src.taskhub.services.identity_service import IdentityService

__all__ = [
    "AccessIntent",
    "ChatAccessController",
    "HistoryQueryService",
    "IdentityService",
    "MessageStore",
    "ProjectCapability",
    "project_policy",
]
