"""FastAPI dependency injection definitions.

Re-exports all dependencies so endpoints import from one place.
"""

# Auth
from src.taskhub.api.dependencies.auth import CurrentUser, get_current_user

# Database
from src.taskhub.api.dependencies.db import DBSession, get_db_session

# Realtime
from src.taskhub.api.dependencies.realtime import (
    ChatGatewayDep,
    get_chat_gateway,
)

# Repositories
from src.taskhub.api.dependencies.repositories import (
    ChatMessageRepo,
    MembershipRepo,
    ProjectRepo,
    UserRepo,
    get_chat_message_repository,
    get_membership_repository,
    get_project_repository,
    get_user_repository,
)

# Services
from src.taskhub.api.dependencies.services import (
    AccessControllerDep,
    HistoryServiceDep,
    MessageStoreDep,
    get_access_controller,
    get_history_service,
    get_message_store,
)

__all__ = [
    # Database
    "DBSession",
    "get_db_session",
    # Auth
    "CurrentUser",
    "get_current_user",
    # Repositories
    "ChatMessageRepo",
    "MembershipRepo",
    "ProjectRepo",
    "UserRepo",
    "get_chat_message_repository",
    "get_membership_repository",
    "get_project_repository",
    "get_user_repository",
    # Services
    "AccessControllerDep",
    "HistoryServiceDep",
    "MessageStoreDep",
    "get_access_controller",
    "get_history_service",
    "get_message_store",
    # Realtime
    "ChatGatewayDep",
    "get_chat_gateway",
]
