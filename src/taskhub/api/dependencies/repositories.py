"""Repository factory dependencies."""

from typing import Annotated

from fastapi import Depends

from src.taskhub.api.dependencies.db import DBSession
from src.taskhub.repositories import (
    ChatMessageRepository,
    ProjectMembershipRepository,
    ProjectRepository,
    UserRepository,
)


def get_user_repository(session: DBSession) -> UserRepository:
    return UserRepository(session)


def get_project_repository(session: DBSession) -> ProjectRepository:
    return ProjectRepository(session)


def get_membership_repository(session: DBSession) -> ProjectMembershipRepository:
    return ProjectMembershipRepository(session)


def get_chat_message_repository(session: DBSession) -> ChatMessageRepository:
    return ChatMessageRepository(session)


UserRepo = Annotated[UserRepository, Depends(get_user_repository)]
ProjectRepo = Annotated[ProjectRepository, Depends(get_project_repository)]
MembershipRepo = Annotated[ProjectMembershipRepository, Depends(get_membership_repository)]
ChatMessageRepo = Annotated[ChatMessageRepository, Depends(get_chat_message_repository)]
