"""Service factory dependencies."""

from typing import Annotated

from fastapi import Depends

from src.taskhub.api.dependencies.db import DBSession
from src.taskhub.api.dependencies.repositories import (
    ChatMessageRepo,
    MembershipRepo,
    ProjectRepo,
    UserRepo,
)
from src.taskhub.services.access_control import ChatAccessController
from src.taskhub.services.chat_history_service import HistoryQueryService
from src.taskhub.services.chat_service import MessageStore


def get_access_controller(
    project_repo: ProjectRepo, membership_repo: MembershipRepo
) -> ChatAccessController:
    return ChatAccessController(project_repo, membership_repo)


def get_message_store(
    session: DBSession,
    message_repo: ChatMessageRepo,
    user_repo: UserRepo,
    project_repo: ProjectRepo,
) -> MessageStore:
    return MessageStore(session, message_repo, user_repo, project_repo)


AccessControllerDep = Annotated[ChatAccessController, Depends(get_access_controller)]
MessageStoreDep = Annotated[MessageStore, Depends(get_message_store)]


def get_history_service(
    store: MessageStoreDep,
    access: AccessControllerDep,
    project_repo: ProjectRepo,
) -> HistoryQueryService:
    return HistoryQueryService(store, access, project_repo)


HistoryServiceDep = Annotated[HistoryQueryService, Depends(get_history_service)]
