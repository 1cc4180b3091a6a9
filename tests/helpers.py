"""Test helper functions for common data creation patterns."""

import asyncio
import json
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.websockets import WebSocketDisconnect, WebSocketState

from src.taskhub.core.security import create_access_token
from src.taskhub.models import ChatMessage, MessageType, Project, ProjectMembership, ProjectRole, User
from tests.factories import (
    ChatMessageFactory,
    ProjectFactory,
    ProjectMembershipFactory,
    UserFactory,
)


async def create_user(session: AsyncSession, **user_kwargs) -> User:
    """Create and commit a user.

    Args:
        session: Database session
        **user_kwargs: Additional args passed to UserFactory

    Returns:
        The persisted user (id assigned)
    """
    user = UserFactory.build(**user_kwargs)
    session.add(user)
    await session.commit()
    return user


async def create_project(session: AsyncSession, owner: User, **project_kwargs) -> Project:
    """Create and commit a project owned by ``owner``."""
    project = ProjectFactory.build(owner_id=owner.id, **project_kwargs)
    session.add(project)
    await session.commit()
    return project


async def add_member(
    session: AsyncSession,
    project: Project,
    user: User,
    role: ProjectRole = ProjectRole.MEMBER,
) -> ProjectMembership:
    """Grant ``user`` a role in ``project``."""
    membership = ProjectMembershipFactory.build(
        project_id=project.id,
        user_id=user.id,
        role=role.value,
    )
    session.add(membership)
    await session.commit()
    return membership


async def insert_message(
    session: AsyncSession,
    sender: User,
    content: str,
    project: Project | None = None,
    timestamp: datetime | None = None,
    message_type: MessageType = MessageType.CHAT,
) -> ChatMessage:
    """Insert a message row directly, with an explicit timestamp if given."""
    kwargs = {"timestamp": timestamp} if timestamp is not None else {}
    message = ChatMessageFactory.build(
        sender_id=sender.id,
        project_id=project.id if project is not None else None,
        content=content,
        type=message_type.value,
        **kwargs,
    )
    session.add(message)
    await session.commit()
    return message


def token_for(user: User) -> str:
    return create_access_token(user.email, user.role)


def auth_headers(user: User) -> dict[str, str]:
    """Authorization header carrying a fresh access token for ``user``."""
    return {"Authorization": f"Bearer {token_for(user)}"}


class FakeWebSocket:
    """In-memory stand-in for a starlette WebSocket.

    Records sent frames, and serves ``receive_text`` from a queue that tests
    fill with ``push``. Pushing None simulates the client disconnecting.
    """

    def __init__(
        self,
        headers: dict[str, str] | None = None,
        query_params: dict[str, str] | None = None,
    ):
        self.headers = headers or {}
        self.query_params = query_params or {}
        self.application_state = WebSocketState.CONNECTING
        self.sent: list[str] = []
        self.close_code: int | None = None
        self._incoming: asyncio.Queue[str | None] = asyncio.Queue()

    async def accept(self) -> None:
        self.application_state = WebSocketState.CONNECTED

    async def send_text(self, data: str) -> None:
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.close_code = code
        self.application_state = WebSocketState.DISCONNECTED

    async def receive_text(self) -> str:
        item = await self._incoming.get()
        if item is None:
            raise WebSocketDisconnect(1000)
        return item

    def push(self, frame: dict | str | None) -> None:
        self._incoming.put_nowait(json.dumps(frame) if isinstance(frame, dict) else frame)

    def frames(self) -> list[dict]:
        return [json.loads(text) for text in self.sent]
