"""Message store: append-only persistence of chat messages."""

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from src.taskhub.core.config import get_settings
from src.taskhub.core.exceptions import NotFoundError, ValidationError
from src.taskhub.core.logging import get_logger
from src.taskhub.core.validators import clamp_limit, validate_message_content
from src.taskhub.models import ChatMessage, MessageType
from src.taskhub.models.base import utc_now
from src.taskhub.repositories import (
    ChatMessageRepository,
    MessageFilters,
    MessageRow,
    ProjectRepository,
    UserRepository,
)

logger = get_logger(__name__)


class MessageStore:
    """Durable, append-only log of chat messages scoped to a channel.

    Callers that need delivery order to match storage order must hold the
    channel's ordering lock around ``append`` and the following publish.
    """

    def __init__(
        self,
        session: AsyncSession,
        message_repo: ChatMessageRepository,
        user_repo: UserRepository,
        project_repo: ProjectRepository,
    ):
        self.session = session
        self.message_repo = message_repo
        self.user_repo = user_repo
        self.project_repo = project_repo

    async def append(
        self,
        sender_id: int,
        project_id: int | None,
        content: str,
        message_type: MessageType = MessageType.CHAT,
    ) -> MessageRow:
        """Validate and persist a message.

        The timestamp is assigned here and never precedes the newest message
        already stored in the same scope, so per-scope order is monotonic
        even if the wall clock steps back.

        Raises:
            ValidationError: Content blank or too long
            NotFoundError: Sender or project does not exist
        """
        settings = get_settings()
        text = validate_message_content(content, settings.chat_max_content_length).unwrap()

        sender = await self.user_repo.get_by_id(sender_id)
        if sender is None:
            raise NotFoundError("User", "id", sender_id)

        project = None
        if project_id is not None:
            project = await self.project_repo.get_by_id(project_id)
            if project is None:
                raise NotFoundError("Project", "id", project_id)

        try:
            timestamp = utc_now()
            latest = await self.message_repo.latest_timestamp(project_id)
            if latest is not None and latest > timestamp:
                timestamp = latest

            message = ChatMessage(
                sender_id=sender_id,
                project_id=project_id,
                content=text,
                type=message_type.value,
                timestamp=timestamp,
            )
            self.message_repo.add(message)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            "Chat message persisted",
            message_id=message.id,
            sender_id=sender_id,
            project_id=project_id,
            message_type=message_type.value,
        )
        return MessageRow(message, sender, project)

    async def list_by_channel(
        self,
        project_id: int | None,
        page: int,
        page_size: int | None,
    ) -> tuple[list[MessageRow], int]:
        """One page of a channel, newest first. Returns (rows, total)."""
        if page < 0:
            raise ValidationError("Page index must not be negative")
        settings = get_settings()
        size = clamp_limit(page_size, settings.chat_default_page_size, settings.chat_history_max_limit)
        return await self.message_repo.list_by_scope(project_id, page, size)

    async def list_since(self, project_id: int | None, since: datetime) -> list[MessageRow]:
        """Messages newer than ``since``, oldest first (reconnect catch-up)."""
        return await self.message_repo.list_since(project_id, since)

    async def search(
        self,
        filters: MessageFilters,
        page: int,
        page_size: int | None,
    ) -> tuple[list[MessageRow], int]:
        """Filtered history, newest first. Returns (rows, total)."""
        settings = get_settings()
        size = clamp_limit(page_size, settings.chat_default_page_size, settings.chat_history_max_limit)
        return await self.message_repo.search(filters, page, size)
