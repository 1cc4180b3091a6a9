"""Chat message model."""

from datetime import datetime

from sqlalchemy import Index
from sqlmodel import Field, SQLModel

from src.taskhub.models.base import utc_now
from src.taskhub.models.enums import MessageType

MAX_CONTENT_LENGTH = 1000


class ChatMessage(SQLModel, table=True):
    """Persisted chat message.

    ``project_id`` is the message scope: None for the global channel.
    Rows are append-only; neither scope nor content change after insert.
    """

    __tablename__ = "chat_messages"
    __table_args__ = (Index("ix_chat_messages_project_timestamp", "project_id", "timestamp"),)

    id: int | None = Field(default=None, primary_key=True)
    sender_id: int = Field(foreign_key="users.id", index=True)
    project_id: int | None = Field(default=None, foreign_key="projects.id")
    content: str = Field(max_length=MAX_CONTENT_LENGTH)
    type: str = Field(default=MessageType.CHAT.value, max_length=10)
    timestamp: datetime = Field(default_factory=utc_now, index=True)

    @property
    def type_enum(self) -> MessageType:
        """Get type as MessageType enum."""
        return MessageType(self.type)
