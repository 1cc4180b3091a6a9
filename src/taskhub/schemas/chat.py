"""Chat schemas for the websocket and the history API."""

from datetime import datetime
from typing import Any

from pydantic import ConfigDict, Field

from src.taskhub.models import ChatMessage, MessageType, Project, User
from src.taskhub.schemas.base import CamelModel
from src.taskhub.schemas.pagination import PageResponse

ERROR_FRAME_TYPE = "ERROR"
SUBSCRIBED_FRAME_TYPE = "SUBSCRIBED"
UNSUBSCRIBED_FRAME_TYPE = "UNSUBSCRIBED"


class ChatMessageRequest(CamelModel):
    """Body of a ``chat.sendMessage`` / ``chat.addUser`` frame.

    Fields are loosely typed on purpose; the gateway validates them with
    ``core.validators`` so failures become error frames rather than
    pydantic exceptions. ``sender_email`` is accepted and ignored: the
    sender is always the authenticated connection.
    """

    model_config = ConfigDict(extra="ignore")

    content: Any = None
    project_id: Any = None
    type: Any = None
    sender_email: Any = None


class ChatMessagePayload(CamelModel):
    """A persisted message as broadcast to subscribers and returned by the API."""

    id: int
    type: MessageType
    content: str
    sender_id: int
    sender_email: str
    sender_name: str
    sender_first_name: str
    sender_last_name: str
    sender_avatar_url: str | None = None
    project_id: int | None = None
    project_name: str | None = None
    timestamp: datetime

    @classmethod
    def from_message(
        cls,
        message: ChatMessage,
        sender: User,
        project: Project | None = None,
    ) -> "ChatMessagePayload":
        return cls(
            id=message.id,  # type: ignore[arg-type]
            type=message.type_enum,
            content=message.content,
            sender_id=sender.id,  # type: ignore[arg-type]
            sender_email=sender.email,
            sender_name=sender.display_name,
            sender_first_name=sender.first_name,
            sender_last_name=sender.last_name,
            sender_avatar_url=sender.avatar_url,
            project_id=message.project_id,
            project_name=project.name if project is not None else None,
            timestamp=message.timestamp,
        )


class ErrorFrame(CamelModel):
    """Error reply sent to the offending connection only."""

    type: str = ERROR_FRAME_TYPE
    content: str
    timestamp: datetime


class ReceiptFrame(CamelModel):
    """Acknowledges a subscribe or unsubscribe once it has taken effect."""

    type: str
    destination: str
    timestamp: datetime


class ChatHistoryRequest(CamelModel):
    """Filters for a history query; every filter is optional.

    Dates stay strings here and are parsed by ``core.validators`` so a bad
    value yields a 400 with a readable message.
    """

    offset: int = 0
    limit: int | None = None
    from_date: str | None = None
    to_date: str | None = None
    sender_email: str | None = None
    search_keyword: str | None = None
    project_id: int | None = None


ChatHistoryPage = PageResponse[ChatMessagePayload]


class TopicInfo(CamelModel):
    topic: str
    description: str
    example: str | None = None


class MessageDestination(CamelModel):
    destination: str
    description: str
    payload_example: dict[str, Any]


class WebSocketInfo(CamelModel):
    """Self-description of the websocket endpoint for client developers."""

    connection_url: str
    description: str
    topics: list[TopicInfo]
    message_destinations: list[MessageDestination]
    usage: list[str] = Field(default_factory=list)
