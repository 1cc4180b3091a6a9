from src.taskhub.schemas.chat import (
    ChatHistoryPage,
    ChatHistoryRequest,
    ChatMessagePayload,
    ChatMessageRequest,
    ErrorFrame,
    MessageDestination,
    ReceiptFrame,
    TopicInfo,
    WebSocketInfo,
)
from src.taskhub.schemas.pagination import PageResponse

__all__ = [
    # Chat
    "ChatHistoryPage",
    "ChatHistoryRequest",
    "ChatMessagePayload",
    "ChatMessageRequest",
    "ErrorFrame",
    "MessageDestination",
    "ReceiptFrame",
    "TopicInfo",
    "WebSocketInfo",
    # Pagination
    "PageResponse",
]
