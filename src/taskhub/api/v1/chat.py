"""Chat history endpoints.

Live traffic goes through the websocket; these endpoints serve history for
clients that reconnect or page back.
"""

from typing import Annotated

from fastapi import APIRouter, Path, Query, Request

from src.taskhub.api.dependencies import CurrentUser, HistoryServiceDep
from src.taskhub.core.rate_limit import limiter
from src.taskhub.realtime.channels import GLOBAL_TOPIC, PROJECT_TOPIC_PREFIX
from src.taskhub.realtime.gateway import ADD_USER_DESTINATION, SEND_MESSAGE_DESTINATION
from src.taskhub.schemas.chat import (
    ChatHistoryPage,
    ChatHistoryRequest,
    ChatMessagePayload,
    MessageDestination,
    TopicInfo,
    WebSocketInfo,
)

router = APIRouter(prefix="/chat", tags=["chat"])

HISTORY_RATE_LIMIT = "60/minute"

ProjectId = Annotated[int, Path(gt=0, description="ID of the project")]
PageIndex = Annotated[int, Query(ge=0, description="Page number (0-based)")]
PageSize = Annotated[int | None, Query(ge=1, description="Messages per page (max 100)")]
Since = Annotated[
    str,
    Query(description="ISO datetime, e.g. 2023-12-01T10:00:00", examples=["2023-12-01T10:00:00"]),
]

_WEBSOCKET_INFO = WebSocketInfo(
    connection_url="/ws",
    description="WebSocket endpoint for real-time chat functionality",
    topics=[
        TopicInfo(topic=GLOBAL_TOPIC, description="Global chat messages for all users"),
        TopicInfo(
            topic=f"{PROJECT_TOPIC_PREFIX}{{projectId}}",
            description="Project-specific chat messages",
            example=f"{PROJECT_TOPIC_PREFIX}1",
        ),
    ],
    message_destinations=[
        MessageDestination(
            destination=SEND_MESSAGE_DESTINATION,
            description="Send a chat message",
            payload_example={"content": "Hello everyone!", "projectId": 1, "type": "CHAT"},
        ),
        MessageDestination(
            destination=ADD_USER_DESTINATION,
            description="Join a channel and announce it to its subscribers",
            payload_example={"projectId": 1},
        ),
    ],
    usage=[
        "1. Connect to /ws with an 'Authorization: Bearer <token>' header",
        '2. Send {"action": "subscribe", "destination": "/topic/public"} '
        "or /topic/project/{projectId}",
        f'3. Send {{"destination": "{SEND_MESSAGE_DESTINATION}", "body": {{...}}}}',
        f"4. Send join notifications to {ADD_USER_DESTINATION}",
        "5. All subscribers receive messages in the order they were stored",
    ],
)


@router.get("/websocket-info", response_model=WebSocketInfo)
async def get_websocket_info() -> WebSocketInfo:
    """Describe the websocket endpoint, its topics and destinations."""
    return _WEBSOCKET_INFO


@router.get(
    "/history",
    response_model=ChatHistoryPage,
    responses={
        400: {"description": "Invalid timestamp or offset"},
        401: {"description": "Not authenticated"},
        403: {"description": "No access to the requested project"},
        404: {"description": "Project not found"},
    },
)
@limiter.limit(HISTORY_RATE_LIMIT)
async def get_chat_history(
    request: Request,
    current_user: CurrentUser,
    service: HistoryServiceDep,
    offset: Annotated[int, Query()] = 0,
    limit: Annotated[int | None, Query()] = None,
    from_date: Annotated[str | None, Query(alias="fromDate")] = None,
    to_date: Annotated[str | None, Query(alias="toDate")] = None,
    sender_email: Annotated[str | None, Query(alias="senderEmail")] = None,
    search_keyword: Annotated[str | None, Query(alias="searchKeyword")] = None,
    project_id: Annotated[int | None, Query(alias="projectId")] = None,
) -> ChatHistoryPage:
    """Filtered, paginated history across every channel the caller can read."""
    query = ChatHistoryRequest(
        offset=offset,
        limit=limit,
        from_date=from_date,
        to_date=to_date,
        sender_email=sender_email,
        search_keyword=search_keyword,
        project_id=project_id,
    )
    return await service.query(current_user, query)


@router.post(
    "/history",
    response_model=ChatHistoryPage,
    responses={
        400: {"description": "Invalid timestamp or offset"},
        401: {"description": "Not authenticated"},
        403: {"description": "No access to the requested project"},
        404: {"description": "Project not found"},
    },
)
@limiter.limit(HISTORY_RATE_LIMIT)
async def search_chat_history(
    request: Request,
    body: ChatHistoryRequest,
    current_user: CurrentUser,
    service: HistoryServiceDep,
) -> ChatHistoryPage:
    """Same as GET /history with the filters in a JSON body."""
    return await service.query(current_user, body)


@router.get(
    "/project/{project_id}",
    response_model=ChatHistoryPage,
    responses={
        401: {"description": "Not authenticated"},
        403: {"description": "Not a member of the project"},
        404: {"description": "Project not found"},
    },
)
async def get_project_messages(
    project_id: ProjectId,
    current_user: CurrentUser,
    service: HistoryServiceDep,
    page: PageIndex = 0,
    size: PageSize = None,
) -> ChatHistoryPage:
    """Paginated messages of one project, newest first."""
    return await service.channel_page(current_user, project_id, page, size)


@router.get("/global", response_model=ChatHistoryPage)
async def get_global_messages(
    current_user: CurrentUser,
    service: HistoryServiceDep,
    page: PageIndex = 0,
    size: PageSize = None,
) -> ChatHistoryPage:
    """Paginated messages of the global channel, newest first."""
    return await service.channel_page(current_user, None, page, size)


@router.get(
    "/project/{project_id}/recent",
    response_model=list[ChatMessagePayload],
    responses={
        400: {"description": "Invalid timestamp format"},
        403: {"description": "Not a member of the project"},
        404: {"description": "Project not found"},
    },
)
async def get_recent_project_messages(
    project_id: ProjectId,
    since: Since,
    current_user: CurrentUser,
    service: HistoryServiceDep,
) -> list[ChatMessagePayload]:
    """Project messages newer than ``since``, oldest first."""
    return await service.channel_since(current_user, project_id, since)


@router.get(
    "/global/recent",
    response_model=list[ChatMessagePayload],
    responses={400: {"description": "Invalid timestamp format"}},
)
async def get_recent_global_messages(
    since: Since,
    current_user: CurrentUser,
    service: HistoryServiceDep,
) -> list[ChatMessagePayload]:
    """Global messages newer than ``since``, oldest first."""
    return await service.channel_since(current_user, None, since)
