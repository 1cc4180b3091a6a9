"""Chat gateway: the per-connection side of the websocket chat.

Inbound frames are JSON objects of two shapes::

    {"destination": "/app/chat.sendMessage", "body": {"content": "...", "projectId": 1}}
    {"action": "subscribe", "destination": "/topic/project/1"}

Failures of a single frame (bad input, denied access, unknown project) are
answered with an ERROR frame to the sender and never close the connection.
"""

import asyncio
import json
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.websockets import WebSocket, WebSocketDisconnect

from src.taskhub.core.config import get_settings
from src.taskhub.core.db import SessionFactory
from src.taskhub.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    RateLimitedError,
    TaskhubError,
    ValidationError,
)
from src.taskhub.core.logging import (
    bind_connection_context,
    bind_user_context,
    clear_request_context,
    get_logger,
)
from src.taskhub.core.rate_limit import check_chat_send_allowed
from src.taskhub.core.security import extract_bearer_token
from src.taskhub.core.validators import (
    validate_message_content,
    validate_message_type,
    validate_project_id,
)
from src.taskhub.models import MessageType, User
from src.taskhub.models.base import utc_now
from src.taskhub.realtime.channels import Channel
from src.taskhub.realtime.connection import ChatConnection
from src.taskhub.realtime.registry import ChannelRegistry
from src.taskhub.repositories import (
    ChatMessageRepository,
    ProjectMembershipRepository,
    ProjectRepository,
    UserRepository,
)
from src.taskhub.schemas.chat import (
    SUBSCRIBED_FRAME_TYPE,
    UNSUBSCRIBED_FRAME_TYPE,
    ChatMessagePayload,
    ChatMessageRequest,
    ErrorFrame,
    ReceiptFrame,
)
from src.taskhub.services.access_control import AccessIntent, ChatAccessController
from src.taskhub.services.chat_service import MessageStore
from src.taskhub.services.identity_service import IdentityService

logger = get_logger(__name__)

SEND_MESSAGE_DESTINATION = "/app/chat.sendMessage"
ADD_USER_DESTINATION = "/app/chat.addUser"

SUBSCRIBE_ACTION = "subscribe"
UNSUBSCRIBE_ACTION = "unsubscribe"

# Types a client may send through chat.sendMessage; JOIN goes through addUser
_SENDABLE_TYPES = frozenset({MessageType.CHAT.value, MessageType.LEAVE.value})

GENERIC_FAILURE = "Failed to send message"


def _receipt(frame_type: str, channel: Channel) -> ReceiptFrame:
    return ReceiptFrame(type=frame_type, destination=channel.topic, timestamp=utc_now())


class ChatGateway:
    """Authenticates websocket connections and routes their frames.

    One instance serves every connection. Each frame gets its own database
    session from ``session_factory`` so a long-lived socket never pins a
    connection from the pool.
    """

    def __init__(
        self,
        registry: ChannelRegistry,
        session_factory: SessionFactory,
        queue_size: int | None = None,
    ):
        self.registry = registry
        self.session_factory = session_factory
        self.queue_size = queue_size or get_settings().chat_outbound_queue_size

    # --- connection lifecycle ---

    async def handle(self, websocket: WebSocket) -> None:
        """Serve one websocket until the client goes away."""
        connection = ChatConnection(websocket, self.queue_size)
        clear_request_context()
        bind_connection_context(connection.id)

        user = await self.authenticate(websocket)
        connection.authenticate(user)
        if user is not None and user.id is not None:
            bind_user_context(user.id, user.email)

        await connection.open()
        self.registry.register(connection)
        logger.info("Chat connection accepted", authenticated=connection.is_authenticated)

        try:
            while connection.is_open:
                raw = await websocket.receive_text()
                await self.dispatch(connection, raw)
        except WebSocketDisconnect as e:
            logger.info("Chat client disconnected", code=e.code)
        except RuntimeError as e:
            # Raised by starlette once the socket was closed from our side
            logger.info("Chat connection no longer readable", error=str(e))
        finally:
            channels = self.registry.unregister(connection)
            await connection.close()
            logger.info(
                "Chat connection closed",
                channels=[channel.key for channel in channels],
            )
            clear_request_context()

    async def authenticate(self, websocket: WebSocket) -> User | None:
        """Resolve the handshake credential. Any failure yields Anonymous,
        including a database error while looking the user up.

        The ``Authorization: Bearer`` header is preferred; browsers cannot
        set headers on websockets, so a ``token`` query parameter is
        accepted as well.
        """
        token = extract_bearer_token(websocket.headers.get("authorization"))
        if token is None:
            token = websocket.query_params.get("token") or None
        if token is None:
            return None

        try:
            async with self.session_factory() as session:
                return await IdentityService(UserRepository(session)).resolve_token(token)
        except SQLAlchemyError as e:
            logger.warning("Chat handshake identity lookup failed", error=str(e))
            return None

    # --- frame routing ---

    async def dispatch(self, connection: ChatConnection, raw: str) -> None:
        """Handle one inbound frame, converting failures into ERROR frames."""
        try:
            frame = self._parse(raw)
            await self._route(connection, frame)
        except AuthorizationError as e:
            logger.warning("Chat access denied", reason=e.message)
            self._reply_error(connection, e.message)
        except TaskhubError as e:
            logger.info("Chat frame rejected", error_type=type(e).__name__, reason=e.message)
            self._reply_error(connection, e.message)
        except Exception:
            logger.exception("Unexpected error handling chat frame")
            self._reply_error(connection, GENERIC_FAILURE)

    @staticmethod
    def _parse(raw: str) -> dict[str, Any]:
        try:
            frame = json.loads(raw)
        except ValueError as e:
            raise ValidationError("Malformed frame: expected a JSON object") from e
        if not isinstance(frame, dict):
            raise ValidationError("Malformed frame: expected a JSON object")
        return frame

    async def _route(self, connection: ChatConnection, frame: dict[str, Any]) -> None:
        action = frame.get("action")
        destination = frame.get("destination")

        if action == SUBSCRIBE_ACTION:
            await self.subscribe(connection, destination)
        elif action == UNSUBSCRIBE_ACTION:
            self.unsubscribe(connection, destination)
        elif action is not None:
            raise ValidationError(f"Unknown action '{action}'")
        elif destination == SEND_MESSAGE_DESTINATION:
            await self.send_message(connection, frame.get("body"))
        elif destination == ADD_USER_DESTINATION:
            await self.add_user(connection, frame.get("body"))
        else:
            raise ValidationError(f"Unknown destination '{destination}'")

    # --- operations ---

    async def send_message(self, connection: ChatConnection, body: Any) -> ChatMessagePayload:
        """``chat.sendMessage``: persist a message, then fan it out."""
        user = self._require_user(connection, "Authentication required to send messages")
        request = self._parse_body(body)

        project_id = validate_project_id(request.project_id).unwrap()
        content = validate_message_content(
            request.content, get_settings().chat_max_content_length
        ).unwrap()
        message_type = MessageType(validate_message_type(request.type, _SENDABLE_TYPES).unwrap())

        channel = Channel.for_project(project_id)
        return await asyncio.shield(
            self._deliver(connection, user, channel, content, message_type, subscribe=False)
        )

    async def add_user(self, connection: ChatConnection, body: Any) -> ChatMessagePayload:
        """``chat.addUser``: subscribe to the channel and announce the join."""
        user = self._require_user(connection, "Authentication required to join chat")
        request = self._parse_body(body)

        project_id = validate_project_id(request.project_id).unwrap()
        content = f"{user.display_name} joined the chat!"

        channel = Channel.for_project(project_id)
        return await asyncio.shield(
            self._deliver(connection, user, channel, content, MessageType.JOIN, subscribe=True)
        )

    async def subscribe(self, connection: ChatConnection, destination: Any) -> Channel:
        """Subscribe to a topic after a read check."""
        user = self._require_user(connection, "Authentication required to subscribe")
        channel = self._channel_for(destination)

        async with self.session_factory() as session:
            await self._access(session).authorize(user, channel, AccessIntent.READ)

        self.registry.subscribe(connection, channel)
        self._reply(connection, _receipt(SUBSCRIBED_FRAME_TYPE, channel))
        return channel

    def unsubscribe(self, connection: ChatConnection, destination: Any) -> Channel:
        channel = self._channel_for(destination)
        self.registry.unsubscribe(connection, channel)
        self._reply(connection, _receipt(UNSUBSCRIBED_FRAME_TYPE, channel))
        return channel

    async def _deliver(
        self,
        connection: ChatConnection,
        user: User,
        channel: Channel,
        content: str,
        message_type: MessageType,
        subscribe: bool,
    ) -> ChatMessagePayload:
        """Authorize and throttle, then append and publish under the ordering lock.

        Runs shielded from cancellation so a message accepted for storage is
        persisted even if the sender disconnects mid-flight.
        """
        async with self.session_factory() as session:
            await self._access(session).authorize(user, channel, AccessIntent.WRITE)
            # Denied sends do not spend the sender's tokens
            await self._check_rate(user)

            if subscribe:
                self.registry.subscribe(connection, channel)

            async with self.registry.ordering_lock(channel):
                row = await self._store(session).append(
                    user.id,  # type: ignore[arg-type]
                    channel.project_id,
                    content,
                    message_type,
                )
                payload = ChatMessagePayload.from_message(row.message, row.sender, row.project)
                delivered = self.registry.publish(channel, payload.to_wire())

        logger.info(
            "Chat message published",
            message_id=payload.id,
            channel=channel.key,
            delivered=delivered,
        )
        return payload

    # --- helpers ---

    @staticmethod
    def _require_user(connection: ChatConnection, message: str) -> User:
        if connection.user is None:
            raise AuthenticationError(message)
        return connection.user

    @staticmethod
    def _parse_body(body: Any) -> ChatMessageRequest:
        if not isinstance(body, dict):
            raise ValidationError("Message body must be a JSON object")
        try:
            return ChatMessageRequest.model_validate(body)
        except PydanticValidationError as e:
            raise ValidationError("Message body is invalid") from e

    @staticmethod
    def _channel_for(destination: Any) -> Channel:
        channel = Channel.from_topic(destination) if isinstance(destination, str) else None
        if channel is None:
            raise ValidationError(f"Unknown topic '{destination}'")
        return channel

    @staticmethod
    async def _check_rate(user: User) -> None:
        if not await check_chat_send_allowed(user.id):  # type: ignore[arg-type]
            raise RateLimitedError("Too many messages. Please slow down.")

    @staticmethod
    def _access(session: AsyncSession) -> ChatAccessController:
        return ChatAccessController(ProjectRepository(session), ProjectMembershipRepository(session))

    @staticmethod
    def _store(session: AsyncSession) -> MessageStore:
        return MessageStore(
            session,
            ChatMessageRepository(session),
            UserRepository(session),
            ProjectRepository(session),
        )

    def _reply(self, connection: ChatConnection, frame: ErrorFrame | ReceiptFrame) -> None:
        if not connection.offer(frame.to_wire()):
            self.registry.evict(connection)

    def _reply_error(self, connection: ChatConnection, message: str) -> None:
        self._reply(connection, ErrorFrame(content=message, timestamp=utc_now()))
