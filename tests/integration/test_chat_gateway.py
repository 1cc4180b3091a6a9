"""Integration tests for the websocket chat gateway.

Connections are driven through ``FakeWebSocket`` so frames can be pushed and
inspected without a network socket; storage is the real test database.
"""

import asyncio
import json
from collections.abc import AsyncGenerator, AsyncIterator, Callable
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import func, select

from src.taskhub.models import ChatMessage, MessageType, Project, User
from src.taskhub.realtime.channels import Channel
from src.taskhub.realtime.connection import CLOSE_TRY_AGAIN_LATER, ChatConnection, ConnectionState
from src.taskhub.realtime.gateway import (
    ADD_USER_DESTINATION,
    GENERIC_FAILURE,
    SEND_MESSAGE_DESTINATION,
    ChatGateway,
)
from src.taskhub.realtime.registry import ChannelRegistry
from src.taskhub.repositories import ChatMessageRepository, ProjectRepository, UserRepository
from src.taskhub.services import MessageStore
from src.taskhub.services.identity_service import IdentityService
from tests.helpers import FakeWebSocket, add_member, token_for

pytestmark = pytest.mark.integration


class BlockingWebSocket(FakeWebSocket):
    """A client that never reads: every send blocks."""

    def __init__(self) -> None:
        super().__init__()
        self._never = asyncio.Event()

    async def send_text(self, data: str) -> None:
        await self._never.wait()


async def wait_for(ws: FakeWebSocket, count: int, timeout: float = 2.0) -> list[dict]:
    """Wait until ``ws`` has been sent at least ``count`` frames."""
    async with asyncio.timeout(timeout):
        while len(ws.sent) < count:
            await asyncio.sleep(0.005)
    return ws.frames()


def send_frame(content: object = "hello", **body: object) -> str:
    return json.dumps({"destination": SEND_MESSAGE_DESTINATION, "body": {"content": content, **body}})


def subscribe_frame(topic: str) -> str:
    return json.dumps({"action": "subscribe", "destination": topic})


async def count_messages(session: AsyncSession) -> int:
    result = await session.execute(select(func.count()).select_from(ChatMessage))
    return result.scalar_one()


@pytest.fixture
async def connect(
    registry: ChannelRegistry,
) -> AsyncGenerator[Callable[..., object]]:
    """Open a registered connection for ``user`` (None for anonymous)."""
    opened: list[ChatConnection] = []

    async def _connect(user: User | None) -> ChatConnection:
        connection = ChatConnection(FakeWebSocket(), queue_size=50)
        connection.authenticate(user)
        await connection.open()
        registry.register(connection)
        opened.append(connection)
        return connection

    yield _connect
    for connection in opened:
        registry.unregister(connection)
        await connection.close()


class TestSendMessage:
    async def test_global_message_broadcast_to_subscribers(
        self, gateway: ChatGateway, connect, alice: User, bob: User
    ):
        sender = await connect(alice)
        listener = await connect(bob)
        await gateway.dispatch(listener, subscribe_frame("/topic/public"))

        await gateway.dispatch(sender, send_frame("Hello everyone!"))

        frames = await wait_for(listener.websocket, 2)
        assert frames[0]["type"] == "SUBSCRIBED"
        assert frames[0]["destination"] == "/topic/public"
        message = frames[1]
        assert message["type"] == MessageType.CHAT.value
        assert message["content"] == "Hello everyone!"
        assert message["senderEmail"] == "a@example.com"
        assert message["senderName"] == "Alice Smith"
        assert message["projectId"] is None
        assert message["id"] > 0

    async def test_sender_email_in_body_is_ignored(
        self, gateway: ChatGateway, connect, alice: User, carol: User
    ):
        sender = await connect(alice)
        await gateway.dispatch(sender, subscribe_frame("/topic/public"))

        await gateway.dispatch(sender, send_frame("hi", senderEmail=carol.email))

        frames = await wait_for(sender.websocket, 2)
        assert frames[1]["senderEmail"] == "a@example.com"

    async def test_project_message_reaches_only_that_project(
        self,
        gateway: ChatGateway,
        connect,
        db_session: AsyncSession,
        alice: User,
        bob: User,
        alice_project: Project,
    ):
        await add_member(db_session, alice_project, bob)
        sender = await connect(alice)
        member = await connect(bob)
        global_only = await connect(bob)
        await gateway.dispatch(member, subscribe_frame(f"/topic/project/{alice_project.id}"))
        await gateway.dispatch(global_only, subscribe_frame("/topic/public"))

        await gateway.dispatch(sender, send_frame("status", projectId=alice_project.id))

        frames = await wait_for(member.websocket, 2)
        assert frames[1]["projectName"] == "Apollo"
        await asyncio.sleep(0.02)
        assert [frame["type"] for frame in global_only.websocket.frames()] == ["SUBSCRIBED"]

    async def test_non_member_gets_error_and_nothing_is_stored(
        self,
        gateway: ChatGateway,
        connect,
        db_session: AsyncSession,
        alice_project: Project,
        carol: User,
    ):
        outsider = await connect(carol)

        await gateway.dispatch(outsider, send_frame("let me in", projectId=alice_project.id))

        (frame,) = await wait_for(outsider.websocket, 1)
        assert frame["type"] == "ERROR"
        assert frame["content"] == (
            f"You do not have permission to access chat for project {alice_project.id}"
        )
        assert await count_messages(db_session) == 0
        assert outsider.is_open

    async def test_denied_send_does_not_spend_rate_tokens(
        self,
        gateway: ChatGateway,
        connect,
        carol: User,
        alice_project: Project,
        monkeypatch: pytest.MonkeyPatch,
    ):
        allowed = AsyncMock(return_value=True)
        monkeypatch.setattr("src.taskhub.realtime.gateway.check_chat_send_allowed", allowed)
        outsider = await connect(carol)

        await gateway.dispatch(outsider, send_frame("let me in", projectId=alice_project.id))

        (frame,) = await wait_for(outsider.websocket, 1)
        assert frame["type"] == "ERROR"
        allowed.assert_not_awaited()

    async def test_throttled_send_stores_nothing(
        self,
        gateway: ChatGateway,
        connect,
        db_session: AsyncSession,
        alice: User,
        monkeypatch: pytest.MonkeyPatch,
    ):
        allowed = AsyncMock(return_value=False)
        monkeypatch.setattr("src.taskhub.realtime.gateway.check_chat_send_allowed", allowed)
        sender = await connect(alice)

        await gateway.dispatch(sender, send_frame("spam"))

        (frame,) = await wait_for(sender.websocket, 1)
        assert frame["content"] == "Too many messages. Please slow down."
        allowed.assert_awaited_once_with(alice.id)
        assert await count_messages(db_session) == 0
        assert sender.is_open

    async def test_unknown_project(self, gateway: ChatGateway, connect, alice: User):
        sender = await connect(alice)

        await gateway.dispatch(sender, send_frame("hi", projectId=4242))

        (frame,) = await wait_for(sender.websocket, 1)
        assert frame["content"] == "Project not found with id: '4242'"

    async def test_anonymous_cannot_send(
        self, gateway: ChatGateway, connect, db_session: AsyncSession, alice: User
    ):
        anonymous = await connect(None)

        await gateway.dispatch(anonymous, send_frame("hi"))

        (frame,) = await wait_for(anonymous.websocket, 1)
        assert frame == {
            "type": "ERROR",
            "content": "Authentication required to send messages",
            "timestamp": frame["timestamp"],
        }
        assert await count_messages(db_session) == 0

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("{not json", "Malformed frame: expected a JSON object"),
            ("[1, 2]", "Malformed frame: expected a JSON object"),
            (json.dumps({"destination": "/app/chat.unknown"}), "Unknown destination '/app/chat.unknown'"),
            (json.dumps({"action": "shout"}), "Unknown action 'shout'"),
            (json.dumps({"destination": SEND_MESSAGE_DESTINATION, "body": "hi"}), "Message body must be a JSON object"),
            (send_frame("   "), "Message content cannot be blank"),
            (send_frame("x" * 1001), "Message content cannot exceed 1000 characters"),
            (send_frame("hi", projectId="abc"), "projectId must be an integer or null"),
            (send_frame("hi", type="JOIN"), "type must be one of CHAT, LEAVE"),
        ],
    )
    async def test_bad_frames_answered_with_error(
        self, gateway: ChatGateway, connect, alice: User, raw: str, expected: str
    ):
        sender = await connect(alice)

        await gateway.dispatch(sender, raw)

        (frame,) = await wait_for(sender.websocket, 1)
        assert frame["type"] == "ERROR"
        assert frame["content"] == expected
        assert sender.is_open

    async def test_leave_type_accepted(self, gateway: ChatGateway, connect, alice: User):
        sender = await connect(alice)
        await gateway.dispatch(sender, subscribe_frame("/topic/public"))

        await gateway.dispatch(sender, send_frame("bye", type="leave"))

        frames = await wait_for(sender.websocket, 2)
        assert frames[1]["type"] == MessageType.LEAVE.value

    async def test_unexpected_failure_uses_generic_message(
        self, gateway: ChatGateway, connect, alice: User, monkeypatch: pytest.MonkeyPatch
    ):
        async def boom(*args, **kwargs):
            raise RuntimeError("database exploded")

        monkeypatch.setattr(MessageStore, "append", boom)
        sender = await connect(alice)

        await gateway.dispatch(sender, send_frame("hi"))

        (frame,) = await wait_for(sender.websocket, 1)
        assert frame["content"] == GENERIC_FAILURE


class TestAddUser:
    async def test_join_announced_and_sender_subscribed(
        self, gateway: ChatGateway, registry: ChannelRegistry, connect, alice: User, alice_project: Project
    ):
        sender = await connect(alice)

        await gateway.dispatch(
            sender,
            json.dumps({"destination": ADD_USER_DESTINATION, "body": {"projectId": alice_project.id}}),
        )

        (frame,) = await wait_for(sender.websocket, 1)
        assert frame["type"] == MessageType.JOIN.value
        assert frame["content"] == "Alice Smith joined the chat!"
        assert registry.channels_of(sender) == frozenset({Channel(alice_project.id)})

    async def test_join_denied_for_non_member(
        self, gateway: ChatGateway, registry: ChannelRegistry, connect, carol: User, alice_project: Project
    ):
        outsider = await connect(carol)

        await gateway.dispatch(
            outsider,
            json.dumps({"destination": ADD_USER_DESTINATION, "body": {"projectId": alice_project.id}}),
        )

        (frame,) = await wait_for(outsider.websocket, 1)
        assert frame["type"] == "ERROR"
        assert registry.channels_of(outsider) == frozenset()


class TestSubscriptions:
    async def test_subscribe_to_foreign_project_denied(
        self, gateway: ChatGateway, registry: ChannelRegistry, connect, carol: User, alice_project: Project
    ):
        outsider = await connect(carol)

        await gateway.dispatch(outsider, subscribe_frame(f"/topic/project/{alice_project.id}"))

        (frame,) = await wait_for(outsider.websocket, 1)
        assert frame["type"] == "ERROR"
        assert registry.subscriber_count(Channel(alice_project.id)) == 0

    async def test_anonymous_cannot_subscribe(self, gateway: ChatGateway, connect):
        anonymous = await connect(None)

        await gateway.dispatch(anonymous, subscribe_frame("/topic/public"))

        (frame,) = await wait_for(anonymous.websocket, 1)
        assert frame["content"] == "Authentication required to subscribe"

    async def test_unknown_topic(self, gateway: ChatGateway, connect, alice: User):
        sender = await connect(alice)

        await gateway.dispatch(sender, subscribe_frame("/topic/everything"))

        (frame,) = await wait_for(sender.websocket, 1)
        assert frame["content"] == "Unknown topic '/topic/everything'"

    async def test_unsubscribe_stops_delivery(
        self, gateway: ChatGateway, connect, alice: User, bob: User
    ):
        sender = await connect(alice)
        listener = await connect(bob)
        await gateway.dispatch(listener, subscribe_frame("/topic/public"))
        await gateway.dispatch(
            listener, json.dumps({"action": "unsubscribe", "destination": "/topic/public"})
        )

        await gateway.dispatch(sender, send_frame("anyone?"))

        await asyncio.sleep(0.02)
        assert [frame["type"] for frame in listener.websocket.frames()] == [
            "SUBSCRIBED",
            "UNSUBSCRIBED",
        ]


class TestOrdering:
    async def test_concurrent_sends_delivered_in_storage_order(
        self,
        gateway: ChatGateway,
        connect,
        db_session: AsyncSession,
        alice: User,
        bob: User,
        carol: User,
    ):
        senders = [await connect(user) for user in (alice, bob, carol)]
        listener = await connect(alice)
        await gateway.dispatch(listener, subscribe_frame("/topic/public"))

        await asyncio.gather(
            *(
                gateway.dispatch(senders[n % 3], send_frame(f"message {n}"))
                for n in range(12)
            )
        )

        frames = await wait_for(listener.websocket, 13)
        delivered_ids = [frame["id"] for frame in frames[1:]]

        store = MessageStore(
            db_session,
            ChatMessageRepository(db_session),
            UserRepository(db_session),
            ProjectRepository(db_session),
        )
        rows, total = await store.list_by_channel(None, 0, 100)
        assert total == 12
        assert delivered_ids == [row.message.id for row in reversed(rows)]


class TestSlowSubscriber:
    async def test_slow_subscriber_evicted_without_blocking_others(
        self,
        gateway: ChatGateway,
        registry: ChannelRegistry,
        connect,
        alice: User,
        bob: User,
    ):
        sender = await connect(alice)
        await gateway.dispatch(sender, subscribe_frame("/topic/public"))

        slow = ChatConnection(BlockingWebSocket(), queue_size=1)
        slow.authenticate(bob)
        await slow.open()
        registry.register(slow)
        registry.subscribe(slow, Channel.global_channel())

        for n in range(4):
            await gateway.dispatch(sender, send_frame(f"m{n}"))

        frames = await wait_for(sender.websocket, 5)
        assert [frame["content"] for frame in frames[1:]] == ["m0", "m1", "m2", "m3"]

        async with asyncio.timeout(2):
            while slow.state != ConnectionState.CLOSED:
                await asyncio.sleep(0.005)
        assert slow.websocket.close_code == CLOSE_TRY_AGAIN_LATER
        assert registry.channels_of(slow) == frozenset()
        registry.unregister(slow)


class TestConnectionLifecycle:
    async def test_handle_authenticates_with_query_token(
        self, gateway: ChatGateway, registry: ChannelRegistry, alice: User
    ):
        ws = FakeWebSocket(query_params={"token": token_for(alice)})
        task = asyncio.create_task(gateway.handle(ws))

        ws.push({"action": "subscribe", "destination": "/topic/public"})
        ws.push({"destination": SEND_MESSAGE_DESTINATION, "body": {"content": "over the wire"}})

        frames = await wait_for(ws, 2)
        assert frames[1]["senderEmail"] == "a@example.com"
        assert registry.connection_count == 1

        ws.push(None)
        await asyncio.wait_for(task, timeout=2)
        assert registry.connection_count == 0
        assert registry.subscriber_count(Channel.global_channel()) == 0
        assert ws.close_code == 1000

    async def test_handle_with_bad_token_is_anonymous(
        self, gateway: ChatGateway, registry: ChannelRegistry, alice: User
    ):
        ws = FakeWebSocket(headers={"authorization": "Bearer garbage"})
        task = asyncio.create_task(gateway.handle(ws))

        ws.push({"destination": SEND_MESSAGE_DESTINATION, "body": {"content": "hi"}})

        (frame,) = await wait_for(ws, 1)
        assert frame["content"] == "Authentication required to send messages"

        ws.push(None)
        await asyncio.wait_for(task, timeout=2)
        assert registry.connection_count == 0

    async def test_header_token_preferred(
        self, gateway: ChatGateway, alice: User, bob: User
    ):
        ws = FakeWebSocket(
            headers={"authorization": f"Bearer {token_for(alice)}"},
            query_params={"token": token_for(bob)},
        )
        assert (await gateway.authenticate(ws)).email == "a@example.com"

    async def test_lookup_failure_at_handshake_is_anonymous(
        self, gateway: ChatGateway, alice: User, monkeypatch: pytest.MonkeyPatch
    ):
        lookup = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("database is locked")))
        monkeypatch.setattr(IdentityService, "resolve_token", lookup)
        ws = FakeWebSocket(query_params={"token": token_for(alice)})

        assert await gateway.authenticate(ws) is None

        task = asyncio.create_task(gateway.handle(ws))
        ws.push({"destination": SEND_MESSAGE_DESTINATION, "body": {"content": "hi"}})
        (frame,) = await wait_for(ws, 1)
        assert frame["content"] == "Authentication required to send messages"

        ws.push(None)
        await asyncio.wait_for(task, timeout=2)

    async def test_send_in_flight_survives_cancelled_handler(
        self,
        gateway: ChatGateway,
        registry: ChannelRegistry,
        connect,
        db_session: AsyncSession,
        alice: User,
        bob: User,
        monkeypatch: pytest.MonkeyPatch,
    ):
        listener = await connect(bob)
        await gateway.dispatch(listener, subscribe_frame("/topic/public"))

        # Hold the send at the ordering lock so the cancel lands mid-delivery
        reached_lock = asyncio.Event()
        release = asyncio.Event()
        ordering_lock = registry.ordering_lock

        @asynccontextmanager
        async def gated_lock(channel: Channel) -> AsyncIterator[None]:
            reached_lock.set()
            await release.wait()
            async with ordering_lock(channel):
                yield

        monkeypatch.setattr(registry, "ordering_lock", gated_lock)

        ws = FakeWebSocket(query_params={"token": token_for(alice)})
        task = asyncio.create_task(gateway.handle(ws))
        ws.push({"destination": SEND_MESSAGE_DESTINATION, "body": {"content": "last words"}})
        await asyncio.wait_for(reached_lock.wait(), timeout=2)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert registry.connection_count == 1
        release.set()

        frames = await wait_for(listener.websocket, 2)
        assert frames[1]["content"] == "last words"
        assert await count_messages(db_session) == 1
