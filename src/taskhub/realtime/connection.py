"""One live websocket connection and its bounded outbound buffer."""

import asyncio
import contextlib
import json
from collections.abc import Mapping
from enum import Enum
from typing import Any
from uuid import uuid4

from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from src.taskhub.core.logging import get_logger
from src.taskhub.models import User

logger = get_logger(__name__)

# Close code sent to a subscriber that could not keep up
CLOSE_TRY_AGAIN_LATER = 1013


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class ChatConnection:
    """Wraps a websocket with an outbound queue drained by a writer task.

    Publishers never await a slow client: ``offer`` either enqueues the frame
    or reports the buffer full, and the registry evicts the connection.
    """

    def __init__(
        self,
        websocket: WebSocket,
        queue_size: int,
        connection_id: str | None = None,
    ):
        self.websocket = websocket
        self.id = connection_id or uuid4().hex
        self.user: User | None = None
        self.state = ConnectionState.CONNECTING
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self._writer: asyncio.Task[None] | None = None
        self._closer: asyncio.Task[None] | None = None

    def __repr__(self) -> str:
        return f"ChatConnection(id={self.id!r}, state={self.state.value})"

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def is_open(self) -> bool:
        return self.state == ConnectionState.OPEN

    def authenticate(self, user: User | None) -> None:
        """Record the handshake outcome. Anonymous connections stay usable."""
        self.user = user
        self.state = ConnectionState.AUTHENTICATED if user else ConnectionState.ANONYMOUS

    async def open(self) -> None:
        """Accept the websocket and start draining the outbound queue."""
        await self.websocket.accept()
        self._writer = asyncio.create_task(self._drain(), name=f"chat-writer-{self.id}")
        self.state = ConnectionState.OPEN

    def offer(self, payload: Mapping[str, Any] | str) -> bool:
        """Queue a frame without blocking. False if closed or the buffer is full."""
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return False
        frame = payload if isinstance(payload, str) else json.dumps(payload)
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            return False
        return True

    async def _drain(self) -> None:
        while True:
            frame = await self._queue.get()
            try:
                await self.websocket.send_text(frame)
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                logger.info("Chat connection send failed", connection_id=self.id, error=str(e))
                self.state = ConnectionState.CLOSING
                return

    def request_close(self, code: int = CLOSE_TRY_AGAIN_LATER) -> None:
        """Schedule ``close`` from synchronous code (e.g. during publish)."""
        if self._closer is None and self.state != ConnectionState.CLOSED:
            self.state = ConnectionState.CLOSING
            self._closer = asyncio.get_running_loop().create_task(self.close(code))

    async def close(self, code: int = 1000) -> None:
        """Stop the writer and close the socket. Safe to call more than once."""
        if self.state == ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSING

        writer = self._writer
        if writer is not None and writer is not asyncio.current_task() and not writer.done():
            writer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await writer

        if self.websocket.application_state == WebSocketState.CONNECTED:
            try:
                await self.websocket.close(code=code)
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                logger.debug("Chat connection already gone", connection_id=self.id, error=str(e))
        self.state = ConnectionState.CLOSED
