"""Channel registry: who is subscribed to what, and fan-out to them.

Created once per application in the lifespan and shared through
``app.state``. All bookkeeping happens under a plain lock that is never held
across an ``await``; publish copies the subscriber set and delivers outside
the lock, so subscribe/unsubscribe may run concurrently with fan-out.
"""

import asyncio
import json
import threading
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from src.taskhub.core.logging import get_logger
from src.taskhub.realtime.channels import Channel
from src.taskhub.realtime.connection import ChatConnection

logger = get_logger(__name__)


@dataclass
class _OrderingLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class ChannelRegistry:
    """Maps channels to live connections and delivers published frames."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[Channel, set[ChatConnection]] = {}
        self._channels_by_connection: dict[ChatConnection, set[Channel]] = {}
        self._connections: set[ChatConnection] = set()
        self._ordering_locks: dict[Channel, _OrderingLock] = {}
        self._closed = False

    # --- connections ---

    def register(self, connection: ChatConnection) -> None:
        """Track an open connection so ``close`` can reach it."""
        with self._lock:
            if self._closed:
                raise RuntimeError("Channel registry is closed")
            self._connections.add(connection)

    def unregister(self, connection: ChatConnection) -> list[Channel]:
        """Forget a connection and drop all of its subscriptions."""
        channels = self.unsubscribe_all(connection)
        with self._lock:
            self._connections.discard(connection)
        return channels

    @property
    def connection_count(self) -> int:
        with self._lock:
            return len(self._connections)

    # --- subscriptions ---

    def subscribe(self, connection: ChatConnection, channel: Channel) -> bool:
        """Add a subscription. Returns False if it already existed."""
        with self._lock:
            subscribers = self._subscribers.setdefault(channel, set())
            if connection in subscribers:
                return False
            subscribers.add(connection)
            self._channels_by_connection.setdefault(connection, set()).add(channel)
        logger.debug("Subscribed", connection_id=connection.id, channel=channel.key)
        return True

    def unsubscribe(self, connection: ChatConnection, channel: Channel) -> bool:
        """Remove a subscription. Returns False if there was none."""
        with self._lock:
            removed = self._remove(connection, channel)
        if removed:
            logger.debug("Unsubscribed", connection_id=connection.id, channel=channel.key)
        return removed

    def unsubscribe_all(self, connection: ChatConnection) -> list[Channel]:
        """Remove every subscription held by ``connection``."""
        with self._lock:
            channels = list(self._channels_by_connection.get(connection, ()))
            for channel in channels:
                self._remove(connection, channel)
        return channels

    def _remove(self, connection: ChatConnection, channel: Channel) -> bool:
        # Caller holds self._lock
        subscribers = self._subscribers.get(channel)
        if subscribers is None or connection not in subscribers:
            return False
        subscribers.discard(connection)
        if not subscribers:
            del self._subscribers[channel]
        channels = self._channels_by_connection.get(connection)
        if channels is not None:
            channels.discard(channel)
            if not channels:
                del self._channels_by_connection[connection]
        return True

    def channels_of(self, connection: ChatConnection) -> frozenset[Channel]:
        with self._lock:
            return frozenset(self._channels_by_connection.get(connection, ()))

    def subscriber_count(self, channel: Channel) -> int:
        with self._lock:
            return len(self._subscribers.get(channel, ()))

    # --- fan-out ---

    @asynccontextmanager
    async def ordering_lock(self, channel: Channel) -> AsyncIterator[None]:
        """Serialize append-then-publish for one channel.

        A channel's lock lives only while some task holds or waits on it.
        """
        with self._lock:
            entry = self._ordering_locks.get(channel)
            if entry is None:
                entry = self._ordering_locks[channel] = _OrderingLock()
            entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            with self._lock:
                entry.users -= 1
                if entry.users == 0:
                    del self._ordering_locks[channel]

    @property
    def ordering_lock_count(self) -> int:
        with self._lock:
            return len(self._ordering_locks)

    def publish(self, channel: Channel, payload: Mapping[str, Any]) -> int:
        """Queue ``payload`` for every subscriber of ``channel``.

        Subscribers whose buffer is full are evicted: removed from every
        channel and closed. Publishing to a channel nobody listens to is a
        no-op. Returns the number of connections the frame was queued for.
        """
        with self._lock:
            subscribers = list(self._subscribers.get(channel, ()))
        if not subscribers:
            return 0

        frame = json.dumps(payload)
        delivered = 0
        for connection in subscribers:
            if connection.offer(frame):
                delivered += 1
            else:
                self.evict(connection)
        return delivered

    def evict(self, connection: ChatConnection) -> None:
        """Drop a subscriber that cannot keep up and close its socket."""
        channels = self.unsubscribe_all(connection)
        logger.warning(
            "Evicting slow chat subscriber",
            connection_id=connection.id,
            channels=[channel.key for channel in channels],
        )
        connection.request_close()

    async def close(self) -> None:
        """Close every tracked connection. Called on application shutdown."""
        with self._lock:
            self._closed = True
            connections = list(self._connections)
            self._connections.clear()
            self._subscribers.clear()
            self._channels_by_connection.clear()
        for connection in connections:
            await connection.close(code=1001)
        logger.info("Channel registry closed", connections=len(connections))
