"""Optional Redis connection.

Redis only backs the token buckets shared between workers. Without it, or
while it is down, each process limits on its own and the chat keeps working.
"""

from redis.asyncio import ConnectionPool, Redis

from src.taskhub.core.config import get_settings
from src.taskhub.core.logging import get_logger

logger = get_logger(__name__)

_pool: ConnectionPool | None = None
_redis: Redis | None = None
# Set after the first connection attempt; a failed attempt is not retried
# until close_redis() runs.
_connection_attempted: bool = False


async def _connect(url: str, pool_size: int) -> Redis:
    global _pool, _redis
    _pool = ConnectionPool.from_url(url, max_connections=pool_size, decode_responses=True)
    _redis = Redis(connection_pool=_pool)
    await _redis.ping()  # type: ignore[misc]
    return _redis


async def get_redis() -> Redis | None:
    """Shared client, connected on first use. None when Redis is unusable."""
    global _connection_attempted

    if _redis is not None:
        return _redis
    if _connection_attempted:
        return None
    _connection_attempted = True

    settings = get_settings()
    if not settings.redis_url:
        logger.info("Redis not configured, rate limits are per process")
        return None

    try:
        client = await _connect(settings.redis_url, settings.redis_pool_size)
    except Exception as e:
        logger.warning("Redis unavailable, rate limits are per process", error=str(e))
        await close_redis()
        # close_redis clears the flag; keep it set so we do not retry per call
        _connection_attempted = True
        return None

    logger.info("Redis connected")
    return client


async def redis_status() -> str:
    """Probe Redis for the health endpoint."""
    client = await get_redis()
    if client is None:
        return "not_configured"
    try:
        await client.ping()  # type: ignore[misc]
    except Exception as e:
        return f"unhealthy: {e}"
    return "healthy"


async def close_redis() -> None:
    """Release the pool. Called on shutdown; allows a fresh connection attempt."""
    global _pool, _redis, _connection_attempted

    if _redis is not None:
        await _redis.aclose()
        logger.info("Redis connection closed")
    if _pool is not None:
        await _pool.disconnect()

    _redis = None
    _pool = None
    _connection_attempted = False


def reset_redis_state() -> None:
    """Forget the client without closing it (tests swap event loops)."""
    global _pool, _redis, _connection_attempted
    _redis = None
    _pool = None
    _connection_attempted = False
