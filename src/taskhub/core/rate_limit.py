"""Token-bucket rate limiting with optional Redis backend.

Two consumers share the same bucket implementation:
1. Global HTTP middleware keyed on client IP (DoS protection)
2. The chat gateway, keyed on user id, throttling websocket sends

Redis makes the buckets shared across workers; without it each process keeps
its own buckets in memory. REST endpoints additionally use slowapi decorators.
"""

import asyncio
import time
from collections import defaultdict
from dataclasses import dataclass

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from src.taskhub.core.config import get_settings
from src.taskhub.core.logging import get_logger
from src.taskhub.core.redis import get_redis

logger = get_logger(__name__)

EXEMPT_PATHS = ("/health", "/metrics", "/docs", "/openapi.json", "/redoc")

_rate_limit_buckets: dict[str, dict[str, float]] = defaultdict(dict)
_rate_limit_lock = asyncio.Lock()

# Atomic check-and-decrement on the Redis server
_REDIS_TOKEN_BUCKET_SCRIPT = """
local key = KEYS[1]
local rate = tonumber(ARGV[1])
local burst = tonumber(ARGV[2])
local now = tonumber(ARGV[3])
local ttl = tonumber(ARGV[4])

local bucket = redis.call('HMGET', key, 'tokens', 'last_update')
local tokens = tonumber(bucket[1]) or burst
local last_update = tonumber(bucket[2]) or now

tokens = math.min(burst, tokens + (now - last_update) * rate)

local allowed = 0
if tokens >= 1 then
    tokens = tokens - 1
    allowed = 1
end
redis.call('HMSET', key, 'tokens', tokens, 'last_update', now)
redis.call('EXPIRE', key, ttl)
return allowed
"""

_script_sha: str | None = None


@dataclass(frozen=True)
class BucketSpec:
    """Refill rate (tokens/second) and capacity of a token bucket."""

    rate: float
    burst: int

    @property
    def ttl(self) -> int:
        # Long enough to refill the whole bucket, plus slack
        return int(self.burst / self.rate) + 60


def get_rate_limit_key(request: Request) -> str:
    """Generate rate limit key from client IP only.

    Never include user-controlled headers in the key: rotating them would
    create unlimited fresh buckets.
    """
    return get_remote_address(request) or "unknown"


def create_limiter() -> Limiter:
    """Create the slowapi limiter for per-endpoint limits.

    Uses Redis if configured, otherwise in-memory storage.
    Disabled in testing environment.
    """
    settings = get_settings()

    if settings.app_env == "testing":
        logger.info("Rate limiter disabled (testing environment)")
        return Limiter(key_func=get_rate_limit_key, enabled=False)

    if settings.redis_url:
        logger.info("Rate limiter using Redis backend")
        return Limiter(key_func=get_rate_limit_key, storage_uri=settings.redis_url)

    logger.info("Rate limiter using in-memory backend (not distributed)")
    return Limiter(key_func=get_rate_limit_key)


limiter = create_limiter()


async def _check_in_memory(key: str, limits: BucketSpec) -> bool:
    """In-process token bucket. Returns True if the call is allowed."""
    now = time.time()

    async with _rate_limit_lock:
        bucket = _rate_limit_buckets[key]
        if not bucket:
            bucket["tokens"] = float(limits.burst)
            bucket["last_update"] = now

        elapsed = now - bucket["last_update"]
        bucket["tokens"] = min(limits.burst, bucket["tokens"] + elapsed * limits.rate)
        bucket["last_update"] = now

        if bucket["tokens"] >= 1:
            bucket["tokens"] -= 1
            return True
        return False


async def _get_or_register_script(redis: object) -> str:
    """Register the Lua script once, then execute it via EVALSHA."""
    global _script_sha
    if _script_sha is None:
        _script_sha = await redis.script_load(_REDIS_TOKEN_BUCKET_SCRIPT)  # type: ignore[attr-defined]
    return _script_sha


async def _check_redis(redis: object, key: str, limits: BucketSpec) -> bool:
    """Distributed token bucket. Returns True if the call is allowed."""
    script_sha = await _get_or_register_script(redis)
    result = await redis.evalsha(  # type: ignore[attr-defined]
        script_sha,
        1,
        key,
        str(limits.rate),
        str(limits.burst),
        str(time.time()),
        str(limits.ttl),
    )
    return bool(result == 1)


async def check_rate_limit(key: str, limits: BucketSpec) -> bool:
    """Consume one token from the bucket named ``key``.

    Uses Redis when available and falls back to in-memory buckets if Redis is
    missing or errors. Always allows in the testing environment.
    """
    global _script_sha

    if get_settings().app_env == "testing":
        return True

    redis = await get_redis()
    if redis:
        try:
            return await _check_redis(redis, key, limits)
        except Exception as e:
            logger.warning(
                "Redis rate limit check failed, falling back to in-memory",
                error=str(e),
                key=key,
            )
            # Redis may have restarted and lost the script
            _script_sha = None

    return await _check_in_memory(key, limits)


def global_bucket() -> BucketSpec:
    settings = get_settings()
    return BucketSpec(
        rate=settings.global_rate_limit_per_second,
        burst=settings.global_rate_limit_burst,
    )


def chat_send_bucket() -> BucketSpec:
    settings = get_settings()
    return BucketSpec(rate=settings.chat_send_rate_per_second, burst=settings.chat_send_burst)


async def check_chat_send_allowed(user_id: int) -> bool:
    """Throttle websocket sends per user."""
    return await check_rate_limit(f"chat_send:{user_id}", chat_send_bucket())


async def global_rate_limit_middleware(request: Request, call_next: object) -> Response:
    """Global per-IP rate limiting for HTTP requests.

    Monitoring and docs endpoints are exempt.
    """
    if request.url.path in EXEMPT_PATHS:
        return await call_next(request)  # type: ignore[misc, operator, no-any-return]

    client_ip = get_rate_limit_key(request)

    if not await check_rate_limit(f"global_ratelimit:{client_ip}", global_bucket()):
        logger.warning(
            "Global rate limit exceeded",
            client_ip=client_ip,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=429,
            content={
                "detail": "Too many requests. Please slow down.",
                "retry_after": 1,
            },
            headers={"Retry-After": "1"},
        )

    return await call_next(request)  # type: ignore[misc, operator, no-any-return]
