import secrets
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from src.taskhub.api.middlewares import setup_middlewares
from src.taskhub.api.v1.router import api_router, ws_router
from src.taskhub.core.config import get_settings
from src.taskhub.core.db import dispose_engine, get_session
from src.taskhub.core.exceptions import setup_exception_handlers
from src.taskhub.core.logging import get_logger, setup_logging
from src.taskhub.core.rate_limit import limiter
from src.taskhub.core.redis import close_redis, redis_status
from src.taskhub.realtime.gateway import ChatGateway
from src.taskhub.realtime.registry import ChannelRegistry

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan - startup and shutdown."""
    settings = get_settings()
    setup_logging(settings.debug, service=settings.app_name)
    logger.info(f"Starting {settings.app_name}")

    registry = ChannelRegistry()
    app.state.chat_registry = registry
    app.state.chat_gateway = ChatGateway(registry, get_session)

    yield

    logger.info("Closing connections...", chat_connections=registry.connection_count)
    await registry.close()
    await close_redis()
    await dispose_engine()
    logger.info("Shutdown complete")


OPENAPI_TAGS = [
    {"name": "chat", "description": "Chat history and websocket information"},
]


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Project chat with real-time, project-scoped fan-out",
        version="0.1.0",
        openapi_tags=OPENAPI_TAGS,
        lifespan=lifespan,
        openapi_url="/openapi.json" if settings.enable_openapi else None,
    )

    setup_exception_handlers(app)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]

    setup_middlewares(app, settings)

    app.include_router(api_router)
    app.include_router(ws_router)

    # Prometheus metrics instrumentation
    instrumentator = Instrumentator().instrument(app)

    # Protect /metrics endpoint if API key is configured
    if settings.metrics_api_key:
        api_key_header = APIKeyHeader(name="X-Metrics-Key", auto_error=False)

        async def verify_metrics_key(api_key: str | None = Depends(api_key_header)) -> None:
            if (
                api_key is None
                or settings.metrics_api_key is None
                or not secrets.compare_digest(api_key, settings.metrics_api_key)
            ):
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Invalid or missing metrics API key",
                )

        instrumentator.expose(app, endpoint="/metrics", dependencies=[Depends(verify_metrics_key)])
    else:
        instrumentator.expose(app, endpoint="/metrics")

    @app.get("/health")
    async def health(request: Request) -> JSONResponse:
        """Liveness plus dependency probes.

        The database is required; Redis only degrades the service since rate
        limits fall back to per-process buckets.
        """
        database = await _database_status()
        redis = await redis_status()

        if not database.startswith("healthy"):
            overall = "unhealthy"
        elif redis.startswith("unhealthy"):
            overall = "degraded"
        else:
            overall = "healthy"

        body: dict[str, Any] = {
            "status": overall,
            "database": database,
            "redis": redis,
            "timestamp": time.time(),
        }
        registry = getattr(request.app.state, "chat_registry", None)
        if registry is not None:
            body["chat_connections"] = registry.connection_count

        return JSONResponse(content=body, status_code=200 if overall == "healthy" else 503)

    return app


async def _database_status() -> str:
    try:
        async with get_session() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning("Database health probe failed", error=str(e))
        return f"unhealthy: {e}"
    return "healthy"


app = create_app()
