"""Database session management."""

from collections.abc import AsyncGenerator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from src.taskhub.core.db.engine import get_engine

# Opens a fresh session; used where a session cannot be tied to a request
# (one per websocket frame).
SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


@asynccontextmanager
async def get_session(engine: AsyncEngine | None = None) -> AsyncGenerator[AsyncSession]:
    """Create a database session.

    Args:
        engine: Optional engine override for testing.

    Yields:
        AsyncSession bound to the engine. The caller commits; anything left
        uncommitted is rolled back when the context exits.
    """
    if engine is None:
        engine = get_engine()

    session_factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session


def session_factory_for(engine: AsyncEngine) -> SessionFactory:
    """Build a SessionFactory bound to a specific engine."""

    def factory() -> AbstractAsyncContextManager[AsyncSession]:
        return get_session(engine)

    return factory
