"""Integration test fixtures for database and HTTP client operations.

A file-backed SQLite database (aiosqlite) stands in for PostgreSQL so the
suite runs without external services. NullPool gives every session its own
connection, as the production pool does.
Uses polyfactory for type-safe test data generation.
"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

import src.taskhub.core.db.engine as db_engine_module
from src.taskhub.core import redis as redis_core
from src.taskhub.core.db import SessionFactory, get_session, session_factory_for
from src.taskhub.main import create_app
from src.taskhub.models import Project, User
from src.taskhub.realtime.gateway import ChatGateway
from src.taskhub.realtime.registry import ChannelRegistry
from tests.helpers import create_project, create_user


@pytest.fixture(autouse=True)
async def _reset_redis_between_tests() -> AsyncGenerator[None]:
    """Reset Redis state between tests to prevent event loop issues."""
    redis_core.reset_redis_state()
    yield
    await redis_core.close_redis()


def sqlite_url(directory: Path) -> str:
    return f"sqlite+aiosqlite:///{directory / 'taskhub-test.db'}"


@pytest.fixture
async def engine(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AsyncGenerator[AsyncEngine]:
    """Fresh database per test, installed as the application engine."""
    test_engine = create_async_engine(sqlite_url(tmp_path), poolclass=NullPool)
    async with test_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    monkeypatch.setattr(db_engine_module, "_engine", test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession]:
    """Provide an async session for arranging and inspecting data.

    Tests must explicitly commit; helpers in tests/helpers.py do so.
    """
    async with get_session(engine) as session:
        yield session


@pytest.fixture
def session_factory(engine: AsyncEngine) -> SessionFactory:
    return session_factory_for(engine)


@pytest.fixture
def registry() -> ChannelRegistry:
    return ChannelRegistry()


@pytest.fixture
def gateway(registry: ChannelRegistry, session_factory: SessionFactory) -> ChatGateway:
    return ChatGateway(registry, session_factory, queue_size=50)


@pytest.fixture
async def app(engine: AsyncEngine, registry: ChannelRegistry, gateway: ChatGateway) -> AsyncGenerator[FastAPI]:
    """Application with the chat objects the lifespan would normally create.

    ASGITransport does not run the lifespan, so they are installed here.
    """
    application = create_app()
    application.state.chat_registry = registry
    application.state.chat_gateway = gateway
    yield application
    await registry.close()


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


# --- Directory fixtures ---


@pytest.fixture
async def alice(db_session: AsyncSession) -> User:
    return await create_user(db_session, first_name="Alice", last_name="Smith", email="a@example.com")


@pytest.fixture
async def bob(db_session: AsyncSession) -> User:
    return await create_user(db_session, first_name="Bob", last_name="Jones", email="b@example.com")


@pytest.fixture
async def carol(db_session: AsyncSession) -> User:
    return await create_user(db_session, first_name="Carol", last_name="White", email="c@example.com")


@pytest.fixture
async def alice_project(db_session: AsyncSession, alice: User) -> Project:
    """Project owned by alice with no other members."""
    return await create_project(db_session, alice, name="Apollo")
