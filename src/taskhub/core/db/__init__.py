"""Database utilities - engine and session."""

from src.taskhub.core.db.engine import dispose_engine, get_engine
from src.taskhub.core.db.session import SessionFactory, get_session, session_factory_for

__all__ = [
    # Engine
    "dispose_engine",
    "get_engine",
    # Session
    "SessionFactory",
    "get_session",
    "session_factory_for",
]
