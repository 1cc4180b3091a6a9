"""Repository for ChatMessage entity."""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, NamedTuple

from sqlalchemy import false, func, or_
from sqlmodel import col, select

from src.taskhub.models import ChatMessage, Project, User
from src.taskhub.repositories.base import BaseRepository


class MessageRow(NamedTuple):
    """A message together with the rows needed to render it."""

    message: ChatMessage
    sender: User
    project: Project | None


@dataclass(frozen=True)
class MessageFilters:
    """Optional, AND-combined constraints for a history query.

    A filter left at None places no constraint. ``project_ids`` and
    ``include_global`` together define which scopes are searched; leaving
    ``project_ids`` at None with ``include_global`` set searches every scope.
    """

    from_date: datetime | None = None
    to_date: datetime | None = None
    sender_email: str | None = None
    keyword: str | None = None
    project_ids: Sequence[int] | None = None
    include_global: bool = True


def scope_clause(project_id: int | None) -> Any:
    """WHERE clause selecting a single channel."""
    if project_id is None:
        return col(ChatMessage.project_id).is_(None)
    return col(ChatMessage.project_id) == project_id


def _rows_query() -> Any:
    return (
        select(ChatMessage, User, Project)
        .join(User, col(User.id) == col(ChatMessage.sender_id))
        .outerjoin(Project, col(Project.id) == col(ChatMessage.project_id))
    )


def _newest_first(query: Any) -> Any:
    return query.order_by(col(ChatMessage.timestamp).desc(), col(ChatMessage.id).desc())


def _to_rows(rows: Sequence[Any]) -> list[MessageRow]:
    return [MessageRow(message, sender, project) for message, sender, project in rows]


class ChatMessageRepository(BaseRepository[ChatMessage]):
    """Append-only access to chat messages."""

    model = ChatMessage

    async def latest_timestamp(self, project_id: int | None) -> datetime | None:
        """Timestamp of the newest message in a channel, if any."""
        result = await self.session.execute(
            select(func.max(ChatMessage.timestamp)).where(scope_clause(project_id))
        )
        return result.scalar_one_or_none()

    async def list_by_scope(
        self, project_id: int | None, page: int, size: int
    ) -> tuple[list[MessageRow], int]:
        """Page through one channel, newest first."""
        query = _newest_first(_rows_query().where(scope_clause(project_id)))
        rows, total = await self.fetch_page(query, page, size)
        return _to_rows(rows), total

    async def list_since(self, project_id: int | None, since: datetime) -> list[MessageRow]:
        """Messages in one channel strictly newer than ``since``, oldest first."""
        query = (
            _rows_query()
            .where(scope_clause(project_id), col(ChatMessage.timestamp) > since)
            .order_by(col(ChatMessage.timestamp).asc(), col(ChatMessage.id).asc())
        )
        result = await self.session.execute(query)
        return _to_rows(result.all())

    async def search(
        self, filters: MessageFilters, page: int, size: int
    ) -> tuple[list[MessageRow], int]:
        """Filtered history across the scopes named in ``filters``, newest first."""
        query = _rows_query()

        if filters.project_ids is not None:
            scopes: list[Any] = []
            if filters.project_ids:
                scopes.append(col(ChatMessage.project_id).in_(list(filters.project_ids)))
            if filters.include_global:
                scopes.append(col(ChatMessage.project_id).is_(None))
            query = query.where(or_(*scopes) if scopes else false())
        elif not filters.include_global:
            query = query.where(col(ChatMessage.project_id).is_not(None))

        if filters.from_date is not None:
            query = query.where(col(ChatMessage.timestamp) >= filters.from_date)
        if filters.to_date is not None:
            query = query.where(col(ChatMessage.timestamp) <= filters.to_date)
        if filters.sender_email:
            query = query.where(func.lower(User.email) == filters.sender_email.lower())
        if filters.keyword:
            query = query.where(col(ChatMessage.content).icontains(filters.keyword, autoescape=True))

        rows, total = await self.fetch_page(_newest_first(query), page, size)
        return _to_rows(rows), total
