"""Base repository with common CRUD operations."""

from typing import Any

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel, select


class BaseRepository[ModelType: SQLModel]:
    """Base repository providing common database operations.

    Repositories handle data access only. Transaction control (commit)
    should be done in the service layer.
    """

    model: type[ModelType]

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, id: int) -> ModelType | None:
        """Get a record by its primary key."""
        return await self.session.get(self.model, id)

    def add(self, entity: ModelType) -> None:
        """Add entity to session (no flush/commit)."""
        self.session.add(entity)

    async def count(self, query: Any) -> int:
        """Count the rows a query would return, ignoring ordering and limits."""
        count_query = select(func.count()).select_from(query.order_by(None).subquery())
        result = await self.session.execute(count_query)
        return int(result.scalar_one())

    async def fetch_page(
        self,
        query: Any,
        page: int,
        size: int,
    ) -> tuple[list[Any], int]:
        """Execute offset-based pagination on an already-ordered query.

        Args:
            query: The ordered SQLAlchemy select to paginate
            page: Zero-based page index
            size: Page size (already clamped by the caller)

        Returns:
            Tuple of (rows for this page, total row count)
        """
        total = await self.count(query)
        result = await self.session.execute(query.offset(page * size).limit(size))
        return list(result.all()), total
