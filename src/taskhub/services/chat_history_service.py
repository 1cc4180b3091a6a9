"""History query service: paginated, filtered reads over the message store.

Reads follow the same access rules as the live channels: the global channel
is open to every authenticated user, a project's history only to its owner
and members.
"""

from src.taskhub.core.config import get_settings
from src.taskhub.core.exceptions import ValidationError
from src.taskhub.core.validators import clamp_limit, parse_timestamp, validate_project_id
from src.taskhub.models import User
from src.taskhub.realtime.channels import Channel
from src.taskhub.repositories import MessageFilters, MessageRow, ProjectRepository
from src.taskhub.schemas import ChatHistoryPage, ChatHistoryRequest, ChatMessagePayload
from src.taskhub.services.access_control import (
    AccessIntent,
    ChatAccessController,
    ProjectCapability,
)
from src.taskhub.services.chat_service import MessageStore


def _payloads(rows: list[MessageRow]) -> list[ChatMessagePayload]:
    return [ChatMessagePayload.from_message(row.message, row.sender, row.project) for row in rows]


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


class HistoryQueryService:
    """Read-only facade translating client history requests into store queries."""

    def __init__(
        self,
        store: MessageStore,
        access: ChatAccessController,
        project_repo: ProjectRepository,
    ):
        self.store = store
        self.access = access
        self.project_repo = project_repo

    async def query(self, user: User, request: ChatHistoryRequest) -> ChatHistoryPage:
        """Run a filtered history query on behalf of ``user``.

        ``offset`` is converted to a page index by truncating division with
        the clamped ``limit``. Without ``project_id`` the query spans the
        global channel plus every project the caller owns or belongs to.

        Raises:
            ValidationError: Negative offset or malformed timestamp
            NotFoundError: ``project_id`` names no project
            AuthorizationError: Caller may not read that project
        """
        if request.offset < 0:
            raise ValidationError("offset must not be negative")

        settings = get_settings()
        limit = clamp_limit(request.limit, settings.chat_default_page_size, settings.chat_history_max_limit)
        page = request.offset // limit

        from_date = parse_timestamp(request.from_date, "fromDate").unwrap()
        to_date = parse_timestamp(request.to_date, "toDate").unwrap()
        project_id = validate_project_id(request.project_id).unwrap()

        if project_id is not None:
            await self.access.require_project(user.id, project_id, ProjectCapability.CHAT_READ)  # type: ignore[arg-type]
            project_ids: list[int] = [project_id]
            include_global = False
        else:
            project_ids = await self.project_repo.list_accessible_ids(user.id)  # type: ignore[arg-type]
            include_global = True

        filters = MessageFilters(
            from_date=from_date,
            to_date=to_date,
            sender_email=_clean(request.sender_email),
            keyword=_clean(request.search_keyword),
            project_ids=project_ids,
            include_global=include_global,
        )
        rows, total = await self.store.search(filters, page, limit)
        return ChatHistoryPage.build(_payloads(rows), total, page, limit)

    async def channel_page(
        self,
        user: User,
        project_id: int | None,
        page: int,
        size: int | None,
    ) -> ChatHistoryPage:
        """One page of a single channel, newest first."""
        await self.access.authorize(user, Channel.for_project(project_id), AccessIntent.READ)
        settings = get_settings()
        size = clamp_limit(size, settings.chat_default_page_size, settings.chat_history_max_limit)
        rows, total = await self.store.list_by_channel(project_id, page, size)
        return ChatHistoryPage.build(_payloads(rows), total, page, size)

    async def channel_since(
        self,
        user: User,
        project_id: int | None,
        since: str,
    ) -> list[ChatMessagePayload]:
        """Messages of a channel newer than ``since`` (ISO-8601), oldest first."""
        parsed = parse_timestamp(since, "since").unwrap()
        if parsed is None:
            raise ValidationError("since is required")
        await self.access.authorize(user, Channel.for_project(project_id), AccessIntent.READ)
        rows = await self.store.list_since(project_id, parsed)
        return _payloads(rows)
