"""Repositories for Project and ProjectMembership."""

from sqlalchemy import union
from sqlmodel import select

from src.taskhub.models import Project, ProjectMembership
from src.taskhub.repositories.base import BaseRepository


class ProjectRepository(BaseRepository[Project]):
    """Repository for Project entity."""

    model = Project

    async def list_accessible_ids(self, user_id: int) -> list[int]:
        """Ids of projects the user owns or holds a membership in."""
        owned = select(Project.id).where(Project.owner_id == user_id)
        joined = select(ProjectMembership.project_id).where(ProjectMembership.user_id == user_id)
        result = await self.session.execute(union(owned, joined))
        return sorted(row[0] for row in result.all())


class ProjectMembershipRepository(BaseRepository[ProjectMembership]):
    """Repository for project memberships (composite key project_id + user_id)."""

    model = ProjectMembership

    async def get_membership(self, project_id: int, user_id: int) -> ProjectMembership | None:
        """Get membership for a user in a project."""
        result = await self.session.execute(
            select(ProjectMembership).where(
                ProjectMembership.project_id == project_id,
                ProjectMembership.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()
