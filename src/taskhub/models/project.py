"""Project and membership models."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from src.taskhub.models.base import utc_now
from src.taskhub.models.enums import ProjectRole, ProjectStatus


class Project(SQLModel, table=True):
    """Project owned by a single user; other users join via ProjectMembership."""

    __tablename__ = "projects"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    owner_id: int = Field(foreign_key="users.id", index=True)
    status: str = Field(default=ProjectStatus.NOT_STARTED.value, max_length=20)
    created_at: datetime = Field(default_factory=utc_now)


class ProjectMembership(SQLModel, table=True):
    """Junction table granting a user a role within a project."""

    __tablename__ = "project_memberships"

    project_id: int = Field(foreign_key="projects.id", primary_key=True)
    user_id: int = Field(foreign_key="users.id", primary_key=True, index=True)
    role: str = Field(default=ProjectRole.MEMBER.value, max_length=20)
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def role_enum(self) -> ProjectRole:
        """Get role as ProjectRole enum."""
        return ProjectRole(self.role)
