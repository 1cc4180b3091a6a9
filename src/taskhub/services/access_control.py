"""Chat authorization.

Project permissions are decided by one policy function, ``project_policy``,
fed with the project row and the caller's membership row (if any). The
controller wraps it with the global-channel rule and the repository lookups.
"""

from enum import Enum

from src.taskhub.core.exceptions import AuthenticationError, AuthorizationError, NotFoundError
from src.taskhub.core.logging import get_logger
from src.taskhub.models import Project, ProjectMembership, ProjectRole, User
from src.taskhub.realtime.channels import Channel
from src.taskhub.repositories import ProjectMembershipRepository, ProjectRepository

logger = get_logger(__name__)


class AccessIntent(str, Enum):
    """What a caller wants to do with a channel."""

    READ = "read"
    WRITE = "write"


class ProjectCapability(str, Enum):
    """Operations on a project that require a permission check."""

    CHAT_READ = "chat_read"
    CHAT_WRITE = "chat_write"
    MANAGE_MEMBERS = "manage_members"
    DELETE_PROJECT = "delete_project"


# Owners hold every capability and have no membership row
_ROLE_CAPABILITIES: dict[ProjectRole, frozenset[ProjectCapability]] = {
    ProjectRole.MEMBER: frozenset({ProjectCapability.CHAT_READ, ProjectCapability.CHAT_WRITE}),
    ProjectRole.MANAGER: frozenset(
        {
            ProjectCapability.CHAT_READ,
            ProjectCapability.CHAT_WRITE,
            ProjectCapability.MANAGE_MEMBERS,
        }
    ),
}

_INTENT_CAPABILITY = {
    AccessIntent.READ: ProjectCapability.CHAT_READ,
    AccessIntent.WRITE: ProjectCapability.CHAT_WRITE,
}


def project_policy(
    actor_id: int,
    project: Project,
    membership: ProjectMembership | None,
    capability: ProjectCapability,
) -> bool:
    """Return True if ``actor_id`` holds ``capability`` on ``project``."""
    if project.owner_id == actor_id:
        return True
    if membership is None or membership.user_id != actor_id:
        return False
    return capability in _ROLE_CAPABILITIES.get(membership.role_enum, frozenset())


def capability_for(intent: AccessIntent) -> ProjectCapability:
    return _INTENT_CAPABILITY[intent]


class ChatAccessController:
    """Decides whether a user may read or write a chat channel."""

    def __init__(
        self,
        project_repo: ProjectRepository,
        membership_repo: ProjectMembershipRepository,
    ):
        self.project_repo = project_repo
        self.membership_repo = membership_repo

    async def can_access(self, user: User | None, channel: Channel, intent: AccessIntent) -> bool:
        """Boolean form of ``authorize``: denial of any kind is False."""
        try:
            await self.authorize(user, channel, intent)
        except (AuthenticationError, AuthorizationError, NotFoundError):
            return False
        return True

    async def authorize(self, user: User | None, channel: Channel, intent: AccessIntent) -> None:
        """Raise unless ``user`` may perform ``intent`` on ``channel``.

        Raises:
            AuthenticationError: Anonymous caller
            NotFoundError: The channel's project does not exist
            AuthorizationError: The caller is neither owner nor member
        """
        if user is None or user.id is None:
            raise AuthenticationError("Authentication required")

        if channel.project_id is None:
            return

        await self.require_project(user.id, channel.project_id, capability_for(intent))

    async def require_project(
        self, user_id: int, project_id: int, capability: ProjectCapability
    ) -> Project:
        """Load a project and check ``capability`` for ``user_id`` against it."""
        project = await self.project_repo.get_by_id(project_id)
        if project is None:
            raise NotFoundError("Project", "id", project_id)

        membership = None
        if project.owner_id != user_id:
            membership = await self.membership_repo.get_membership(project_id, user_id)

        if not project_policy(user_id, project, membership, capability):
            logger.info(
                "Project access denied",
                user_id=user_id,
                project_id=project_id,
                capability=capability.value,
            )
            raise AuthorizationError(
                f"You do not have permission to access chat for project {project_id}"
            )
        return project
