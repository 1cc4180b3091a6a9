"""Model exports.

Import from here: `from src.taskhub.models import User, Project`
"""

from src.taskhub.models.chat import ChatMessage
from src.taskhub.models.enums import MessageType, ProjectRole, ProjectStatus, UserRole
from src.taskhub.models.project import Project, ProjectMembership
from src.taskhub.models.user import User

__all__ = [
    # Enums
    "MessageType",
    "ProjectRole",
    "ProjectStatus",
    "UserRole",
    # Models
    "ChatMessage",
    "Project",
    "ProjectMembership",
    "User",
]
