"""Test factories for generating test data.

Re-exports all factories for convenient imports:
    from tests.factories import UserFactory, ProjectFactory, ...
"""

from tests.factories.base import BaseFactory, unique_suffix, utc_now
from tests.factories.chat import ChatMessageFactory
from tests.factories.project import ProjectFactory, ProjectMembershipFactory
from tests.factories.user import UserFactory

__all__ = [
    # Base
    "BaseFactory",
    "unique_suffix",
    "utc_now",
    # User
    "UserFactory",
    # Project
    "ProjectFactory",
    "ProjectMembershipFactory",
    # Chat
    "ChatMessageFactory",
]
