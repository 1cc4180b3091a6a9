"""User directory model."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from src.taskhub.models.base import utc_now
from src.taskhub.models.enums import UserRole


class User(SQLModel, table=True):
    """Account. Email is the identity key carried in access tokens."""

    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)
    first_name: str = Field(max_length=50)
    last_name: str = Field(max_length=50)
    email: str = Field(max_length=100, unique=True, index=True)
    role: str = Field(default=UserRole.USER.value, max_length=20)
    avatar_url: str | None = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
