"""Authentication dependencies."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from src.taskhub.api.dependencies.repositories import UserRepo
from src.taskhub.core.logging import bind_user_context
from src.taskhub.core.security import extract_bearer_token
from src.taskhub.models import User
from src.taskhub.services.identity_service import IdentityService


async def get_current_user(
    user_repo: UserRepo,
    authorization: Annotated[str | None, Header()] = None,
) -> User:
    """Validate the bearer token and return the user it was issued for."""
    token = extract_bearer_token(authorization)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await IdentityService(user_repo).resolve_token(token)
    if user is None or user.id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    bind_user_context(user.id, user.email)
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
