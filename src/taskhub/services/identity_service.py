"""Resolve bearer credentials to directory users."""

from src.taskhub.core.logging import get_logger
from src.taskhub.core.security import ACCESS_TOKEN_TYPE, decode_token
from src.taskhub.models import User
from src.taskhub.repositories import UserRepository

logger = get_logger(__name__)


class IdentityService:
    """Maps an access token to the User it was issued for.

    Every failure (bad signature, expired, wrong type, unknown email) yields
    None; callers decide whether that means 401 or an anonymous connection.
    """

    def __init__(self, user_repo: UserRepository):
        self.user_repo = user_repo

    async def resolve_token(self, token: str | None) -> User | None:
        if not token:
            return None

        payload = decode_token(token)
        if payload is None:
            logger.debug("Rejected access token: invalid or expired")
            return None

        if payload.get("type") != ACCESS_TOKEN_TYPE:
            logger.debug("Rejected access token: wrong type", token_type=payload.get("type"))
            return None

        email = payload.get("sub")
        if not email or not isinstance(email, str):
            return None

        user = await self.user_repo.get_by_email(email)
        if user is None:
            logger.debug("Rejected access token: unknown subject")
        return user
