from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User
from app.core.security import verify_password, create_access_token
from app.config import settings


class AuthService:
    """Authentication service for user login and token issue."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def authenticate_user(
        self,
        username: str,
        password: str
    ) -> Optional[User]:
        """
        Authenticate a user by username and password.

        Args:
            username: Login name
            password: Plain text password

        Returns:
            User object if authentication successful, None otherwise
        """
        result = await self.db.execute(
            select(User).where(User.username == username.strip())
        )
        user = result.scalar_one_or_none()

        if user is None:
            return None

        if not verify_password(password, user.password_hash):
            return None

        if not user.is_active:
            return None

        return user

    def create_token(self, user: User) -> Tuple[str, int]:
        """
        Create an access token for a user.

        Returns:
            Tuple of (access_token, expires_in_seconds)
        """
        access_token = create_access_token(
            subject=user.id,
            additional_claims={"username": user.username, "role": user.role},
        )
        return access_token, settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60

    async def get_active_user(self, user_id: int) -> Optional[User]:
        user = await self.db.get(User, user_id)
        if user is None or not user.is_active:
            return None
        return user
