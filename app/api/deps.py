from typing import Annotated, Optional
import logging

from fastapi import Depends, Header, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.core.actor import ActorContext
from app.core.security import verify_access_token
from app.models.user import User, UserRole
from app.services.auth_service import AuthService


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """
    Dependency to get the current authenticated user.
    Validates the JWT token and returns the active user.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        raise credentials_exception

    user_id = verify_access_token(credentials.credentials)
    if user_id is None:
        logger.warning("Token verification failed - invalid or expired token")
        raise credentials_exception

    try:
        user_pk = int(user_id)
    except ValueError:
        logger.warning(f"Invalid user_id in token: {user_id}")
        raise credentials_exception

    user = await AuthService(db).get_active_user(user_pk)
    if user is None:
        logger.warning(f"User {user_id} not found or deactivated")
        raise credentials_exception

    return user


async def get_actor(
    request: Request,
    user: Annotated[User, Depends(get_current_user)],
) -> ActorContext:
    """
    Build the ActorContext passed into every service call.

    The actor is also left on request.state so failure audits written by the
    exception handlers can attribute the error.
    """
    actor = ActorContext(
        user_id=user.id,
        role=UserRole(user.role),
        username=user.username,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    request.state.actor = actor
    return actor


# Type aliases for cleaner endpoint signatures
DB = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[User, Depends(get_current_user)]
Actor = Annotated[ActorContext, Depends(get_actor)]
IdempotencyKey = Annotated[Optional[str], Header(alias="Idempotency-Key")]
