from fastapi import APIRouter, HTTPException, status, Request

from app.api.deps import DB, CurrentUser
from app.models.audit_log import AuditAction
from app.schemas.auth import LoginRequest, TokenResponse
from app.schemas.base import DataResponse
from app.schemas.user import UserResponse
from app.services.auth_service import AuthService
from app.services.audit_service import AuditService

router = APIRouter()


@router.post("/login", response_model=TokenResponse)
async def login(
    request: Request,
    data: LoginRequest,
    db: DB,
):
    """
    Authenticate user and return an access token.
    """
    auth_service = AuthService(db)

    user = await auth_service.authenticate_user(data.username, data.password)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token, expires_in = auth_service.create_token(user)

    # Log the login
    await AuditService(db).log(
        AuditAction.READ, "auth", f"User {user.username} logged in.",
        entity_id=user.id,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )

    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        expires_in=expires_in,
        user=UserResponse.model_validate(user),
    )


@router.get("/me", response_model=DataResponse[UserResponse])
async def get_current_user_info(
    current_user: CurrentUser,
):
    """Get the authenticated user's profile."""
    return DataResponse[UserResponse](data=UserResponse.model_validate(current_user))
