from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_current_principal, get_tenant_storage
from src.core.security import create_session_token, verify_password
from src.core.settings import get_app_settings
from src.db.session import get_async_session
from src.repositories.security import UserRepository
from src.schemas.auth import LoginRequest, SessionInfo, UserRead
from src.schemas.common import MessageResponse
from src.tenancy.context import Principal
from src.tenancy.errors import Unauthenticated
from src.tenancy.guard import IsolatedStorage

router = APIRouter(prefix="/auth", tags=["Auth"])


# PUBLIC_INTERFACE
@router.post(
    "/login",
    response_model=UserRead,
    summary="Login",
    description="Authenticate with username and password; the session is kept in an HTTP-only cookie.",
)
async def login(
    payload: LoginRequest,
    response: Response,
    session: AsyncSession = Depends(get_async_session),
) -> UserRead:
    """Verify credentials and set the session cookie."""
    settings = get_app_settings()
    user = await UserRepository(session).get_by_username(payload.username)
    if not user or not verify_password(payload.password, user.hashed_password):
        raise Unauthenticated("Invalid credentials")
    if not user.is_active:
        raise Unauthenticated("User is inactive")

    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=create_session_token(user.id, settings),
        max_age=settings.SESSION_EXPIRE_MINUTES * 60,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
    )
    return UserRead.model_validate(user)


# PUBLIC_INTERFACE
@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Logout",
    description="Clear the session cookie.",
)
async def logout(response: Response) -> MessageResponse:
    response.delete_cookie(get_app_settings().SESSION_COOKIE_NAME)
    return MessageResponse(message="Logged out")


# PUBLIC_INTERFACE
@router.get(
    "/me",
    response_model=SessionInfo,
    summary="Read current session",
    description="Return the current user together with the tenant and storage mode serving it.",
)
async def read_current_session(
    principal: Principal = Depends(get_current_principal),
    storage: IsolatedStorage = Depends(get_tenant_storage),
    session: AsyncSession = Depends(get_async_session),
) -> SessionInfo:
    user = await UserRepository(session).get_by_id(principal.user_id)
    return SessionInfo(
        user=UserRead.model_validate(user),
        tenant_id=storage.tenant_id,
        storage_mode=storage.context.storage_mode.value,
    )
