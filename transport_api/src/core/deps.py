from __future__ import annotations

import logging

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.logging import correlation_id_var, principal_var, tenant_id_var
from src.core.security import get_session_user_id
from src.core.settings import get_app_settings
from src.db.session import get_async_session
from src.repositories.security import TenantRepository, UserRepository
from src.tenancy.context import Principal, TenantContext
from src.tenancy.errors import Forbidden, StorageConnectionError, Unauthenticated
from src.tenancy.guard import IsolatedStorage
from src.tenancy.resolver import TenantResolver, check_tenant_status
from src.tenancy.router import StorageRouter

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
async def get_storage_router(request: Request) -> StorageRouter:
    """Return the process-wide StorageRouter created at application startup."""
    router = getattr(request.app.state, "storage_router", None)
    if router is None:
        raise StorageConnectionError("Storage router is not initialised")
    return router


# PUBLIC_INTERFACE
async def get_current_principal(
    request: Request,
    session: AsyncSession = Depends(get_async_session),
) -> Principal:
    """
    Resolve the authenticated principal from the session cookie.

    The cookie only carries the user id; tenant and role are re-read from the
    user row on every request.

    Raises:
        Unauthenticated: missing/invalid cookie, unknown or inactive user.
    """
    settings = get_app_settings()
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    user_id = get_session_user_id(token, settings) if token else None
    if user_id is None:
        raise Unauthenticated("Authentication required")

    user = await UserRepository(session).get_by_id(user_id)
    principal = TenantResolver(settings.MAIN_TENANT_ID).principal_from_user(user)
    principal_var.set(principal.username)
    return principal


# PUBLIC_INTERFACE
async def get_tenant_storage(
    principal: Principal = Depends(get_current_principal),
    session: AsyncSession = Depends(get_async_session),
    router: StorageRouter = Depends(get_storage_router),
) -> IsolatedStorage:
    """
    Resolve the principal's tenant, check its status and return its routed
    storage wrapped in the isolation guard.

    Raises:
        TenantSuspended, TrialExpired: tenant not allowed to operate.
        TenantProvisioningError: first-access provisioning failed.
    """
    settings = get_app_settings()
    tenant_id = TenantResolver(settings.MAIN_TENANT_ID).resolve(principal)
    tenant_id_var.set(tenant_id)

    check_tenant_status(await TenantRepository(session).get(tenant_id))
    provider = await router.route(tenant_id)

    context = TenantContext(
        principal=principal,
        tenant_id=tenant_id,
        storage_mode=provider.mode,
        request_id=correlation_id_var.get(),
    )
    return IsolatedStorage(provider, context, settings=settings)


# PUBLIC_INTERFACE
def require_roles(*required: str):
    """
    Create a dependency that requires the current principal to hold one of
    the given roles. Superadmins always pass.
    """

    async def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.is_superadmin or principal.role.value in required:
            return principal
        raise Forbidden("Insufficient role", tenant_id=principal.tenant_id)

    return _dep


# PUBLIC_INTERFACE
async def require_superadmin(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Dependency guarding tenant administration endpoints."""
    if not principal.is_superadmin:
        raise Forbidden("Superadmin role required", tenant_id=principal.tenant_id)
    return principal
