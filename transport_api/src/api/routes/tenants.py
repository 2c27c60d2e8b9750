from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Path, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_storage_router, require_superadmin
from src.db.session import get_async_session
from src.repositories.security import TenantRepository
from src.schemas.tenants import RouterStats, TenantCreate, TenantRead, TenantUpdate
from src.services.onboarding import TenantOnboardingService
from src.tenancy.router import StorageRouter

router = APIRouter(
    prefix="/tenants",
    tags=["Tenants"],
    dependencies=[Depends(require_superadmin)],
)

TENANT_ID_PATTERN = r"^[a-z0-9][a-z0-9_]{1,48}$"


def _service(
    session: AsyncSession = Depends(get_async_session),
    storage_router: StorageRouter = Depends(get_storage_router),
) -> TenantOnboardingService:
    return TenantOnboardingService(session, storage_router)


# PUBLIC_INTERFACE
@router.get("", response_model=List[TenantRead], summary="List tenants")
async def list_tenants(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_async_session),
) -> List[TenantRead]:
    rows = await TenantRepository(session).list_tenants(limit=limit, offset=offset)
    return [TenantRead.model_validate(x) for x in rows]


# PUBLIC_INTERFACE
@router.get(
    "/stats",
    response_model=RouterStats,
    summary="Storage router statistics",
    description="Tenants whose storage providers are cached in this process.",
)
async def router_stats(storage_router: StorageRouter = Depends(get_storage_router)) -> RouterStats:
    return RouterStats.model_validate(storage_router.describe())


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=TenantRead,
    status_code=status.HTTP_201_CREATED,
    summary="Register tenant",
    description="Create a tenant and its admin user, then provision its storage (503 if provisioning fails).",
)
async def register_tenant(
    payload: TenantCreate,
    service: TenantOnboardingService = Depends(_service),
) -> TenantRead:
    tenant = await service.register(
        tenant_id=payload.id,
        name=payload.name,
        admin_username=payload.admin_username,
        admin_password=payload.admin_password,
        storage_mode=payload.storage_mode,
        status=payload.status,
        trial_ends_at=payload.trial_ends_at,
    )
    return TenantRead.model_validate(tenant)


# PUBLIC_INTERFACE
@router.get("/{tenant_id}", response_model=TenantRead, summary="Get tenant")
async def get_tenant(
    tenant_id: str = Path(..., pattern=TENANT_ID_PATTERN),
    service: TenantOnboardingService = Depends(_service),
) -> TenantRead:
    return TenantRead.model_validate(await service.require(tenant_id))


# PUBLIC_INTERFACE
@router.patch("/{tenant_id}", response_model=TenantRead, summary="Update tenant name or status")
async def update_tenant(
    payload: TenantUpdate,
    tenant_id: str = Path(..., pattern=TENANT_ID_PATTERN),
    service: TenantOnboardingService = Depends(_service),
) -> TenantRead:
    tenant = await service.update(
        tenant_id, name=payload.name, status=payload.status, trial_ends_at=payload.trial_ends_at
    )
    return TenantRead.model_validate(tenant)


# PUBLIC_INTERFACE
@router.post("/{tenant_id}/provision", response_model=TenantRead, summary="Provision tenant storage")
async def provision_tenant(
    tenant_id: str = Path(..., pattern=TENANT_ID_PATTERN),
    service: TenantOnboardingService = Depends(_service),
) -> TenantRead:
    return TenantRead.model_validate(await service.provision(tenant_id))


# PUBLIC_INTERFACE
@router.post(
    "/{tenant_id}/deprovision",
    response_model=TenantRead,
    summary="Deprovision tenant storage",
    description="Drop the tenant's schema, tables or rows; the tenant record and users are kept.",
)
async def deprovision_tenant(
    tenant_id: str = Path(..., pattern=TENANT_ID_PATTERN),
    service: TenantOnboardingService = Depends(_service),
) -> TenantRead:
    return TenantRead.model_validate(await service.deprovision(tenant_id))


# PUBLIC_INTERFACE
@router.delete("/{tenant_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete tenant")
async def delete_tenant(
    tenant_id: str = Path(..., pattern=TENANT_ID_PATTERN),
    service: TenantOnboardingService = Depends(_service),
) -> Response:
    await service.delete(tenant_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
