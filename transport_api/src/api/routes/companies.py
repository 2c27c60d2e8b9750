from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Path, Response, status

from src.core.deps import get_tenant_storage, require_roles
from src.schemas.transport import CompanyCreate, CompanyRead, CompanyUpdate, DriverRead
from src.tenancy.guard import IsolatedStorage

router = APIRouter(prefix="/companies", tags=["Companies"])


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[CompanyRead],
    summary="List companies",
    description="List the caller's tenant companies ordered by name.",
)
async def list_companies(storage: IsolatedStorage = Depends(get_tenant_storage)) -> List[CompanyRead]:
    return [CompanyRead.model_validate(x) for x in await storage.list_companies()]


# PUBLIC_INTERFACE
@router.get("/{company_id}", response_model=CompanyRead, summary="Get company")
async def get_company(
    company_id: int = Path(..., ge=1),
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> CompanyRead:
    return CompanyRead.model_validate(await storage.get_company(company_id))


# PUBLIC_INTERFACE
@router.get("/{company_id}/drivers", response_model=List[DriverRead], summary="List drivers of a company")
async def list_company_drivers(
    company_id: int = Path(..., ge=1),
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> List[DriverRead]:
    return [DriverRead.model_validate(x) for x in await storage.list_drivers_by_company(company_id)]


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=CompanyRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create company",
    description="Create a company; names are unique within the tenant (409 on duplicates).",
)
async def create_company(
    payload: CompanyCreate,
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> CompanyRead:
    created = await storage.create_company(payload.model_dump())
    return CompanyRead.model_validate(created)


# PUBLIC_INTERFACE
@router.patch("/{company_id}", response_model=CompanyRead, summary="Update company")
async def update_company(
    payload: CompanyUpdate,
    company_id: int = Path(..., ge=1),
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> CompanyRead:
    updated = await storage.update_company(company_id, payload.model_dump(exclude_unset=True))
    return CompanyRead.model_validate(updated)


# PUBLIC_INTERFACE
@router.delete(
    "/{company_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete company",
    dependencies=[Depends(require_roles("admin"))],
)
async def delete_company(
    company_id: int = Path(..., ge=1),
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> Response:
    await storage.delete_company(company_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
