from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Path, Response, status

from src.core.deps import get_tenant_storage
from src.schemas.transport import DriverCreate, DriverRead, DriverUpdate
from src.tenancy.guard import IsolatedStorage

router = APIRouter(prefix="/drivers", tags=["Drivers"])


# PUBLIC_INTERFACE
@router.get("", response_model=List[DriverRead], summary="List drivers")
async def list_drivers(storage: IsolatedStorage = Depends(get_tenant_storage)) -> List[DriverRead]:
    return [DriverRead.model_validate(x) for x in await storage.list_drivers()]


# PUBLIC_INTERFACE
@router.get("/{driver_id}", response_model=DriverRead, summary="Get driver")
async def get_driver(
    driver_id: int = Path(..., ge=1),
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> DriverRead:
    return DriverRead.model_validate(await storage.get_driver(driver_id))


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=DriverRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create driver",
    description="Create a driver; `company_id` must reference a company of the same tenant.",
)
async def create_driver(
    payload: DriverCreate,
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> DriverRead:
    return DriverRead.model_validate(await storage.create_driver(payload.model_dump()))


# PUBLIC_INTERFACE
@router.patch("/{driver_id}", response_model=DriverRead, summary="Update driver")
async def update_driver(
    payload: DriverUpdate,
    driver_id: int = Path(..., ge=1),
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> DriverRead:
    updated = await storage.update_driver(driver_id, payload.model_dump(exclude_unset=True))
    return DriverRead.model_validate(updated)


# PUBLIC_INTERFACE
@router.delete("/{driver_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete driver")
async def delete_driver(
    driver_id: int = Path(..., ge=1),
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> Response:
    await storage.delete_driver(driver_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
