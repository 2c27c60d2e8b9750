from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, Response, status

from src.core.deps import get_tenant_storage
from src.schemas.transport import (
    NextOrderNumber,
    TransportOrderCreate,
    TransportOrderRead,
    TransportOrderUpdate,
)
from src.tenancy.guard import IsolatedStorage

router = APIRouter(prefix="/transport-orders", tags=["Transport Orders"])


# PUBLIC_INTERFACE
@router.get("", response_model=List[TransportOrderRead], summary="List transport orders")
async def list_orders(
    week_label: Optional[str] = Query(None),
    company_name: Optional[str] = Query(None),
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> List[TransportOrderRead]:
    rows = await storage.list_transport_orders(week_label=week_label, company_name=company_name)
    return [TransportOrderRead.model_validate(x) for x in rows]


# PUBLIC_INTERFACE
@router.get(
    "/next-number",
    response_model=NextOrderNumber,
    summary="Peek next order number",
    description="The number the next created order will receive; does not advance the sequence.",
)
async def next_number(storage: IsolatedStorage = Depends(get_tenant_storage)) -> NextOrderNumber:
    return NextOrderNumber(order_number=await storage.next_order_number())


# PUBLIC_INTERFACE
@router.get("/{order_id}", response_model=TransportOrderRead, summary="Get transport order")
async def get_order(
    order_id: int = Path(..., ge=1),
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> TransportOrderRead:
    return TransportOrderRead.model_validate(await storage.get_transport_order(order_id))


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=TransportOrderRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create transport order",
    description="Create an order; the tenant's order sequence advances and supplies the number when none is given.",
)
async def create_order(
    payload: TransportOrderCreate,
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> TransportOrderRead:
    return TransportOrderRead.model_validate(await storage.create_transport_order(payload.model_dump()))


# PUBLIC_INTERFACE
@router.patch("/{order_id}", response_model=TransportOrderRead, summary="Update transport order")
async def update_order(
    payload: TransportOrderUpdate,
    order_id: int = Path(..., ge=1),
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> TransportOrderRead:
    updated = await storage.update_transport_order(order_id, payload.model_dump(exclude_unset=True))
    return TransportOrderRead.model_validate(updated)


# PUBLIC_INTERFACE
@router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete transport order")
async def delete_order(
    order_id: int = Path(..., ge=1),
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> Response:
    await storage.delete_transport_order(order_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
