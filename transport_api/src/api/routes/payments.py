from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, Response, status

from src.core.deps import get_tenant_storage
from src.schemas.transport import PaymentCreate, PaymentHistoryRead, PaymentRead, PaymentUpdate
from src.tenancy.guard import IsolatedStorage

router = APIRouter(prefix="/payments", tags=["Payments"])


# PUBLIC_INTERFACE
@router.get("", response_model=List[PaymentRead], summary="List payments")
async def list_payments(
    week_label: Optional[str] = Query(None, description="Filter by week"),
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> List[PaymentRead]:
    return [PaymentRead.model_validate(x) for x in await storage.list_payments(week_label)]


# PUBLIC_INTERFACE
@router.get("/history", response_model=List[PaymentHistoryRead], summary="Payment audit history")
async def list_payment_history(
    payment_id: Optional[int] = Query(None, ge=1, description="Restrict to one payment"),
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> List[PaymentHistoryRead]:
    return [PaymentHistoryRead.model_validate(x) for x in await storage.list_payment_history(payment_id)]


# PUBLIC_INTERFACE
@router.get("/{payment_id}", response_model=PaymentRead, summary="Get payment")
async def get_payment(
    payment_id: int = Path(..., ge=1),
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> PaymentRead:
    return PaymentRead.model_validate(await storage.get_payment(payment_id))


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=PaymentRead,
    status_code=status.HTTP_201_CREATED,
    summary="Record payment",
    description="Record a payment, add it to the audit history and resettle the company-week balance.",
)
async def create_payment(
    payload: PaymentCreate,
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> PaymentRead:
    return PaymentRead.model_validate(await storage.create_payment(payload.model_dump()))


# PUBLIC_INTERFACE
@router.patch("/{payment_id}", response_model=PaymentRead, summary="Update payment")
async def update_payment(
    payload: PaymentUpdate,
    payment_id: int = Path(..., ge=1),
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> PaymentRead:
    updated = await storage.update_payment(payment_id, payload.model_dump(exclude_unset=True))
    return PaymentRead.model_validate(updated)


# PUBLIC_INTERFACE
@router.delete(
    "/{payment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete payment",
    description="Delete a payment, keep its snapshot in the audit history and roll back the balance.",
)
async def delete_payment(
    payment_id: int = Path(..., ge=1),
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> Response:
    await storage.delete_payment(payment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
