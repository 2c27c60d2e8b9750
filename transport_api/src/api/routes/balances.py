from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query

from src.core.deps import get_tenant_storage
from src.schemas.transport import BalancePaymentCreate, CompanyBalanceRead, CompanyBalanceUpsert
from src.tenancy.guard import IsolatedStorage

router = APIRouter(prefix="/company-balances", tags=["Company Balances"])


# PUBLIC_INTERFACE
@router.get("", response_model=List[CompanyBalanceRead], summary="List company balances")
async def list_balances(storage: IsolatedStorage = Depends(get_tenant_storage)) -> List[CompanyBalanceRead]:
    return [CompanyBalanceRead.model_validate(x) for x in await storage.list_company_balances()]


# PUBLIC_INTERFACE
@router.get("/lookup", response_model=CompanyBalanceRead, summary="Get one company-week balance")
async def get_balance(
    company_name: str = Query(..., min_length=1),
    week_label: str = Query(..., min_length=1),
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> CompanyBalanceRead:
    return CompanyBalanceRead.model_validate(await storage.get_company_balance(company_name, week_label))


# PUBLIC_INTERFACE
@router.put(
    "",
    response_model=CompanyBalanceRead,
    summary="Set invoiced total",
    description="Create or update a company-week balance; paid total and status are recomputed.",
)
async def upsert_balance(
    payload: CompanyBalanceUpsert,
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> CompanyBalanceRead:
    row = await storage.upsert_company_balance(payload.company_name, payload.week_label, payload.total_invoiced)
    return CompanyBalanceRead.model_validate(row)


# PUBLIC_INTERFACE
@router.post(
    "/payments",
    response_model=CompanyBalanceRead,
    summary="Record payment against a balance",
    description="Record a payment for an existing company-week balance and return the settled balance (404 if none).",
)
async def record_balance_payment(
    payload: BalancePaymentCreate,
    storage: IsolatedStorage = Depends(get_tenant_storage),
) -> CompanyBalanceRead:
    row = await storage.record_balance_payment(payload.company_name, payload.week_label, payload.amount)
    return CompanyBalanceRead.model_validate(row)
