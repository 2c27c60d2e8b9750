from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import func, select, update

from src.db.models.transport import (
    Company,
    CompanyBalance,
    Driver,
    HistoricalTrip,
    OrderSequence,
    Payment,
    PaymentHistory,
    TransportOrder,
    WeeklyProcessing,
)
from src.tenancy.errors import NotFound
from .base import TenantScopedRepository

# First order number handed out to a tenant.
ORDER_SEQUENCE_START = 1554


class CompanyRepository(TenantScopedRepository):
    """Repository for transport companies."""

    model = Company
    label = "Company"

    async def list_companies(self) -> List[Company]:
        return await self.list_all(Company.name)

    async def get_by_name(self, name: str) -> Optional[Company]:
        stmt = self.scoped().where(Company.name == name)
        return await self.scalar_one_or_none(stmt)

    async def count(self) -> int:
        stmt = select(func.count(Company.id)).where(Company.tenant_id == self.tenant_id)
        result = await self.execute(stmt)
        return int(result.scalar_one())


class DriverRepository(TenantScopedRepository):
    """Repository for drivers."""

    model = Driver
    label = "Driver"

    async def list_drivers(self) -> List[Driver]:
        return await self.list_all(Driver.name)

    async def list_by_company(self, company_id: int) -> List[Driver]:
        stmt = self.scoped().where(Driver.company_id == company_id).order_by(Driver.name)
        return list(await self.scalars(stmt))

    async def _check_company(self, data: Mapping[str, Any]) -> None:
        # A driver may only point at a company of the same tenant.
        company_id = data.get("company_id")
        if company_id is not None:
            await CompanyRepository(self.session, self.tenant_id).require(company_id)

    async def create(self, data: Mapping[str, Any]) -> Driver:
        await self._check_company(data)
        return await super().create(data)

    async def update(self, record_id: int, data: Mapping[str, Any]) -> Driver:
        await self._check_company(data)
        return await super().update(record_id, data)


class WeeklyProcessingRepository(TenantScopedRepository):
    """Repository for weekly processing results."""

    model = WeeklyProcessing
    label = "Weekly processing"

    async def list_weeks(self) -> List[WeeklyProcessing]:
        return await self.list_all(WeeklyProcessing.processing_date.desc())

    async def get_by_week(self, week_label: str) -> Optional[WeeklyProcessing]:
        stmt = self.scoped().where(WeeklyProcessing.week_label == week_label)
        return await self.scalar_one_or_none(stmt)

    async def require_week(self, week_label: str) -> WeeklyProcessing:
        row = await self.get_by_week(week_label)
        if row is None:
            raise NotFound(f"Weekly processing for '{week_label}' not found", tenant_id=self.tenant_id)
        return row

    async def upsert(self, week_label: str, values: Mapping[str, Any]) -> WeeklyProcessing:
        row = await self.get_by_week(week_label)
        if row is None:
            return await self.create({**values, "week_label": week_label})
        for key, value in self.clean(values).items():
            setattr(row, key, value)
        row.processing_date = func.now()
        return await self.flush_and_refresh(row)


class HistoricalTripRepository(TenantScopedRepository):
    """Repository for historical trip lines keyed by VRID."""

    model = HistoricalTrip
    label = "Historical trip"

    async def list_by_week(self, week_label: str) -> List[HistoricalTrip]:
        stmt = self.scoped().where(HistoricalTrip.week_label == week_label).order_by(HistoricalTrip.vrid)
        return list(await self.scalars(stmt))

    async def find_by_vrids(self, vrids: Sequence[str]) -> List[HistoricalTrip]:
        if not vrids:
            return []
        stmt = self.scoped().where(HistoricalTrip.vrid.in_(list(vrids))).order_by(HistoricalTrip.vrid)
        return list(await self.scalars(stmt))

    async def existing_vrids(self, vrids: Sequence[str]) -> set[str]:
        return {trip.vrid for trip in await self.find_by_vrids(vrids)}


class PaymentRepository(TenantScopedRepository):
    """Repository for payments."""

    model = Payment
    label = "Payment"

    async def list_payments(self, week_label: Optional[str] = None) -> List[Payment]:
        stmt = self.scoped()
        if week_label:
            stmt = stmt.where(Payment.week_label == week_label)
        stmt = stmt.order_by(Payment.payment_date.desc(), Payment.id.desc())
        return list(await self.scalars(stmt))

    async def total_for(self, company_name: str, week_label: str) -> Decimal:
        """Sum of payments recorded for a company in one week."""
        stmt = select(func.coalesce(func.sum(Payment.amount), 0)).where(
            Payment.tenant_id == self.tenant_id,
            Payment.company_name == company_name,
            Payment.week_label == week_label,
        )
        result = await self.execute(stmt)
        return Decimal(str(result.scalar_one()))


class PaymentHistoryRepository(TenantScopedRepository):
    """Repository for the payment audit trail."""

    model = PaymentHistory
    label = "Payment history"

    async def list_history(self, payment_id: Optional[int] = None) -> List[PaymentHistory]:
        stmt = self.scoped()
        if payment_id is not None:
            stmt = stmt.where(PaymentHistory.payment_id == payment_id)
        stmt = stmt.order_by(PaymentHistory.created_at.desc(), PaymentHistory.id.desc())
        return list(await self.scalars(stmt))

    async def record(self, payment_id: Optional[int], action: str, previous_data: Optional[Dict[str, Any]] = None) -> PaymentHistory:
        return await self.create({"payment_id": payment_id, "action": action, "previous_data": previous_data})

    async def clear_references(self, payment_id: int) -> None:
        stmt = (
            update(PaymentHistory)
            .where(PaymentHistory.tenant_id == self.tenant_id, PaymentHistory.payment_id == payment_id)
            .values(payment_id=None)
        )
        await self.execute(stmt)


class CompanyBalanceRepository(TenantScopedRepository):
    """Repository for per-company weekly balances."""

    model = CompanyBalance
    label = "Company balance"

    async def list_balances(self) -> List[CompanyBalance]:
        return await self.list_all(CompanyBalance.created_at.desc(), CompanyBalance.id.desc())

    async def get_for(self, company_name: str, week_label: str) -> Optional[CompanyBalance]:
        stmt = self.scoped().where(
            CompanyBalance.company_name == company_name,
            CompanyBalance.week_label == week_label,
        )
        return await self.scalar_one_or_none(stmt)

    async def require_for(self, company_name: str, week_label: str) -> CompanyBalance:
        row = await self.get_for(company_name, week_label)
        if row is None:
            raise NotFound(
                f"No balance for {company_name} in week '{week_label}'", tenant_id=self.tenant_id
            )
        return row

    async def set_totals(
        self,
        row: CompanyBalance,
        *,
        total_paid: Decimal,
        outstanding_balance: Decimal,
        payment_status: str,
        total_invoiced: Optional[Decimal] = None,
    ) -> CompanyBalance:
        if total_invoiced is not None:
            row.total_invoiced = total_invoiced
        row.total_paid = total_paid
        row.outstanding_balance = outstanding_balance
        row.payment_status = payment_status
        row.last_updated = func.now()
        return await self.flush_and_refresh(row)


class TransportOrderRepository(TenantScopedRepository):
    """Repository for transport orders."""

    model = TransportOrder
    label = "Transport order"

    async def list_orders(
        self, *, week_label: Optional[str] = None, company_name: Optional[str] = None
    ) -> List[TransportOrder]:
        stmt = self.scoped()
        if week_label:
            stmt = stmt.where(TransportOrder.week_label == week_label)
        if company_name:
            stmt = stmt.where(TransportOrder.company_name == company_name)
        stmt = stmt.order_by(TransportOrder.created_at.desc(), TransportOrder.id.desc())
        return list(await self.scalars(stmt))


class OrderSequenceRepository(TenantScopedRepository):
    """Repository for the per-tenant order number counter."""

    model = OrderSequence
    label = "Order sequence"

    async def ensure(self, start: int = ORDER_SEQUENCE_START) -> OrderSequence:
        row = await self.scalar_one_or_none(self.scoped())
        if row is None:
            row = await self.create({"current_number": start})
        return row

    async def current(self) -> int:
        return (await self.ensure()).current_number

    async def allocate(self) -> int:
        """Return the current number and advance the counter."""
        stmt = self.scoped().with_for_update()
        row = await self.scalar_one_or_none(stmt)
        if row is None:
            row = await self.ensure()
        number = row.current_number
        row.current_number = number + 1
        row.last_updated = func.now()
        await self.flush_and_refresh(row)
        return number
