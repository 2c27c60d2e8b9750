from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import Base, IntPkMixin, JSONType, TenantMixin, TimestampMixin


class Company(IntPkMixin, TenantMixin, TimestampMixin, Base):
    """Transport company invoiced through the platform."""
    __tablename__ = "companies"
    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_companies_tenant_name"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)
    cif: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    trade_register_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    county: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, default="Romania")
    contact: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class Driver(IntPkMixin, TenantMixin, TimestampMixin, Base):
    """Driver mapped to a company; name variants help match trip exports."""
    __tablename__ = "drivers"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    company_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("companies.id", ondelete="SET NULL"), nullable=True)
    name_variants: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, default="")
    email: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, default="")


class WeeklyProcessing(IntPkMixin, TenantMixin, Base):
    """Processed results and raw uploads for one billing week."""
    __tablename__ = "weekly_processing"
    __table_args__ = (
        UniqueConstraint("tenant_id", "week_label", name="uq_weekly_processing_tenant_week"),
    )

    week_label: Mapped[str] = mapped_column(String(100), nullable=False)
    processing_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    trip_data_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    invoice7_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    invoice30_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_data: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    trip_data: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    invoice7_data: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)
    invoice30_data: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)


class HistoricalTrip(IntPkMixin, TenantMixin, TimestampMixin, Base):
    """One trip line kept for VRID lookups across weeks."""
    __tablename__ = "historical_trips"
    __table_args__ = (
        UniqueConstraint("tenant_id", "vrid", name="uq_historical_trips_tenant_vrid"),
    )

    vrid: Mapped[str] = mapped_column(String(100), nullable=False)
    driver_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    week_label: Mapped[str] = mapped_column(String(100), nullable=False)
    trip_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    route: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    raw_trip_data: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)


class Payment(IntPkMixin, TenantMixin, Base):
    """Payment received from a company for a week."""
    __tablename__ = "payments"

    company_name: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payment_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    week_label: Mapped[str] = mapped_column(String(100), nullable=False)
    payment_type: Mapped[str] = mapped_column(String(50), nullable=False, default="partial")  # partial/full


class PaymentHistory(IntPkMixin, TenantMixin, TimestampMixin, Base):
    """Audit trail of payment changes."""
    __tablename__ = "payment_history"

    payment_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("payments.id", ondelete="SET NULL"), nullable=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)  # created/updated/deleted
    previous_data: Mapped[Optional[Any]] = mapped_column(JSONType, nullable=True)


class CompanyBalance(IntPkMixin, TenantMixin, TimestampMixin, Base):
    """Invoiced vs paid totals for a company in one week."""
    __tablename__ = "company_balances"
    __table_args__ = (
        UniqueConstraint("tenant_id", "company_name", "week_label", name="uq_company_balances_tenant_company_week"),
    )

    company_name: Mapped[str] = mapped_column(String(100), nullable=False)
    week_label: Mapped[str] = mapped_column(String(100), nullable=False)
    total_invoiced: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    outstanding_balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")  # pending/partial/paid
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class TransportOrder(IntPkMixin, TenantMixin, TimestampMixin, Base):
    """Transport order issued to a company, grouping VRIDs of a week."""
    __tablename__ = "transport_orders"
    __table_args__ = (
        UniqueConstraint("tenant_id", "order_number", name="uq_transport_orders_tenant_number"),
    )

    order_number: Mapped[str] = mapped_column(String(100), nullable=False)
    company_name: Mapped[str] = mapped_column(String(100), nullable=False)
    order_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    week_label: Mapped[str] = mapped_column(String(100), nullable=False)
    vrids: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    route: Mapped[Optional[str]] = mapped_column(String(200), nullable=True, default="DE-BE-NL")
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")  # draft/sent/confirmed


class OrderSequence(IntPkMixin, TenantMixin, Base):
    """Per-tenant counter for transport order numbers."""
    __tablename__ = "order_sequence"
    __table_args__ = (
        UniqueConstraint("tenant_id", name="uq_order_sequence_tenant"),
    )

    current_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1554)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


# Tables created inside every dedicated schema / external project, in dependency order.
TENANT_MODELS = (
    Company,
    Driver,
    WeeklyProcessing,
    HistoricalTrip,
    Payment,
    PaymentHistory,
    CompanyBalance,
    TransportOrder,
    OrderSequence,
)
