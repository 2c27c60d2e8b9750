from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# Companies

class CompanyCreate(BaseModel):
    """Create company payload."""
    name: str = Field(..., min_length=1, max_length=100, description="Company name (unique within tenant)")
    commission_rate: Decimal = Field(Decimal("0.0400"), ge=0, le=1, description="Commission as a fraction")
    cif: Optional[str] = Field(None, max_length=50)
    trade_register_number: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = Field(None)
    location: Optional[str] = Field(None, max_length=100)
    county: Optional[str] = Field(None, max_length=100)
    country: Optional[str] = Field("Romania", max_length=100)
    contact: Optional[str] = Field(None)


class CompanyUpdate(BaseModel):
    """Update company payload."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    commission_rate: Optional[Decimal] = Field(None, ge=0, le=1)
    cif: Optional[str] = Field(None, max_length=50)
    trade_register_number: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = Field(None)
    location: Optional[str] = Field(None, max_length=100)
    county: Optional[str] = Field(None, max_length=100)
    country: Optional[str] = Field(None, max_length=100)
    contact: Optional[str] = Field(None)


class CompanyRead(BaseModel):
    """Company read model."""
    id: int
    tenant_id: str
    name: str
    commission_rate: Decimal
    cif: Optional[str] = None
    trade_register_number: Optional[str] = None
    address: Optional[str] = None
    location: Optional[str] = None
    county: Optional[str] = None
    country: Optional[str] = None
    contact: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


# Drivers

class DriverCreate(BaseModel):
    """Create driver payload."""
    name: str = Field(..., min_length=1, max_length=200)
    company_id: Optional[int] = Field(None, description="Company of the same tenant")
    name_variants: Optional[List[str]] = Field(None, description="Alternative spellings seen in trip exports")
    phone: Optional[str] = Field("", max_length=20)
    email: Optional[str] = Field("", max_length=100)


class DriverUpdate(BaseModel):
    """Update driver payload."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    company_id: Optional[int] = Field(None)
    name_variants: Optional[List[str]] = Field(None)
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[str] = Field(None, max_length=100)


class DriverRead(BaseModel):
    """Driver read model."""
    id: int
    tenant_id: str
    name: str
    company_id: Optional[int] = None
    name_variants: Optional[List[str]] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


# Weekly processing

class WeeklyProcessingSave(BaseModel):
    """
    Results of processing one billing week.

    `company_totals` maps company name to the total invoiced for the week
    (either a number or an object with a `total_invoiced` key).
    """
    week_label: str = Field(..., min_length=1, max_length=100)
    trip_data: List[Dict[str, Any]] = Field(default_factory=list)
    invoice7_data: List[Dict[str, Any]] = Field(default_factory=list)
    invoice30_data: List[Dict[str, Any]] = Field(default_factory=list)
    processed_data: Optional[Dict[str, Any]] = Field(None)
    company_totals: Dict[str, Any] = Field(default_factory=dict)


class WeeklyProcessingUpdate(BaseModel):
    processed_data: Optional[Dict[str, Any]] = Field(None)


class WeeklyProcessingSummary(BaseModel):
    """Week listing without the raw uploads."""
    id: int
    tenant_id: str
    week_label: str
    processing_date: datetime
    trip_data_count: int
    invoice7_count: int
    invoice30_count: int

    class Config:
        from_attributes = True


class WeeklyProcessingRead(WeeklyProcessingSummary):
    """Full week including processed results and raw uploads."""
    processed_data: Optional[Any] = None
    trip_data: Optional[Any] = None
    invoice7_data: Optional[Any] = None
    invoice30_data: Optional[Any] = None


class HistoricalTripRead(BaseModel):
    id: int
    tenant_id: str
    vrid: str
    driver_name: Optional[str] = None
    week_label: str
    trip_date: Optional[datetime] = None
    route: Optional[str] = None
    raw_trip_data: Optional[Any] = None
    created_at: datetime

    class Config:
        from_attributes = True


class VridSearch(BaseModel):
    vrids: List[str] = Field(..., min_length=1, max_length=5000)


# Payments

class PaymentCreate(BaseModel):
    """Create payment payload."""
    company_name: str = Field(..., min_length=1, max_length=100)
    week_label: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., gt=0)
    description: Optional[str] = Field(None)
    payment_type: str = Field("partial", pattern="^(partial|full)$")


class PaymentUpdate(BaseModel):
    """Update payment payload."""
    company_name: Optional[str] = Field(None, min_length=1, max_length=100)
    week_label: Optional[str] = Field(None, min_length=1, max_length=100)
    amount: Optional[Decimal] = Field(None, gt=0)
    description: Optional[str] = Field(None)
    payment_type: Optional[str] = Field(None, pattern="^(partial|full)$")


class PaymentRead(BaseModel):
    """Payment read model."""
    id: int
    tenant_id: str
    company_name: str
    amount: Decimal
    description: Optional[str] = None
    payment_date: datetime
    week_label: str
    payment_type: str

    class Config:
        from_attributes = True


class PaymentHistoryRead(BaseModel):
    id: int
    tenant_id: str
    payment_id: Optional[int] = None
    action: str
    previous_data: Optional[Any] = None
    created_at: datetime

    class Config:
        from_attributes = True


# Company balances

class CompanyBalanceUpsert(BaseModel):
    company_name: str = Field(..., min_length=1, max_length=100)
    week_label: str = Field(..., min_length=1, max_length=100)
    total_invoiced: Decimal = Field(..., ge=0)


class BalancePaymentCreate(BaseModel):
    """Payment recorded directly against a company-week balance."""
    company_name: str = Field(..., min_length=1, max_length=100)
    week_label: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., gt=0)


class CompanyBalanceRead(BaseModel):
    """Company balance read model."""
    id: int
    tenant_id: str
    company_name: str
    week_label: str
    total_invoiced: Decimal
    total_paid: Decimal
    outstanding_balance: Decimal
    payment_status: str
    last_updated: datetime
    created_at: datetime

    class Config:
        from_attributes = True


# Transport orders

class TransportOrderCreate(BaseModel):
    """Create transport order payload; the order number is allocated when omitted."""
    order_number: Optional[str] = Field(None, max_length=100)
    company_name: str = Field(..., min_length=1, max_length=100)
    order_date: datetime
    week_label: str = Field(..., min_length=1, max_length=100)
    vrids: List[str] = Field(default_factory=list)
    total_amount: Decimal = Field(..., ge=0)
    route: Optional[str] = Field("DE-BE-NL", max_length=200)
    status: str = Field("draft", pattern="^(draft|sent|confirmed)$")


class TransportOrderUpdate(BaseModel):
    company_name: Optional[str] = Field(None, min_length=1, max_length=100)
    order_date: Optional[datetime] = None
    week_label: Optional[str] = Field(None, min_length=1, max_length=100)
    vrids: Optional[List[str]] = None
    total_amount: Optional[Decimal] = Field(None, ge=0)
    route: Optional[str] = Field(None, max_length=200)
    status: Optional[str] = Field(None, pattern="^(draft|sent|confirmed)$")


class TransportOrderRead(BaseModel):
    """Transport order read model."""
    id: int
    tenant_id: str
    order_number: str
    company_name: str
    order_date: datetime
    week_label: str
    vrids: Optional[List[str]] = None
    total_amount: Decimal
    route: Optional[str] = None
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


class NextOrderNumber(BaseModel):
    order_number: int
