"""
Storage Provider contract.

A provider is bound to exactly one tenant for its whole lifetime and exposes
the same async operations whatever its backing store. Reads only ever return
that tenant's records; writes stamp the bound tenant on every record.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, List, Mapping, Optional, Sequence

from src.tenancy.constants import StorageMode


class StorageProvider(ABC):
    """Abstract per-tenant storage handle."""

    mode: StorageMode

    def __init__(self, tenant_id: str) -> None:
        self.tenant_id = tenant_id

    @property
    def location(self) -> Optional[str]:
        """Human-readable description of where the data lives (schema, project)."""
        return None

    # Lifecycle

    @abstractmethod
    async def provision(self) -> None:
        """Create storage if missing and seed default data. Must be idempotent."""

    @abstractmethod
    async def drop(self) -> None:
        """Remove every record/table owned by the tenant."""

    async def close(self) -> None:
        """Release provider-owned resources (engines, pools)."""

    # Companies

    @abstractmethod
    async def list_companies(self) -> List[Any]: ...

    @abstractmethod
    async def get_company(self, company_id: int) -> Any: ...

    @abstractmethod
    async def get_company_by_name(self, name: str) -> Optional[Any]: ...

    @abstractmethod
    async def create_company(self, data: Mapping[str, Any]) -> Any: ...

    @abstractmethod
    async def update_company(self, company_id: int, data: Mapping[str, Any]) -> Any: ...

    @abstractmethod
    async def delete_company(self, company_id: int) -> None: ...

    # Drivers

    @abstractmethod
    async def list_drivers(self) -> List[Any]: ...

    @abstractmethod
    async def list_drivers_by_company(self, company_id: int) -> List[Any]: ...

    @abstractmethod
    async def get_driver(self, driver_id: int) -> Any: ...

    @abstractmethod
    async def create_driver(self, data: Mapping[str, Any]) -> Any: ...

    @abstractmethod
    async def update_driver(self, driver_id: int, data: Mapping[str, Any]) -> Any: ...

    @abstractmethod
    async def delete_driver(self, driver_id: int) -> None: ...

    # Weekly processing and trip history

    @abstractmethod
    async def list_weekly_processing(self) -> List[Any]: ...

    @abstractmethod
    async def get_weekly_processing(self, week_label: str) -> Any: ...

    @abstractmethod
    async def save_weekly_processing(
        self,
        week_label: str,
        *,
        trip_data: Sequence[Mapping[str, Any]] = (),
        invoice7_data: Sequence[Mapping[str, Any]] = (),
        invoice30_data: Sequence[Mapping[str, Any]] = (),
        processed_data: Optional[Mapping[str, Any]] = None,
        company_totals: Optional[Mapping[str, Any]] = None,
    ) -> Any: ...

    @abstractmethod
    async def update_weekly_processing(self, week_label: str, data: Mapping[str, Any]) -> Any: ...

    @abstractmethod
    async def delete_weekly_processing(self, week_label: str) -> None: ...

    @abstractmethod
    async def list_historical_trips(self, week_label: str) -> List[Any]: ...

    @abstractmethod
    async def find_trips_by_vrids(self, vrids: Sequence[str]) -> List[Any]: ...

    # Payments

    @abstractmethod
    async def list_payments(self, week_label: Optional[str] = None) -> List[Any]: ...

    @abstractmethod
    async def get_payment(self, payment_id: int) -> Any: ...

    @abstractmethod
    async def create_payment(self, data: Mapping[str, Any]) -> Any: ...

    @abstractmethod
    async def update_payment(self, payment_id: int, data: Mapping[str, Any]) -> Any: ...

    @abstractmethod
    async def delete_payment(self, payment_id: int) -> None: ...

    @abstractmethod
    async def list_payment_history(self, payment_id: Optional[int] = None) -> List[Any]: ...

    # Company balances

    @abstractmethod
    async def list_company_balances(self) -> List[Any]: ...

    @abstractmethod
    async def get_company_balance(self, company_name: str, week_label: str) -> Any: ...

    @abstractmethod
    async def upsert_company_balance(self, company_name: str, week_label: str, total_invoiced: Any) -> Any: ...

    @abstractmethod
    async def record_balance_payment(self, company_name: str, week_label: str, amount: Any) -> Any: ...

    # Transport orders

    @abstractmethod
    async def list_transport_orders(
        self, *, week_label: Optional[str] = None, company_name: Optional[str] = None
    ) -> List[Any]: ...

    @abstractmethod
    async def get_transport_order(self, order_id: int) -> Any: ...

    @abstractmethod
    async def create_transport_order(self, data: Mapping[str, Any]) -> Any: ...

    @abstractmethod
    async def update_transport_order(self, order_id: int, data: Mapping[str, Any]) -> Any: ...

    @abstractmethod
    async def delete_transport_order(self, order_id: int) -> None: ...

    @abstractmethod
    async def next_order_number(self) -> int: ...
