"""
SQLAlchemy-backed storage providers.

All three providers share one implementation of the entity operations; they
differ only in where the tables live and how storage is provisioned:

- SharedSchemaProvider: the shared tables, rows filtered by tenant_id.
- DedicatedSchemaProvider: the same tables inside schema `<prefix><tenant>`,
  reached through schema_translate_map on the shared engine.
- ExternalProjectProvider: a separate database with its own engine.
"""

from __future__ import annotations

import logging
import re
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import delete, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.schema import CreateSchema, DropSchema

from src.db.base import Base
from src.db.models.transport import TENANT_MODELS
from src.db.session import bind_schema, create_engine_for_url, make_session_maker
from src.repositories.base import to_json_dict
from src.repositories.transport import (
    CompanyBalanceRepository,
    CompanyRepository,
    DriverRepository,
    HistoricalTripRepository,
    OrderSequenceRepository,
    PaymentHistoryRepository,
    PaymentRepository,
    TransportOrderRepository,
    WeeklyProcessingRepository,
)
from src.services.billing import settle, to_money
from src.tenancy.constants import StorageMode
from src.tenancy.errors import ConstraintViolation, StorageConnectionError, TenancyError
from .base import StorageProvider

logger = logging.getLogger(__name__)

# Seeded into every newly provisioned tenant with no companies yet.
DEFAULT_COMPANY: Dict[str, Any] = {
    "name": "Transport Company SRL",
    "commission_rate": Decimal("0.0400"),
    "address": "Adresa companiei de transport",
    "location": "București",
    "county": "București",
    "country": "Romania",
    "contact": "contact@transport.ro",
}

# Keys under which trip exports carry the VRID, in order of preference.
VRID_KEYS = ("Trip ID", "VR ID", "vrid")

_SCHEMA_UNSAFE = re.compile(r"[^a-z0-9_]")


# PUBLIC_INTERFACE
def schema_name_for(tenant_id: str, prefix: str = "tenant_") -> str:
    """Return the dedicated schema name for a tenant (`tenant_<id>`, SQL-safe)."""
    return f"{prefix}{_SCHEMA_UNSAFE.sub('_', tenant_id.lower())}"


def _tenant_tables() -> List[Any]:
    return [model.__table__ for model in TENANT_MODELS]


def _create_tenant_tables(sync_conn) -> None:
    Base.metadata.create_all(sync_conn, tables=_tenant_tables(), checkfirst=True)


def _drop_tenant_tables(sync_conn) -> None:
    Base.metadata.drop_all(sync_conn, tables=list(reversed(_tenant_tables())), checkfirst=True)


def _trip_vrid(trip: Mapping[str, Any]) -> Optional[str]:
    for key in VRID_KEYS:
        value = trip.get(key)
        if value not in (None, ""):
            return str(value).strip()
    return None


def _trip_date(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def _is_transient(exc: BaseException) -> bool:
    """Connection-level failures only; other driver errors are deterministic."""
    if isinstance(exc, (OperationalError, InterfaceError, OSError)):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


def _invoiced_total(value: Any) -> Decimal:
    # Totals arrive either as a bare amount or as a per-company summary mapping.
    if isinstance(value, Mapping):
        value = value.get("total_invoiced", value.get("total", 0))
    return to_money(value)


class SqlStorageProvider(StorageProvider):
    """
    Entity operations over a session factory, scoped to one tenant.

    Each public operation runs in exactly one transaction: committed when the
    operation returns, rolled back when it raises.
    """

    def __init__(self, tenant_id: str, session_maker: async_sessionmaker[AsyncSession]) -> None:
        super().__init__(tenant_id)
        self._session_maker = session_maker

    @asynccontextmanager
    async def _errors(self) -> AsyncIterator[None]:
        """Translate driver errors into the tenancy error taxonomy."""
        try:
            yield
        except TenancyError as exc:
            raise exc.with_tenant(self.tenant_id)
        except IntegrityError as exc:
            raise ConstraintViolation(
                f"Constraint violated: {exc.orig}", tenant_id=self.tenant_id
            ) from exc
        except (OperationalError, InterfaceError, DBAPIError, OSError) as exc:
            # Programming and data errors fail the same way on every attempt.
            if not _is_transient(exc):
                raise
            logger.warning("Storage backend error for tenant %s: %s", self.tenant_id, exc)
            raise StorageConnectionError(
                f"Storage backend unavailable: {exc.__class__.__name__}", tenant_id=self.tenant_id
            ) from exc

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        async with self._errors():
            async with self._session_maker() as session, session.begin():
                yield session

    async def _seed(self, session: AsyncSession) -> None:
        companies = CompanyRepository(session, self.tenant_id)
        if await companies.count() == 0:
            await companies.create(DEFAULT_COMPANY)
            logger.info("Seeded default company for tenant %s", self.tenant_id)
        await OrderSequenceRepository(session, self.tenant_id).ensure()

    async def _provision_on(self, conn: AsyncConnection) -> None:
        """Create tenant tables on `conn` and seed them, inside the caller's transaction."""
        await conn.run_sync(_create_tenant_tables)
        async with AsyncSession(bind=conn, expire_on_commit=False, autoflush=False) as session:
            await self._seed(session)

    async def _resettle(
        self,
        session: AsyncSession,
        company_name: str,
        week_label: str,
        total_invoiced: Any = None,
    ):
        """
        Recompute a company-week balance from its recorded payments.

        Creates the balance when `total_invoiced` is given and none exists;
        otherwise a missing balance is left alone and None is returned.
        """
        balances = CompanyBalanceRepository(session, self.tenant_id)
        row = await balances.get_for(company_name, week_label)
        if row is None and total_invoiced is None:
            return None
        paid = to_money(await PaymentRepository(session, self.tenant_id).total_for(company_name, week_label))
        invoiced = to_money(total_invoiced if total_invoiced is not None else row.total_invoiced)
        status, outstanding = settle(invoiced, paid)
        if row is None:
            return await balances.create(
                {
                    "company_name": company_name,
                    "week_label": week_label,
                    "total_invoiced": invoiced,
                    "total_paid": paid,
                    "outstanding_balance": outstanding,
                    "payment_status": status,
                }
            )
        return await balances.set_totals(
            row,
            total_invoiced=invoiced,
            total_paid=paid,
            outstanding_balance=outstanding,
            payment_status=status,
        )

    # Companies

    async def list_companies(self) -> List[Any]:
        async with self._transaction() as s:
            return await CompanyRepository(s, self.tenant_id).list_companies()

    async def get_company(self, company_id: int) -> Any:
        async with self._transaction() as s:
            return await CompanyRepository(s, self.tenant_id).require(company_id)

    async def get_company_by_name(self, name: str) -> Optional[Any]:
        async with self._transaction() as s:
            return await CompanyRepository(s, self.tenant_id).get_by_name(name)

    async def create_company(self, data: Mapping[str, Any]) -> Any:
        async with self._transaction() as s:
            return await CompanyRepository(s, self.tenant_id).create(data)

    async def update_company(self, company_id: int, data: Mapping[str, Any]) -> Any:
        async with self._transaction() as s:
            return await CompanyRepository(s, self.tenant_id).update(company_id, data)

    async def delete_company(self, company_id: int) -> None:
        async with self._transaction() as s:
            await CompanyRepository(s, self.tenant_id).delete(company_id)

    # Drivers

    async def list_drivers(self) -> List[Any]:
        async with self._transaction() as s:
            return await DriverRepository(s, self.tenant_id).list_drivers()

    async def list_drivers_by_company(self, company_id: int) -> List[Any]:
        async with self._transaction() as s:
            return await DriverRepository(s, self.tenant_id).list_by_company(company_id)

    async def get_driver(self, driver_id: int) -> Any:
        async with self._transaction() as s:
            return await DriverRepository(s, self.tenant_id).require(driver_id)

    async def create_driver(self, data: Mapping[str, Any]) -> Any:
        async with self._transaction() as s:
            return await DriverRepository(s, self.tenant_id).create(data)

    async def update_driver(self, driver_id: int, data: Mapping[str, Any]) -> Any:
        async with self._transaction() as s:
            return await DriverRepository(s, self.tenant_id).update(driver_id, data)

    async def delete_driver(self, driver_id: int) -> None:
        async with self._transaction() as s:
            await DriverRepository(s, self.tenant_id).delete(driver_id)

    # Weekly processing and trip history

    async def list_weekly_processing(self) -> List[Any]:
        async with self._transaction() as s:
            return await WeeklyProcessingRepository(s, self.tenant_id).list_weeks()

    async def get_weekly_processing(self, week_label: str) -> Any:
        async with self._transaction() as s:
            return await WeeklyProcessingRepository(s, self.tenant_id).require_week(week_label)

    async def save_weekly_processing(
        self,
        week_label: str,
        *,
        trip_data: Sequence[Mapping[str, Any]] = (),
        invoice7_data: Sequence[Mapping[str, Any]] = (),
        invoice30_data: Sequence[Mapping[str, Any]] = (),
        processed_data: Optional[Mapping[str, Any]] = None,
        company_totals: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """
        Store one week's processing, its trips and the resulting balances.

        Trips whose VRID is already recorded for the tenant are skipped; every
        company in `company_totals` gets its balance (re)settled.
        """
        trip_data = list(trip_data or [])
        invoice7_data = list(invoice7_data or [])
        invoice30_data = list(invoice30_data or [])
        async with self._transaction() as s:
            week = await WeeklyProcessingRepository(s, self.tenant_id).upsert(
                week_label,
                {
                    "trip_data_count": len(trip_data),
                    "invoice7_count": len(invoice7_data),
                    "invoice30_count": len(invoice30_data),
                    "processed_data": dict(processed_data) if processed_data is not None else None,
                    "trip_data": trip_data,
                    "invoice7_data": invoice7_data,
                    "invoice30_data": invoice30_data,
                },
            )

            trips = HistoricalTripRepository(s, self.tenant_id)
            by_vrid: Dict[str, Mapping[str, Any]] = {}
            for trip in trip_data:
                vrid = _trip_vrid(trip)
                if vrid and vrid not in by_vrid:
                    by_vrid[vrid] = trip
            known = await trips.existing_vrids(list(by_vrid))
            added = 0
            for vrid, trip in by_vrid.items():
                if vrid in known:
                    continue
                await trips.create(
                    {
                        "vrid": vrid,
                        "driver_name": trip.get("Driver") or None,
                        "week_label": week_label,
                        "trip_date": _trip_date(trip.get("Trip Date")),
                        "route": trip.get("Route") or None,
                        "raw_trip_data": dict(trip),
                    }
                )
                added += 1

            for company_name, total in (company_totals or {}).items():
                await self._resettle(s, company_name, week_label, _invoiced_total(total))

            logger.info(
                "Saved week %s for tenant %s: %d new trip(s), %d known, %d balance(s)",
                week_label,
                self.tenant_id,
                added,
                len(known),
                len(company_totals or {}),
            )
            return week

    async def update_weekly_processing(self, week_label: str, data: Mapping[str, Any]) -> Any:
        async with self._transaction() as s:
            repo = WeeklyProcessingRepository(s, self.tenant_id)
            row = await repo.require_week(week_label)
            return await repo.update(row.id, data)

    async def delete_weekly_processing(self, week_label: str) -> None:
        async with self._transaction() as s:
            repo = WeeklyProcessingRepository(s, self.tenant_id)
            row = await repo.require_week(week_label)
            await repo.delete(row.id)

    async def list_historical_trips(self, week_label: str) -> List[Any]:
        async with self._transaction() as s:
            return await HistoricalTripRepository(s, self.tenant_id).list_by_week(week_label)

    async def find_trips_by_vrids(self, vrids: Sequence[str]) -> List[Any]:
        async with self._transaction() as s:
            return await HistoricalTripRepository(s, self.tenant_id).find_by_vrids(vrids)

    # Payments

    async def list_payments(self, week_label: Optional[str] = None) -> List[Any]:
        async with self._transaction() as s:
            return await PaymentRepository(s, self.tenant_id).list_payments(week_label)

    async def get_payment(self, payment_id: int) -> Any:
        async with self._transaction() as s:
            return await PaymentRepository(s, self.tenant_id).require(payment_id)

    async def create_payment(self, data: Mapping[str, Any]) -> Any:
        async with self._transaction() as s:
            payment = await PaymentRepository(s, self.tenant_id).create(data)
            await PaymentHistoryRepository(s, self.tenant_id).record(payment.id, "created")
            await self._resettle(s, payment.company_name, payment.week_label)
            return payment

    async def update_payment(self, payment_id: int, data: Mapping[str, Any]) -> Any:
        async with self._transaction() as s:
            payments = PaymentRepository(s, self.tenant_id)
            current = await payments.require(payment_id)
            previous = to_json_dict(current)
            payment = await payments.update(payment_id, data)
            await PaymentHistoryRepository(s, self.tenant_id).record(payment.id, "updated", previous)
            await self._resettle(s, previous["company_name"], previous["week_label"])
            if (payment.company_name, payment.week_label) != (previous["company_name"], previous["week_label"]):
                await self._resettle(s, payment.company_name, payment.week_label)
            return payment

    async def delete_payment(self, payment_id: int) -> None:
        async with self._transaction() as s:
            payments = PaymentRepository(s, self.tenant_id)
            history = PaymentHistoryRepository(s, self.tenant_id)
            payment = await payments.require(payment_id)
            previous = to_json_dict(payment)
            await history.clear_references(payment_id)
            await history.record(None, "deleted", previous)
            await payments.delete(payment_id)
            await self._resettle(s, previous["company_name"], previous["week_label"])

    async def list_payment_history(self, payment_id: Optional[int] = None) -> List[Any]:
        async with self._transaction() as s:
            return await PaymentHistoryRepository(s, self.tenant_id).list_history(payment_id)

    # Company balances

    async def list_company_balances(self) -> List[Any]:
        async with self._transaction() as s:
            return await CompanyBalanceRepository(s, self.tenant_id).list_balances()

    async def get_company_balance(self, company_name: str, week_label: str) -> Any:
        async with self._transaction() as s:
            return await CompanyBalanceRepository(s, self.tenant_id).require_for(company_name, week_label)

    async def upsert_company_balance(self, company_name: str, week_label: str, total_invoiced: Any) -> Any:
        async with self._transaction() as s:
            return await self._resettle(s, company_name, week_label, to_money(total_invoiced))

    async def record_balance_payment(self, company_name: str, week_label: str, amount: Any) -> Any:
        async with self._transaction() as s:
            await CompanyBalanceRepository(s, self.tenant_id).require_for(company_name, week_label)
            payment = await PaymentRepository(s, self.tenant_id).create(
                {
                    "company_name": company_name,
                    "week_label": week_label,
                    "amount": to_money(amount),
                    "description": "Manual payment recorded from balances",
                }
            )
            await PaymentHistoryRepository(s, self.tenant_id).record(payment.id, "created")
            return await self._resettle(s, company_name, week_label)

    # Transport orders

    async def list_transport_orders(
        self, *, week_label: Optional[str] = None, company_name: Optional[str] = None
    ) -> List[Any]:
        async with self._transaction() as s:
            return await TransportOrderRepository(s, self.tenant_id).list_orders(
                week_label=week_label, company_name=company_name
            )

    async def get_transport_order(self, order_id: int) -> Any:
        async with self._transaction() as s:
            return await TransportOrderRepository(s, self.tenant_id).require(order_id)

    async def create_transport_order(self, data: Mapping[str, Any]) -> Any:
        async with self._transaction() as s:
            number = await OrderSequenceRepository(s, self.tenant_id).allocate()
            values = dict(data)
            if not values.get("order_number"):
                values["order_number"] = str(number)
            return await TransportOrderRepository(s, self.tenant_id).create(values)

    async def update_transport_order(self, order_id: int, data: Mapping[str, Any]) -> Any:
        async with self._transaction() as s:
            return await TransportOrderRepository(s, self.tenant_id).update(order_id, data)

    async def delete_transport_order(self, order_id: int) -> None:
        async with self._transaction() as s:
            await TransportOrderRepository(s, self.tenant_id).delete(order_id)

    async def next_order_number(self) -> int:
        async with self._transaction() as s:
            return await OrderSequenceRepository(s, self.tenant_id).current()


class SharedSchemaProvider(SqlStorageProvider):
    """Tenant rows kept in the shared tables (the main tenant, or tenants in `shared` mode)."""

    mode = StorageMode.SHARED

    @property
    def location(self) -> Optional[str]:
        return "public"

    async def provision(self) -> None:
        # Shared tables are owned by migrations; provisioning only seeds.
        async with self._transaction() as s:
            await self._seed(s)

    async def drop(self) -> None:
        async with self._transaction() as s:
            for model in reversed(TENANT_MODELS):
                await s.execute(delete(model).where(model.tenant_id == self.tenant_id))


class DedicatedSchemaProvider(SqlStorageProvider):
    """Tenant tables inside their own Postgres schema on the shared database."""

    mode = StorageMode.DEDICATED_SCHEMA

    def __init__(self, tenant_id: str, engine: AsyncEngine, schema: str) -> None:
        self.schema = schema
        self._engine = bind_schema(engine, schema)
        super().__init__(tenant_id, make_session_maker(self._engine))

    @property
    def location(self) -> Optional[str]:
        return self.schema

    async def provision(self) -> None:
        async with self._errors():
            async with self._engine.begin() as conn:
                if conn.dialect.name == "postgresql":
                    # Serialises concurrent provisioning of the same schema across processes.
                    await conn.execute(text("SELECT pg_advisory_xact_lock(hashtext(:key))"), {"key": self.schema})
                await conn.execute(CreateSchema(self.schema, if_not_exists=True))
                await self._provision_on(conn)
        logger.info("Provisioned schema %s for tenant %s", self.schema, self.tenant_id)

    async def drop(self) -> None:
        async with self._errors():
            async with self._engine.begin() as conn:
                await conn.execute(DropSchema(self.schema, cascade=True, if_exists=True))
        logger.info("Dropped schema %s for tenant %s", self.schema, self.tenant_id)


class ExternalProjectProvider(SqlStorageProvider):
    """Tenant tables in a separate database reached through its own engine."""

    mode = StorageMode.DEDICATED_EXTERNAL

    def __init__(self, tenant_id: str, url: str) -> None:
        self.url = url
        self._engine = create_engine_for_url(url)
        super().__init__(tenant_id, make_session_maker(self._engine))

    @property
    def location(self) -> Optional[str]:
        return make_url(self.url).render_as_string(hide_password=True)

    async def provision(self) -> None:
        async with self._errors():
            async with self._engine.begin() as conn:
                await self._provision_on(conn)
        logger.info("Provisioned external project %s for tenant %s", self.location, self.tenant_id)

    async def drop(self) -> None:
        async with self._errors():
            async with self._engine.begin() as conn:
                await conn.run_sync(_drop_tenant_tables)

    async def close(self) -> None:
        await self._engine.dispose()


# PUBLIC_INTERFACE
def build_provider(
    tenant_id: str,
    mode: StorageMode,
    *,
    engine: AsyncEngine,
    session_maker: async_sessionmaker[AsyncSession],
    schema_prefix: str = "tenant_",
    external_url_template: Optional[str] = None,
) -> SqlStorageProvider:
    """
    Construct (but do not provision) the provider for `tenant_id` in `mode`.

    Raises:
        ValueError: for dedicated_external mode without a URL template.
    """
    if mode == StorageMode.SHARED:
        return SharedSchemaProvider(tenant_id, session_maker)
    if mode == StorageMode.DEDICATED_SCHEMA:
        return DedicatedSchemaProvider(tenant_id, engine, schema_name_for(tenant_id, schema_prefix))
    if mode == StorageMode.DEDICATED_EXTERNAL:
        if not external_url_template:
            raise ValueError("EXTERNAL_DATABASE_URL_TEMPLATE is required for dedicated_external tenants")
        return ExternalProjectProvider(tenant_id, external_url_template.format(tenant_id=tenant_id))
    raise ValueError(f"Unsupported storage mode: {mode!r}")
