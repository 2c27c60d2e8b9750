from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, ClassVar, Dict, Iterable, List, Mapping, Optional, Type

from sqlalchemy import Executable, Select, inspect, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.base import Base
from src.tenancy.errors import NotFound

# Never writable from caller-supplied data.
PROTECTED_FIELDS = frozenset({"id", "tenant_id", "created_at"})


def to_json_dict(row: Any) -> Dict[str, Any]:
    """Snapshot an ORM row into JSON-safe primitives (used for audit history)."""
    out: Dict[str, Any] = {}
    for attr in inspect(type(row)).column_attrs:
        value = getattr(row, attr.key)
        if isinstance(value, Decimal):
            value = str(value)
        elif isinstance(value, (datetime, date)):
            value = value.isoformat()
        out[attr.key] = value
    return out


class BaseRepository:
    """
    Base class for repositories providing common helpers.

    Note:
      Repositories never commit. The caller (storage provider or request
      handler) owns the transaction boundary.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def execute(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute a SQLAlchemy statement."""
        return await self.session.execute(statement, params or {})

    async def scalars(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute and return scalars."""
        result = await self.execute(statement, params)
        return result.scalars()

    async def scalar_one_or_none(self, statement: Executable, params: Optional[dict[str, Any]] = None):
        """Execute and return a single scalar or None."""
        result = await self.execute(statement, params)
        return result.scalar_one_or_none()

    async def add(self, entity: Any) -> None:
        """Add a single entity to session."""
        self.session.add(entity)

    async def add_all(self, entities: Iterable[Any]) -> None:
        """Add multiple entities to session."""
        self.session.add_all(list(entities))

    async def flush_and_refresh(self, entity: Any) -> Any:
        """Flush pending changes and reload server-generated columns."""
        await self.session.flush()
        await self.session.refresh(entity)
        return entity


class TenantScopedRepository(BaseRepository):
    """
    Repository bound to one tenant.

    Every query starts from `scoped()`, which puts the tenant filter in the SQL
    WHERE clause, and every insert is stamped with the bound tenant.
    """

    model: ClassVar[Type[Base]]
    label: ClassVar[str] = "Record"

    def __init__(self, session: AsyncSession, tenant_id: str) -> None:
        super().__init__(session)
        self.tenant_id = tenant_id

    def scoped(self) -> Select:
        return select(self.model).where(self.model.tenant_id == self.tenant_id)

    def clean(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        """Keep only mapped, writable columns from caller-supplied data."""
        columns = {attr.key for attr in inspect(self.model).column_attrs}
        return {k: v for k, v in data.items() if k in columns and k not in PROTECTED_FIELDS}

    async def list_all(self, *order_by) -> List[Any]:
        stmt = self.scoped()
        if order_by:
            stmt = stmt.order_by(*order_by)
        return list(await self.scalars(stmt))

    async def get(self, record_id: int) -> Optional[Any]:
        stmt = self.scoped().where(self.model.id == record_id)
        return await self.scalar_one_or_none(stmt)

    async def require(self, record_id: int) -> Any:
        row = await self.get(record_id)
        if row is None:
            raise NotFound(f"{self.label} {record_id} not found", tenant_id=self.tenant_id)
        return row

    async def create(self, data: Mapping[str, Any]) -> Any:
        row = self.model(**self.clean(data))
        row.tenant_id = self.tenant_id
        await self.add(row)
        return await self.flush_and_refresh(row)

    async def update(self, record_id: int, data: Mapping[str, Any]) -> Any:
        row = await self.require(record_id)
        for key, value in self.clean(data).items():
            setattr(row, key, value)
        return await self.flush_and_refresh(row)

    async def delete(self, record_id: int) -> Any:
        row = await self.require(record_id)
        await self.session.delete(row)
        await self.session.flush()
        return row
