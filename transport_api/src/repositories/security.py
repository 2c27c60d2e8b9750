from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, func, select

from src.db.models.security import Tenant, User
from .base import BaseRepository


class TenantRepository(BaseRepository):
    """Repository for control-plane tenant records (shared schema only)."""

    async def get(self, tenant_id: str) -> Optional[Tenant]:
        stmt = select(Tenant).where(Tenant.id == tenant_id)
        return await self.scalar_one_or_none(stmt)

    async def list_tenants(self, limit: int = 100, offset: int = 0) -> List[Tenant]:
        stmt = select(Tenant).order_by(Tenant.id).offset(offset).limit(limit)
        return list(await self.scalars(stmt))

    async def create(
        self,
        *,
        tenant_id: str,
        name: str,
        storage_mode: str,
        status: str = "active",
        trial_ends_at: Optional[datetime] = None,
    ) -> Tenant:
        tenant = Tenant(
            id=tenant_id,
            name=name,
            storage_mode=storage_mode,
            status=status,
            trial_ends_at=trial_ends_at,
        )
        await self.add(tenant)
        return await self.flush_and_refresh(tenant)

    async def mark_provisioned(self, tenant_id: str, *, storage_mode: str, location: Optional[str]) -> Tenant:
        """Record provisioned storage, registering the tenant if it has no record yet."""
        tenant = await self.get(tenant_id)
        if tenant is None:
            tenant = Tenant(id=tenant_id, name=tenant_id, storage_mode=storage_mode, status="active")
            await self.add(tenant)
        tenant.storage_mode = storage_mode
        tenant.location = location
        tenant.provisioned_at = func.now()
        return await self.flush_and_refresh(tenant)

    async def mark_unprovisioned(self, tenant_id: str) -> Optional[Tenant]:
        tenant = await self.get(tenant_id)
        if tenant is None:
            return None
        tenant.location = None
        tenant.provisioned_at = None
        return await self.flush_and_refresh(tenant)

    async def delete(self, tenant_id: str) -> None:
        await self.execute(delete(User).where(User.tenant_id == tenant_id))
        await self.execute(delete(Tenant).where(Tenant.id == tenant_id))


class UserRepository(BaseRepository):
    """Repository for application users."""

    async def get_by_id(self, user_id: int) -> Optional[User]:
        stmt = select(User).where(User.id == user_id)
        return await self.scalar_one_or_none(stmt)

    async def get_by_username(self, username: str) -> Optional[User]:
        stmt = select(User).where(User.username == username)
        return await self.scalar_one_or_none(stmt)

    async def create(
        self,
        *,
        username: str,
        hashed_password: str,
        tenant_id: Optional[str],
        role: str = "user",
        is_active: bool = True,
    ) -> User:
        user = User(
            username=username,
            hashed_password=hashed_password,
            tenant_id=tenant_id,
            role=role,
            is_active=is_active,
        )
        await self.add(user)
        return await self.flush_and_refresh(user)
