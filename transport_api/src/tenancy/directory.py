"""
Control-plane lookups of tenant records used by the storage router.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.db.models.security import Tenant
from src.repositories.security import TenantRepository
from src.tenancy.constants import StorageMode

logger = logging.getLogger(__name__)


class TenantDirectory:
    """
    Read and update tenant records in the shared schema.

    Each call opens its own short transaction on the shared database so that
    directory bookkeeping never shares a transaction with tenant data.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    # PUBLIC_INTERFACE
    async def get(self, tenant_id: str) -> Optional[Tenant]:
        """Return the tenant record, or None when the tenant is unknown."""
        async with self._session_maker() as session:
            return await TenantRepository(session).get(tenant_id)

    # PUBLIC_INTERFACE
    async def storage_mode_for(self, tenant_id: str, default: StorageMode) -> StorageMode:
        """Return the registered storage mode for `tenant_id`, or `default` for unknown tenants."""
        tenant = await self.get(tenant_id)
        if tenant is None or not tenant.storage_mode:
            return default
        try:
            return StorageMode(tenant.storage_mode)
        except ValueError:
            logger.warning("Tenant %s has unknown storage mode %r; using %s", tenant_id, tenant.storage_mode, default.value)
            return default

    # PUBLIC_INTERFACE
    async def mark_provisioned(self, tenant_id: str, mode: StorageMode, location: Optional[str]) -> Tenant:
        """Record that storage for `tenant_id` exists, registering unknown tenants."""
        async with self._session_maker() as session, session.begin():
            return await TenantRepository(session).mark_provisioned(
                tenant_id, storage_mode=mode.value, location=location
            )

    # PUBLIC_INTERFACE
    async def mark_unprovisioned(self, tenant_id: str) -> None:
        async with self._session_maker() as session, session.begin():
            await TenantRepository(session).mark_unprovisioned(tenant_id)
