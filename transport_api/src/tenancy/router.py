"""
Route a resolved tenant to its storage provider.

Providers are created lazily on first access, provisioned, and cached for the
life of the process. First access for a tenant is serialised by a per-tenant
asyncio.Lock so concurrent requests provision exactly once.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from src.core.settings import AppSettings, get_app_settings
from src.storage.base import StorageProvider
from src.storage.sql import SharedSchemaProvider, build_provider
from src.tenancy.constants import StorageMode
from src.tenancy.directory import TenantDirectory
from src.tenancy.errors import ConstraintViolation, TenantProvisioningError

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[str, StorageMode], StorageProvider]


class StorageRouter:
    """
    Owns the tenant to provider cache.

    The main tenant is always served by the shared-schema provider built at
    construction time; every other tenant gets its own provider according to
    the storage mode registered in the tenant directory.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        settings: Optional[AppSettings] = None,
        directory: Optional[TenantDirectory] = None,
        provider_factory: Optional[ProviderFactory] = None,
    ) -> None:
        self.settings = settings or get_app_settings()
        self.main_tenant_id = self.settings.MAIN_TENANT_ID
        self.default_mode = StorageMode(self.settings.DEFAULT_STORAGE_MODE)
        self._engine = engine
        self._session_maker = session_maker
        self.directory = directory or TenantDirectory(session_maker)
        self._factory = provider_factory or self._build
        self.main = SharedSchemaProvider(self.main_tenant_id, session_maker)
        self._providers: Dict[str, StorageProvider] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _build(self, tenant_id: str, mode: StorageMode) -> StorageProvider:
        return build_provider(
            tenant_id,
            mode,
            engine=self._engine,
            session_maker=self._session_maker,
            schema_prefix=self.settings.TENANT_SCHEMA_PREFIX,
            external_url_template=self.settings.EXTERNAL_DATABASE_URL_TEMPLATE,
        )

    def _tenant_lock(self, tenant_id: str) -> asyncio.Lock:
        # setdefault gives one lock per tenant even when two tasks race here.
        return self._locks.setdefault(tenant_id, asyncio.Lock())

    # PUBLIC_INTERFACE
    async def route(self, tenant_id: str) -> StorageProvider:
        """
        Return the provisioned provider for `tenant_id`.

        Raises:
            TenantProvisioningError: when storage could not be built or
            provisioned; nothing is cached, so the next call retries.
        """
        if tenant_id == self.main_tenant_id:
            return self.main

        provider = self._providers.get(tenant_id)
        if provider is not None:
            return provider

        async with self._tenant_lock(tenant_id):
            provider = self._providers.get(tenant_id)
            if provider is not None:
                return provider
            provider = await self._provision(tenant_id)
            self._providers[tenant_id] = provider
            return provider

    async def _construct(self, tenant_id: str) -> StorageProvider:
        mode = await self.directory.storage_mode_for(tenant_id, self.default_mode)
        try:
            return self._factory(tenant_id, mode)
        except ValueError as exc:
            raise TenantProvisioningError(str(exc), tenant_id=tenant_id) from exc

    async def _provision(self, tenant_id: str) -> StorageProvider:
        provider = await self._construct(tenant_id)
        mode = provider.mode
        logger.info("Provisioning %s storage for tenant %s", mode.value, tenant_id)
        try:
            await provider.provision()
            await self.directory.mark_provisioned(tenant_id, mode, provider.location)
        except Exception as exc:
            await provider.close()
            logger.error("Provisioning failed for tenant %s: %s", tenant_id, exc)
            raise TenantProvisioningError(
                f"Could not provision {mode.value} storage", tenant_id=tenant_id
            ) from exc
        return provider

    # PUBLIC_INTERFACE
    async def deprovision(self, tenant_id: str) -> None:
        """
        Drop a tenant's storage, evict its provider and mark it unprovisioned.

        Raises:
            ConstraintViolation: for the main tenant.
        """
        if tenant_id == self.main_tenant_id:
            raise ConstraintViolation("The main tenant cannot be deprovisioned", tenant_id=tenant_id)
        async with self._tenant_lock(tenant_id):
            provider = self._providers.pop(tenant_id, None)
            if provider is None:
                provider = await self._construct(tenant_id)
            try:
                await provider.drop()
            finally:
                await provider.close()
            await self.directory.mark_unprovisioned(tenant_id)
        logger.info("Deprovisioned storage for tenant %s", tenant_id)

    # PUBLIC_INTERFACE
    def is_cached(self, tenant_id: str) -> bool:
        return tenant_id == self.main_tenant_id or tenant_id in self._providers

    # PUBLIC_INTERFACE
    def describe(self) -> Dict[str, Any]:
        """Return cache statistics: cached tenants with their storage mode and location."""
        return {
            "main_tenant_id": self.main_tenant_id,
            "default_mode": self.default_mode.value,
            "cached": len(self._providers),
            "tenants": [
                {"tenant_id": tid, "mode": p.mode.value, "location": p.location}
                for tid, p in sorted(self._providers.items())
            ],
        }

    # PUBLIC_INTERFACE
    async def close(self) -> None:
        """Close every cached provider (application shutdown)."""
        providers = list(self._providers.values())
        self._providers.clear()
        for provider in providers:
            try:
                await provider.close()
            except Exception:
                logger.exception("Error closing storage for tenant %s", provider.tenant_id)
        await self.main.close()
