from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.security import get_password_hash
from src.db.models.security import Tenant
from src.repositories.security import TenantRepository, UserRepository
from src.services.base import BaseService
from src.tenancy.constants import Role, StorageMode, TenantStatus
from src.tenancy.errors import ConstraintViolation, NotFound
from src.tenancy.router import StorageRouter

logger = logging.getLogger(__name__)


class TenantOnboardingService(BaseService):
    """
    Register, provision and remove tenants.

    The tenant record and its admin user are committed first; storage is then
    provisioned through the router. A provisioning failure leaves the tenant
    registered but unprovisioned, and the next request (or an explicit
    provision call) retries.
    """

    def __init__(self, session: AsyncSession, router: StorageRouter) -> None:
        super().__init__(session)
        self.router = router
        self.tenants = TenantRepository(session)
        self.users = UserRepository(session)

    # PUBLIC_INTERFACE
    async def register(
        self,
        *,
        tenant_id: str,
        name: str,
        admin_username: str,
        admin_password: str,
        storage_mode: Optional[StorageMode] = None,
        status: TenantStatus = TenantStatus.ACTIVE,
        trial_ends_at: Optional[datetime] = None,
    ) -> Tenant:
        """
        Create a tenant with its first admin user and provision its storage.

        Raises:
            ConstraintViolation: the tenant id or username is already taken.
            TenantProvisioningError: storage could not be provisioned.
        """
        if tenant_id == self.router.main_tenant_id:
            raise ConstraintViolation("The main tenant already exists", tenant_id=tenant_id)
        if await self.tenants.get(tenant_id) is not None:
            raise ConstraintViolation(f"Tenant '{tenant_id}' already exists", tenant_id=tenant_id)
        if await self.users.get_by_username(admin_username) is not None:
            raise ConstraintViolation(f"Username '{admin_username}' is taken", tenant_id=tenant_id)

        mode = storage_mode or self.router.default_mode
        await self.tenants.create(
            tenant_id=tenant_id,
            name=name,
            storage_mode=mode.value,
            status=status.value,
            trial_ends_at=trial_ends_at,
        )
        await self.users.create(
            username=admin_username,
            hashed_password=get_password_hash(admin_password),
            tenant_id=tenant_id,
            role=Role.ADMIN.value,
        )
        await self.session.commit()
        logger.info("Registered tenant %s (%s) with admin %s", tenant_id, mode.value, admin_username)

        await self.router.route(tenant_id)
        return await self.require(tenant_id)

    # PUBLIC_INTERFACE
    async def require(self, tenant_id: str) -> Tenant:
        # Directory updates happen in other sessions; re-read current state.
        self.session.expire_all()
        tenant = await self.tenants.get(tenant_id)
        if tenant is None:
            raise NotFound(f"Tenant '{tenant_id}' not found", tenant_id=tenant_id)
        return tenant

    # PUBLIC_INTERFACE
    async def update(
        self,
        tenant_id: str,
        *,
        name: Optional[str] = None,
        status: Optional[TenantStatus] = None,
        trial_ends_at: Optional[datetime] = None,
    ) -> Tenant:
        tenant = await self.require(tenant_id)
        if name is not None:
            tenant.name = name
        if status is not None:
            tenant.status = status.value
        if trial_ends_at is not None:
            tenant.trial_ends_at = trial_ends_at
        await self.session.commit()
        return tenant

    # PUBLIC_INTERFACE
    async def provision(self, tenant_id: str) -> Tenant:
        """Provision (or re-provision after deprovisioning) a registered tenant."""
        await self.require(tenant_id)
        await self.router.route(tenant_id)
        return await self.require(tenant_id)

    # PUBLIC_INTERFACE
    async def deprovision(self, tenant_id: str) -> Tenant:
        await self.require(tenant_id)
        await self.router.deprovision(tenant_id)
        return await self.require(tenant_id)

    # PUBLIC_INTERFACE
    async def delete(self, tenant_id: str) -> None:
        """Drop the tenant's storage, then remove the tenant and its users."""
        await self.require(tenant_id)
        await self.router.deprovision(tenant_id)
        await self.tenants.delete(tenant_id)
        await self.session.commit()
        logger.info("Deleted tenant %s", tenant_id)
