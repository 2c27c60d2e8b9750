"""
Database seeding utilities for minimal reference data.

Seeds:
- The main tenant record (shared storage)
- A superadmin user belonging to the main tenant
- The main tenant's default company and order sequence

Usage:
  python -m src.db.run_migrations upgrade head
  python -m src.db.seed
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.security import get_password_hash
from src.core.settings import AppSettings, get_app_settings
from src.db.session import dispose_engine, get_engine, get_session_maker
from src.repositories.security import TenantRepository, UserRepository
from src.tenancy.constants import Role, StorageMode
from src.tenancy.router import StorageRouter

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
async def seed_all(router: Optional[StorageRouter] = None, settings: Optional[AppSettings] = None) -> None:
    """
    Seed the database with minimal reference data. Safe to run repeatedly.

    This function:
      - Creates the main tenant record if missing
      - Creates the superadmin user if missing
      - Provisions the main tenant's shared storage (default company, order sequence)
    """
    settings = settings or get_app_settings()
    router = router or StorageRouter(get_engine(), get_session_maker(), settings=settings)

    async with get_session_maker()() as session:
        await _ensure_main_tenant(session, settings)
        await _ensure_superadmin(session, settings)
        await session.commit()

    await router.main.provision()
    await router.directory.mark_provisioned(router.main_tenant_id, StorageMode.SHARED, router.main.location)


async def _ensure_main_tenant(session: AsyncSession, settings: AppSettings) -> None:
    tenants = TenantRepository(session)
    if await tenants.get(settings.MAIN_TENANT_ID) is None:
        await tenants.create(
            tenant_id=settings.MAIN_TENANT_ID,
            name="Main",
            storage_mode=StorageMode.SHARED.value,
        )
        logger.info("Created main tenant %s", settings.MAIN_TENANT_ID)


async def _ensure_superadmin(session: AsyncSession, settings: AppSettings) -> None:
    users = UserRepository(session)
    if await users.get_by_username(settings.SEED_ADMIN_USERNAME) is None:
        await users.create(
            username=settings.SEED_ADMIN_USERNAME,
            hashed_password=get_password_hash(settings.SEED_ADMIN_PASSWORD),
            tenant_id=settings.MAIN_TENANT_ID,
            role=Role.SUPERADMIN.value,
        )
        logger.info("Created superadmin user %s", settings.SEED_ADMIN_USERNAME)


async def _run() -> None:
    try:
        await seed_all()
    finally:
        await dispose_engine()


# PUBLIC_INTERFACE
def main() -> None:
    """Entrypoint to run the asynchronous seeding."""
    asyncio.run(_run())


if __name__ == "__main__":
    main()
