import asyncio

import pytest

from src.db.session import make_session_maker
from src.storage.sql import SharedSchemaProvider
from src.tenancy.constants import StorageMode
from src.tenancy.errors import ConstraintViolation, TenantProvisioningError
from src.tenancy.router import StorageRouter

from factories import make_database, make_settings, register_tenant, sqlite_url


class CountingProvider(SharedSchemaProvider):
    """Shared provider that records lifecycle calls and can fail on demand."""

    def __init__(self, tenant_id, session_maker, calls, fail_times=0):
        super().__init__(tenant_id, session_maker)
        self.calls = calls
        self.fail_times = fail_times
        self.closed = False

    async def provision(self):
        self.calls["provision"] += 1
        # Yield so concurrent callers pile up on the tenant lock.
        await asyncio.sleep(0.01)
        if self.calls["provision"] <= self.fail_times:
            raise OSError("storage backend refused connection")
        await super().provision()

    async def close(self):
        self.closed = True


def _run(tmp_path, scenario, *, fail_times=0, **settings):
    async def runner():
        engine = await make_database(sqlite_url(tmp_path))
        session_maker = make_session_maker(engine)
        calls = {"provision": 0}
        built = []

        def factory(tenant_id, mode):
            provider = CountingProvider(tenant_id, session_maker, calls, fail_times)
            built.append(provider)
            return provider

        router = StorageRouter(
            engine,
            session_maker,
            settings=make_settings(**settings),
            provider_factory=factory,
        )
        try:
            await scenario(router, calls, built)
        finally:
            await router.close()
            await engine.dispose()

    asyncio.run(runner())


def test_main_tenant_is_served_without_provisioning(tmp_path):
    async def scenario(router, calls, built):
        provider = await router.route("main")
        assert provider is router.main
        assert provider.mode == StorageMode.SHARED
        assert calls["provision"] == 0
        assert router.is_cached("main")

    _run(tmp_path, scenario)


def test_concurrent_first_access_provisions_once(tmp_path):
    async def scenario(router, calls, built):
        providers = await asyncio.gather(*(router.route("acme") for _ in range(8)))
        assert calls["provision"] == 1
        assert len(built) == 1
        assert all(p is providers[0] for p in providers)
        assert await router.route("acme") is providers[0]

        tenant = await router.directory.get("acme")
        assert tenant is not None
        assert tenant.provisioned_at is not None
        assert tenant.location == "public"

    _run(tmp_path, scenario)


def test_failed_provisioning_is_not_cached_and_retries(tmp_path):
    async def scenario(router, calls, built):
        with pytest.raises(TenantProvisioningError) as exc_info:
            await router.route("acme")
        assert exc_info.value.tenant_id == "acme"
        assert isinstance(exc_info.value.__cause__, OSError)
        assert not router.is_cached("acme")
        assert built[0].closed
        assert await router.directory.get("acme") is None

        provider = await router.route("acme")
        assert provider is built[1]
        assert router.is_cached("acme")
        assert calls["provision"] == 2

    _run(tmp_path, scenario, fail_times=1)


def test_registered_mode_is_used(tmp_path):
    async def runner():
        engine = await make_database(sqlite_url(tmp_path))
        session_maker = make_session_maker(engine)
        await register_tenant(engine, "acme", "shared")
        await register_tenant(engine, "globex", "no_such_mode")
        modes = {}

        def factory(tenant_id, mode):
            modes[tenant_id] = mode
            return SharedSchemaProvider(tenant_id, session_maker)

        router = StorageRouter(
            engine,
            session_maker,
            settings=make_settings(DEFAULT_STORAGE_MODE="dedicated_external"),
            provider_factory=factory,
        )
        await router.route("acme")
        await router.route("globex")
        await router.route("initech")
        assert modes == {
            "acme": StorageMode.SHARED,
            "globex": StorageMode.DEDICATED_EXTERNAL,
            "initech": StorageMode.DEDICATED_EXTERNAL,
        }
        # Unknown tenants are registered on first provisioning.
        assert (await router.directory.get("initech")).provisioned_at is not None
        await router.close()
        await engine.dispose()

    asyncio.run(runner())


def test_external_mode_without_template_fails_provisioning(tmp_path):
    async def runner():
        engine = await make_database(sqlite_url(tmp_path))
        router = StorageRouter(
            engine,
            make_session_maker(engine),
            settings=make_settings(DEFAULT_STORAGE_MODE="dedicated_external", EXTERNAL_DATABASE_URL_TEMPLATE=None),
        )
        with pytest.raises(TenantProvisioningError):
            await router.route("acme")
        assert not router.is_cached("acme")
        await engine.dispose()

    asyncio.run(runner())


def test_main_tenant_cannot_be_deprovisioned(tmp_path):
    async def scenario(router, calls, built):
        with pytest.raises(ConstraintViolation):
            await router.deprovision("main")

    _run(tmp_path, scenario)


def test_deprovision_drops_data_and_evicts(tmp_path):
    async def scenario(router, calls, built):
        provider = await router.route("acme")
        await provider.create_company({"name": "Acme Freight", "commission_rate": 0.05})
        await router.deprovision("acme")

        assert not router.is_cached("acme")
        assert built[0].closed
        tenant = await router.directory.get("acme")
        assert tenant.provisioned_at is None
        assert tenant.location is None
        assert await SharedSchemaProvider("acme", router._session_maker).list_companies() == []

        # Routing again re-provisions from scratch.
        provider = await router.route("acme")
        assert [c.name for c in await provider.list_companies()] == ["Transport Company SRL"]

    _run(tmp_path, scenario)


def test_describe_lists_cached_tenants(tmp_path):
    async def scenario(router, calls, built):
        await router.route("globex")
        await router.route("acme")
        stats = router.describe()
        assert stats["main_tenant_id"] == "main"
        assert stats["default_mode"] == "shared"
        assert stats["cached"] == 2
        assert [t["tenant_id"] for t in stats["tenants"]] == ["acme", "globex"]
        assert stats["tenants"][0] == {"tenant_id": "acme", "mode": "shared", "location": "public"}

    _run(tmp_path, scenario)
