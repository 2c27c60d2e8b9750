import asyncio

import pytest

from src.db.session import make_session_maker
from src.storage.sql import ExternalProjectProvider, build_provider, schema_name_for
from src.tenancy.constants import StorageMode
from src.tenancy.errors import StorageConnectionError
from src.tenancy.router import StorageRouter

from factories import make_database, make_settings, register_tenant, sqlite_url


def test_schema_names_are_sql_safe():
    assert schema_name_for("acme") == "tenant_acme"
    assert schema_name_for("Acme-Co.eu", prefix="t_") == "t_acme_co_eu"


def test_build_provider_requires_template_for_external_mode(tmp_path):
    async def runner():
        engine = await make_database(sqlite_url(tmp_path))
        with pytest.raises(ValueError):
            build_provider(
                "acme",
                StorageMode.DEDICATED_EXTERNAL,
                engine=engine,
                session_maker=make_session_maker(engine),
            )
        await engine.dispose()

    asyncio.run(runner())


def test_external_project_is_provisioned_and_isolated(tmp_path):
    async def runner():
        provider = ExternalProjectProvider("acme", sqlite_url(tmp_path, "acme.db"))
        try:
            await provider.provision()
            await provider.provision()
            companies = await provider.list_companies()
            assert [(c.name, c.tenant_id) for c in companies] == [("Transport Company SRL", "acme")]
            assert await provider.next_order_number() == 1554
            assert provider.mode == StorageMode.DEDICATED_EXTERNAL
            assert provider.location.endswith("acme.db")

            await provider.drop()
            with pytest.raises(StorageConnectionError) as exc_info:
                await provider.list_companies()
            assert exc_info.value.tenant_id == "acme"
        finally:
            await provider.close()

    asyncio.run(runner())


def test_router_sends_external_tenants_to_their_own_database(tmp_path):
    async def runner():
        engine = await make_database(sqlite_url(tmp_path))
        session_maker = make_session_maker(engine)
        await register_tenant(engine, "acme", "dedicated_external")
        template = f"sqlite+aiosqlite:///{tmp_path}/project_{{tenant_id}}.db"
        router = StorageRouter(
            engine,
            session_maker,
            settings=make_settings(EXTERNAL_DATABASE_URL_TEMPLATE=template),
        )
        try:
            await router.main.provision()
            await router.main.create_company({"name": "Main Only SRL", "commission_rate": 0.04})

            acme = await router.route("acme")
            assert acme.mode == StorageMode.DEDICATED_EXTERNAL
            assert (tmp_path / "project_acme.db").exists()
            assert [c.name for c in await acme.list_companies()] == ["Transport Company SRL"]

            main_names = {c.name for c in await router.main.list_companies()}
            assert main_names == {"Transport Company SRL", "Main Only SRL"}

            tenant = await router.directory.get("acme")
            assert tenant.storage_mode == "dedicated_external"
            assert tenant.location.endswith("project_acme.db")
        finally:
            await router.close()
            await engine.dispose()

    asyncio.run(runner())
