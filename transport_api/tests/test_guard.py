import asyncio
import logging
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import ProgrammingError

from src.tenancy.constants import Role, StorageMode
from src.tenancy.context import TenantContext
from src.tenancy.errors import LeakageError, NotFound, StorageConnectionError, StorageTimeout
from src.tenancy.guard import IsolatedStorage, is_read_operation

from factories import make_settings, principal


class FakeProvider:
    """Scripted provider: each operation pops its next outcome from a queue."""

    mode = StorageMode.SHARED

    def __init__(self, tenant_id="acme"):
        self.tenant_id = tenant_id
        self.calls = {}
        self.outcomes = {}
        self.location = "public"

    def script(self, name, *outcomes):
        self.outcomes[name] = list(outcomes)

    async def _next(self, name):
        self.calls[name] = self.calls.get(name, 0) + 1
        outcome = self.outcomes[name].pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return await outcome()
        return outcome

    async def list_companies(self):
        return await self._next("list_companies")

    async def get_company(self, company_id):
        return await self._next("get_company")

    async def create_company(self, data):
        return await self._next("create_company")

    async def list_drivers(self):
        return await self._next("list_drivers")

    async def next_order_number(self):
        return await self._next("next_order_number")

    async def provision(self):
        self.calls["provision"] = self.calls.get("provision", 0) + 1

    def describe(self):
        return "fake"


def _storage(provider, mode=StorageMode.SHARED, **settings):
    ctx = TenantContext(principal=principal(role=Role.ADMIN), tenant_id="acme", storage_mode=mode)
    return IsolatedStorage(provider, ctx, settings=make_settings(**settings))


def test_read_operation_prefixes():
    assert is_read_operation("list_companies")
    assert is_read_operation("find_trips_by_vrids")
    assert is_read_operation("next_order_number")
    assert not is_read_operation("create_payment")
    assert not is_read_operation("record_balance_payment")


def test_records_of_the_tenant_pass_through():
    provider = FakeProvider()
    rows = [{"tenant_id": "acme", "name": "A"}]
    provider.script("list_companies", rows)
    assert asyncio.run(_storage(provider).list_companies()) == rows


def test_scalar_results_are_not_validated():
    provider = FakeProvider()
    provider.script("next_order_number", 1554)
    assert asyncio.run(_storage(provider).next_order_number()) == 1554


def test_leaked_records_are_blocked():
    provider = FakeProvider()
    provider.script("list_companies", [{"tenant_id": "acme"}, {"tenant_id": "globex"}])
    with pytest.raises(LeakageError) as exc_info:
        asyncio.run(_storage(provider).list_companies())
    assert exc_info.value.tenant_id == "acme"
    assert exc_info.value.source_tenants == ["globex"]


def test_single_record_from_another_tenant_is_blocked():
    provider = FakeProvider()
    provider.script("get_company", {"tenant_id": "globex", "id": 3})
    with pytest.raises(LeakageError):
        asyncio.run(_storage(provider).get_company(3))


def test_reads_are_retried_on_transient_errors():
    provider = FakeProvider()
    provider.script(
        "list_drivers",
        StorageConnectionError("connection reset"),
        StorageConnectionError("connection reset"),
        [],
    )
    assert asyncio.run(_storage(provider, STORAGE_RETRY_ATTEMPTS=3).list_drivers()) == []
    assert provider.calls["list_drivers"] == 3


def test_read_retries_are_bounded():
    provider = FakeProvider()
    provider.script("list_drivers", *[StorageConnectionError("down") for _ in range(5)])
    with pytest.raises(StorageConnectionError) as exc_info:
        asyncio.run(_storage(provider, STORAGE_RETRY_ATTEMPTS=2).list_drivers())
    assert provider.calls["list_drivers"] == 2
    assert exc_info.value.tenant_id == "acme"


def test_writes_are_not_retried():
    provider = FakeProvider()
    provider.script("create_company", StorageConnectionError("connection reset"), {"tenant_id": "acme"})
    with pytest.raises(StorageConnectionError):
        asyncio.run(_storage(provider, STORAGE_RETRY_ATTEMPTS=3).create_company({"name": "X"}))
    assert provider.calls["create_company"] == 1


def test_non_transient_errors_get_tenant_context_and_no_retry():
    provider = FakeProvider()
    provider.script("get_company", NotFound("Company 9 not found"), {"tenant_id": "acme"})
    with pytest.raises(NotFound) as exc_info:
        asyncio.run(_storage(provider).get_company(9))
    assert exc_info.value.tenant_id == "acme"
    assert provider.calls["get_company"] == 1


def test_slow_calls_time_out():
    async def slow():
        await asyncio.sleep(1)
        return []

    provider = FakeProvider()
    provider.script("list_drivers", slow)
    with pytest.raises(StorageTimeout) as exc_info:
        asyncio.run(_storage(provider, STORAGE_TIMEOUT_SECONDS=0.05, STORAGE_RETRY_ATTEMPTS=1).list_drivers())
    assert exc_info.value.tenant_id == "acme"
    assert exc_info.value.status_code == 504


def test_lifecycle_and_plain_attributes_bypass_the_guard():
    provider = FakeProvider()
    storage = _storage(provider)
    asyncio.run(storage.provision())
    assert provider.calls["provision"] == 1
    assert storage.describe() == "fake"
    assert storage.location == "public"
    assert storage.tenant_id == "acme"
    with pytest.raises(AttributeError):
        storage._next


def test_operations_are_audited(caplog):
    caplog.set_level(logging.INFO, logger="security.audit")
    provider = FakeProvider()
    provider.script("list_companies", [{"tenant_id": "acme"}, {"tenant_id": "acme"}])
    asyncio.run(_storage(provider).list_companies())

    records = [r for r in caplog.records if r.name == "security.audit"]
    assert len(records) == 1
    message = records[0].getMessage()
    assert "op=list_companies" in message
    assert "outcome=ok" in message
    assert "principal=alice" in message
    assert "records=2" in message
    assert records[0].storage_mode == "shared"


def test_single_unmarked_record_is_blocked_in_shared_mode():
    provider = FakeProvider()
    provider.script("get_company", SimpleNamespace(id=1, name="x"))
    with pytest.raises(LeakageError) as exc_info:
        asyncio.run(_storage(provider).get_company(1))
    assert exc_info.value.source_tenants == ["<missing>"]


def test_single_unmarked_record_passes_in_dedicated_mode():
    provider = FakeProvider()
    row = SimpleNamespace(id=1, name="x")
    provider.script("get_company", row)
    assert asyncio.run(_storage(provider, StorageMode.DEDICATED_SCHEMA).get_company(1)) is row


def test_deterministic_driver_errors_are_not_retried(caplog):
    caplog.set_level(logging.INFO, logger="security.audit")
    provider = FakeProvider()
    provider.script(
        "list_drivers",
        ProgrammingError("SELECT 1", {}, Exception("bad parameter")),
        [],
    )
    with pytest.raises(ProgrammingError):
        asyncio.run(_storage(provider, STORAGE_RETRY_ATTEMPTS=3).list_drivers())
    assert provider.calls["list_drivers"] == 1
    audit = [r.getMessage() for r in caplog.records if r.name == "security.audit"]
    assert audit and "outcome=error" in audit[0]
    assert "error=ProgrammingError" in audit[0]
