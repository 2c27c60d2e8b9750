import asyncio
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import ProgrammingError

from src.db.session import make_session_maker
from src.repositories.base import to_json_dict
from src.storage.sql import DEFAULT_COMPANY, SharedSchemaProvider
from src.tenancy.errors import ConstraintViolation, NotFound, StorageConnectionError

from factories import make_database, sqlite_url


def _run(tmp_path, scenario):
    async def runner():
        engine = await make_database(sqlite_url(tmp_path))
        session_maker = make_session_maker(engine)
        acme = SharedSchemaProvider("acme", session_maker)
        globex = SharedSchemaProvider("globex", session_maker)
        await acme.provision()
        await globex.provision()
        try:
            await scenario(acme, globex)
        finally:
            await engine.dispose()

    asyncio.run(runner())


def test_provision_seeds_default_company_once(tmp_path):
    async def scenario(acme, globex):
        await acme.provision()
        companies = await acme.list_companies()
        assert [c.name for c in companies] == [DEFAULT_COMPANY["name"]]
        assert companies[0].tenant_id == "acme"
        assert await acme.next_order_number() == 1554

    _run(tmp_path, scenario)


def test_tenants_only_see_their_own_rows(tmp_path):
    async def scenario(acme, globex):
        mine = await acme.create_company({"name": "Acme Freight", "commission_rate": Decimal("0.05")})
        # Same name is allowed in another tenant.
        theirs = await globex.create_company({"name": "Acme Freight", "commission_rate": Decimal("0.02")})

        acme_names = {c.name for c in await acme.list_companies()}
        assert acme_names == {"Acme Freight", DEFAULT_COMPANY["name"]}
        assert all(c.tenant_id == "acme" for c in await acme.list_companies())

        with pytest.raises(NotFound) as exc_info:
            await acme.get_company(theirs.id)
        assert exc_info.value.tenant_id == "acme"
        with pytest.raises(NotFound):
            await acme.update_company(theirs.id, {"contact": "hijack"})
        with pytest.raises(NotFound):
            await acme.delete_company(theirs.id)

        assert (await globex.get_company(theirs.id)).commission_rate == Decimal("0.0200")
        assert (await acme.get_company(mine.id)).commission_rate == Decimal("0.0500")

    _run(tmp_path, scenario)


def test_caller_cannot_stamp_another_tenant(tmp_path):
    async def scenario(acme, globex):
        created = await acme.create_company(
            {"name": "Sneaky", "commission_rate": Decimal("0.04"), "tenant_id": "globex", "id": 999}
        )
        assert created.tenant_id == "acme"
        assert created.id != 999
        assert "Sneaky" not in {c.name for c in await globex.list_companies()}

    _run(tmp_path, scenario)


def test_duplicate_company_name_rolls_back(tmp_path):
    async def scenario(acme, globex):
        await acme.create_company({"name": "Dup", "commission_rate": Decimal("0.04")})
        with pytest.raises(ConstraintViolation) as exc_info:
            await acme.create_company({"name": "Dup", "commission_rate": Decimal("0.04")})
        assert exc_info.value.tenant_id == "acme"
        # The provider is still usable after the failed transaction.
        assert len(await acme.list_companies()) == 2

    _run(tmp_path, scenario)


def test_driver_must_belong_to_a_company_of_the_same_tenant(tmp_path):
    async def scenario(acme, globex):
        foreign = (await globex.list_companies())[0]
        with pytest.raises(NotFound):
            await acme.create_driver({"name": "Ion Popescu", "company_id": foreign.id})
        assert await acme.list_drivers() == []

        own = (await acme.list_companies())[0]
        driver = await acme.create_driver({"name": "Ion Popescu", "company_id": own.id, "name_variants": ["POPESCU ION"]})
        assert driver.name_variants == ["POPESCU ION"]
        assert [d.id for d in await acme.list_drivers_by_company(own.id)] == [driver.id]

    _run(tmp_path, scenario)


def test_payments_settle_company_balance(tmp_path):
    async def scenario(acme, globex):
        balance = await acme.upsert_company_balance("Acme Freight", "W01", "1000")
        assert (balance.payment_status, balance.outstanding_balance) == ("pending", Decimal("1000.00"))

        first = await acme.create_payment(
            {"company_name": "Acme Freight", "week_label": "W01", "amount": Decimal("400")}
        )
        balance = await acme.get_company_balance("Acme Freight", "W01")
        assert balance.payment_status == "partial"
        assert balance.outstanding_balance == Decimal("600.00")

        balance = await acme.record_balance_payment("Acme Freight", "W01", "599.50")
        assert balance.payment_status == "paid"
        assert balance.total_paid == Decimal("999.50")
        assert balance.outstanding_balance == Decimal("0.00")

        await acme.delete_payment(first.id)
        balance = await acme.get_company_balance("Acme Freight", "W01")
        assert balance.payment_status == "partial"
        assert balance.total_paid == Decimal("599.50")
        assert balance.outstanding_balance == Decimal("400.50")

        history = await acme.list_payment_history()
        deleted = [h for h in history if h.action == "deleted"]
        assert len(deleted) == 1
        assert deleted[0].payment_id is None
        assert deleted[0].previous_data["amount"] == "400.00"

        # Other tenants see none of it.
        assert await globex.list_payments() == []
        assert await globex.list_company_balances() == []

    _run(tmp_path, scenario)


def test_moving_a_payment_resettles_both_weeks(tmp_path):
    async def scenario(acme, globex):
        await acme.upsert_company_balance("Acme Freight", "W01", 500)
        await acme.upsert_company_balance("Acme Freight", "W02", 500)
        payment = await acme.create_payment(
            {"company_name": "Acme Freight", "week_label": "W01", "amount": Decimal("500")}
        )
        assert (await acme.get_company_balance("Acme Freight", "W01")).payment_status == "paid"

        await acme.update_payment(payment.id, {"week_label": "W02"})
        assert (await acme.get_company_balance("Acme Freight", "W01")).payment_status == "pending"
        assert (await acme.get_company_balance("Acme Freight", "W02")).payment_status == "paid"

        updated = [h for h in await acme.list_payment_history(payment.id) if h.action == "updated"]
        assert updated[0].previous_data["week_label"] == "W01"

    _run(tmp_path, scenario)


def test_balance_payment_without_balance_writes_nothing(tmp_path):
    async def scenario(acme, globex):
        with pytest.raises(NotFound):
            await acme.record_balance_payment("Nobody", "W09", 10)
        assert await acme.list_payments() == []

    _run(tmp_path, scenario)


def test_weekly_processing_skips_known_vrids(tmp_path):
    async def scenario(acme, globex):
        week = await acme.save_weekly_processing(
            "W10",
            trip_data=[
                {"Trip ID": "VR1", "Driver": "Ion", "Trip Date": "2024-03-04", "Route": "DE-NL"},
                {"VR ID": "VR2", "Driver": "Ana"},
                {"Trip ID": "VR1", "Driver": "Ion (duplicate line)"},
                {"Driver": "No VRID"},
            ],
            invoice7_data=[{"line": 1}],
            company_totals={"Acme Freight": {"total_invoiced": 1500}, "Other SRL": 200},
        )
        assert week.trip_data_count == 4
        assert week.invoice7_count == 1
        assert {t.vrid for t in await acme.list_historical_trips("W10")} == {"VR1", "VR2"}

        await acme.save_weekly_processing("W11", trip_data=[{"Trip ID": "VR2"}, {"Trip ID": "VR3"}])
        assert {t.vrid for t in await acme.list_historical_trips("W11")} == {"VR3"}

        found = await acme.find_trips_by_vrids(["VR1", "VR3", "VR404"])
        assert [(t.vrid, t.week_label) for t in found] == [("VR1", "W10"), ("VR3", "W11")]
        assert await globex.find_trips_by_vrids(["VR1"]) == []

        balance = await acme.get_company_balance("Acme Freight", "W10")
        assert (balance.total_invoiced, balance.payment_status) == (Decimal("1500.00"), "pending")
        assert (await acme.get_company_balance("Other SRL", "W10")).total_invoiced == Decimal("200.00")

        # Saving the same week again updates it in place.
        await acme.save_weekly_processing("W10", processed_data={"rerun": True})
        weeks = await acme.list_weekly_processing()
        assert sorted(w.week_label for w in weeks) == ["W10", "W11"]
        assert (await acme.get_weekly_processing("W10")).processed_data == {"rerun": True}

    _run(tmp_path, scenario)


def test_order_numbers_are_sequential_per_tenant(tmp_path):
    async def scenario(acme, globex):
        order = {
            "company_name": "Acme Freight",
            "order_date": datetime(2024, 3, 4),
            "week_label": "W10",
            "vrids": ["VR1"],
            "total_amount": Decimal("350"),
        }
        first = await acme.create_transport_order(order)
        second = await acme.create_transport_order(order)
        assert (first.order_number, second.order_number) == ("1554", "1555")
        assert await acme.next_order_number() == 1556
        assert await globex.next_order_number() == 1554
        assert [o.order_number for o in await acme.list_transport_orders(week_label="W10")] == ["1555", "1554"]

    _run(tmp_path, scenario)


def test_drop_removes_only_the_tenants_rows(tmp_path):
    async def scenario(acme, globex):
        await acme.create_payment({"company_name": "X", "week_label": "W01", "amount": Decimal("1")})
        await acme.drop()
        assert await acme.list_companies() == []
        assert await acme.list_payments() == []
        assert len(await globex.list_companies()) == 1

    _run(tmp_path, scenario)

def test_deterministic_driver_errors_are_not_reported_as_unavailable(tmp_path):
    async def scenario(acme, globex):
        # An unbindable parameter fails identically on every attempt.
        with pytest.raises(ProgrammingError) as exc_info:
            await acme.get_company_by_name(object())
        assert not isinstance(exc_info.value, StorageConnectionError)
        # The failed transaction was rolled back; the provider still works.
        assert len(await acme.list_companies()) == 1

    _run(tmp_path, scenario)


ROUND_TRIP_SKIP = {"id", "created_at", "last_updated"}


def _dump(row):
    return {k: v for k, v in to_json_dict(row).items() if k not in ROUND_TRIP_SKIP}


def _assert_round_trip(created, read, expected):
    assert _dump(read) == _dump(created)
    dumped = _dump(read)
    assert {k: dumped[k] for k in expected} == expected
    assert dumped["tenant_id"] == "acme"


def test_company_round_trip(tmp_path):
    async def scenario(acme, globex):
        data = {
            "name": "Acme Freight",
            "commission_rate": Decimal("0.05"),
            "cif": "RO123456",
            "trade_register_number": "J40/1/2020",
            "address": "Str. Exemplu 1",
            "location": "Cluj-Napoca",
            "county": "Cluj",
            "country": "Romania",
            "contact": "ops@acme.ro",
        }
        created = await acme.create_company(data)
        read = await acme.get_company(created.id)
        _assert_round_trip(created, read, {**data, "commission_rate": "0.0500"})

    _run(tmp_path, scenario)


def test_driver_round_trip(tmp_path):
    async def scenario(acme, globex):
        company = (await acme.list_companies())[0]
        data = {
            "name": "Ion Popescu",
            "company_id": company.id,
            "name_variants": ["POPESCU ION", "I. Popescu"],
            "phone": "0700000000",
            "email": "ion@acme.ro",
        }
        created = await acme.create_driver(data)
        _assert_round_trip(created, await acme.get_driver(created.id), data)

    _run(tmp_path, scenario)


def test_weekly_processing_and_trip_round_trip(tmp_path):
    async def scenario(acme, globex):
        trip = {"Trip ID": "VR7", "Driver": "Ana", "Route": "DE-NL", "Trip Date": "2024-03-04"}
        created = await acme.save_weekly_processing(
            "W07",
            trip_data=[trip],
            invoice30_data=[{"line": 2}],
            processed_data={"Acme Freight": {"total": 120}},
        )
        _assert_round_trip(
            created,
            await acme.get_weekly_processing("W07"),
            {
                "week_label": "W07",
                "trip_data_count": 1,
                "invoice7_count": 0,
                "invoice30_count": 1,
                "processed_data": {"Acme Freight": {"total": 120}},
                "trip_data": [trip],
                "invoice7_data": [],
                "invoice30_data": [{"line": 2}],
            },
        )

        listed = await acme.list_historical_trips("W07")
        found = await acme.find_trips_by_vrids(["VR7"])
        assert len(listed) == len(found) == 1
        _assert_round_trip(
            listed[0],
            found[0],
            {"vrid": "VR7", "driver_name": "Ana", "week_label": "W07", "route": "DE-NL", "raw_trip_data": trip},
        )

    _run(tmp_path, scenario)


def test_payment_round_trip(tmp_path):
    async def scenario(acme, globex):
        data = {
            "company_name": "Acme Freight",
            "week_label": "W01",
            "amount": Decimal("400"),
            "description": "Bank transfer",
            "payment_type": "full",
        }
        created = await acme.create_payment(data)
        _assert_round_trip(created, await acme.get_payment(created.id), {**data, "amount": "400.00"})

    _run(tmp_path, scenario)


def test_company_balance_round_trip(tmp_path):
    async def scenario(acme, globex):
        created = await acme.upsert_company_balance("Acme Freight", "W01", "1250.5")
        _assert_round_trip(
            created,
            await acme.get_company_balance("Acme Freight", "W01"),
            {
                "company_name": "Acme Freight",
                "week_label": "W01",
                "total_invoiced": "1250.50",
                "total_paid": "0.00",
                "outstanding_balance": "1250.50",
                "payment_status": "pending",
            },
        )

    _run(tmp_path, scenario)


def test_transport_order_round_trip(tmp_path):
    async def scenario(acme, globex):
        data = {
            "order_number": "EXT-9",
            "company_name": "Acme Freight",
            "order_date": datetime(2024, 3, 4, 8, 30),
            "week_label": "W10",
            "vrids": ["VR1", "VR2"],
            "total_amount": Decimal("350"),
            "route": "DE-BE-NL",
            "status": "sent",
        }
        created = await acme.create_transport_order(data)
        _assert_round_trip(
            created,
            await acme.get_transport_order(created.id),
            {**data, "order_date": "2024-03-04T08:30:00", "total_amount": "350.00"},
        )

    _run(tmp_path, scenario)
