import logging
from types import SimpleNamespace

import pytest

from src.tenancy.constants import StorageMode
from src.tenancy.errors import LeakageError
from src.tenancy.validator import LeakageValidator, collect_records


def test_matching_records_are_returned_unchanged():
    records = [{"tenant_id": "acme", "name": "A"}, SimpleNamespace(tenant_id="acme", name="B")]
    assert LeakageValidator().validate("acme", records) == records


def test_foreign_records_fail_closed(caplog):
    caplog.set_level(logging.CRITICAL, logger="security.isolation")
    records = [
        {"tenant_id": "acme"},
        {"tenant_id": "globex"},
        {"tenant_id": "globex"},
        {"tenant_id": "initech"},
    ]
    with pytest.raises(LeakageError) as exc_info:
        LeakageValidator().validate("acme", records, operation="list_companies")

    err = exc_info.value
    assert err.tenant_id == "acme"
    assert err.offending_count == 3
    assert err.source_tenants == ["globex", "initech"]
    assert "list_companies" in str(err)
    assert any(r.levelno == logging.CRITICAL for r in caplog.records)


def test_missing_marker_is_a_leak_in_shared_storage():
    with pytest.raises(LeakageError) as exc_info:
        LeakageValidator().validate("acme", [{"name": "no marker"}], StorageMode.SHARED)
    assert exc_info.value.source_tenants == ["<missing>"]


def test_dedicated_storage_allows_missing_marker_but_not_a_wrong_one():
    validator = LeakageValidator()
    validator.validate("acme", [{"name": "no marker"}], StorageMode.DEDICATED_SCHEMA)
    with pytest.raises(LeakageError):
        validator.validate("acme", [{"tenant_id": "globex"}], StorageMode.DEDICATED_EXTERNAL)


def test_empty_result_is_valid():
    assert LeakageValidator().validate("acme", []) == []


def test_collect_records_normalises_results():
    row = SimpleNamespace(tenant_id="acme")
    assert collect_records(None) == []
    assert collect_records(1554) == []
    assert collect_records(row) == [row]
    assert collect_records([row, None]) == [row]
    assert collect_records({"tenant_id": "acme"}) == [{"tenant_id": "acme"}]


def test_unmarked_objects_are_records_to_check():
    row = SimpleNamespace(id=1, name="x")
    assert collect_records(row) == [row]
    assert collect_records("text") == []
    assert collect_records(True) == []
    assert collect_records({"cached": 2}) == []
    with pytest.raises(LeakageError):
        LeakageValidator().validate("acme", collect_records(row), StorageMode.SHARED)
