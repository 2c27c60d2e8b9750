from decimal import Decimal

from src.services.billing import settle, to_money


def test_nothing_paid_is_pending_with_full_outstanding():
    assert settle(Decimal("1000"), 0) == ("pending", Decimal("1000.00"))


def test_partial_payment_leaves_outstanding():
    status, outstanding = settle("1000", "400")
    assert status == "partial"
    assert outstanding == Decimal("600.00")


def test_full_and_overpayment_are_paid():
    assert settle(1000, 1000) == ("paid", Decimal("0.00"))
    status, outstanding = settle(1000, 1250)
    assert status == "paid"
    assert outstanding == Decimal("-250.00")


def test_sub_unit_remainder_counts_as_paid():
    status, outstanding = settle("1000.00", "999.50")
    assert status == "paid"
    assert outstanding == Decimal("0.00")


def test_to_money_rounds_half_up_and_handles_none():
    assert to_money(None) == Decimal("0.00")
    assert to_money(1.005) == Decimal("1.01")
    assert to_money("12.345") == Decimal("12.35")
