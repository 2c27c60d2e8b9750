"""
Balance arithmetic shared by payment and weekly processing operations.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Tuple

CENT = Decimal("0.01")
# Outstanding amounts below this are treated as settled (rounding on invoices).
SETTLEMENT_TOLERANCE = Decimal("1")


def to_money(value: Any) -> Decimal:
    """Coerce numbers and numeric strings to a 2-decimal Decimal."""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


# PUBLIC_INTERFACE
def settle(total_invoiced: Any, total_paid: Any) -> Tuple[str, Decimal]:
    """
    Compute (payment_status, outstanding_balance) for a company week.

    - nothing paid: `pending`, outstanding equals the invoiced total
    - paid in full, or less than 1 left: `paid` (a sub-unit remainder is zeroed)
    - otherwise: `partial`
    """
    invoiced = to_money(total_invoiced)
    paid = to_money(total_paid)
    outstanding = invoiced - paid

    if paid == 0:
        return "pending", invoiced
    if paid >= invoiced or abs(outstanding) < SETTLEMENT_TOLERANCE:
        if abs(outstanding) < SETTLEMENT_TOLERANCE:
            outstanding = Decimal("0.00")
        return "paid", outstanding
    return "partial", outstanding
