"""Payout Split — deposit settlement on termination.

Invariants:
    - refund + fee + retained == issuance_price (nothing created or lost)
    - Fractions applied with Decimal and floored to whole base units
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR


@dataclass(frozen=True)
class Payout:
    refund: int
    fee: int
    retained: int

    @property
    def total(self) -> int:
        return self.refund + self.fee


def _floor_fraction(amount: int, fraction: float) -> int:
    value = Decimal(amount) * Decimal(str(fraction))
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def compute_payout(
    issuance_price: int, refund_fraction: float, fee_fraction: float,
) -> Payout:
    """Split the escrowed deposit into holder refund and treasury fee."""
    refund = _floor_fraction(issuance_price, refund_fraction)
    fee = _floor_fraction(issuance_price, fee_fraction)
    if refund + fee > issuance_price:
        raise ValueError("payout fractions exceed the issuance price")
    return Payout(refund=refund, fee=fee, retained=issuance_price - refund - fee)
