from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from ..errors import ValidationError
from ..money import D, ZERO, money2


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    net_amount: Decimal

    def to_dict(self) -> dict:
        return {
            "subtotal": str(self.subtotal),
            "discount": str(self.discount),
            "tax": str(self.tax),
            "net_amount": str(self.net_amount),
        }


def compute_totals(lines: Iterable, discount=ZERO, tax=ZERO) -> OrderTotals:
    """
    subtotal = round2(sum(quantity * unit_price))
    net_amount = round2(subtotal - discount + tax)

    `lines` yields objects with quantity/unit_price attributes or
    (quantity, unit_price) pairs. Rounding is half-up and applied to the
    subtotal and the net amount only, never per line.
    """
    gross = Decimal("0")
    for line in lines:
        if isinstance(line, tuple):
            quantity, unit_price = line
        else:
            quantity, unit_price = line.quantity, line.unit_price
        gross += D(unit_price) * int(quantity)

    discount = money2(discount)
    tax = money2(tax)
    if discount < 0:
        raise ValidationError("discount cannot be negative", {"field": "discount"})
    if tax < 0:
        raise ValidationError("tax cannot be negative", {"field": "tax"})

    subtotal = money2(gross)
    net_amount = money2(subtotal - discount + tax)
    if net_amount < 0:
        raise ValidationError(
            "Discount exceeds order total",
            {"subtotal": str(subtotal), "discount": str(discount), "tax": str(tax)},
        )
    return OrderTotals(subtotal=subtotal, discount=discount, tax=tax, net_amount=net_amount)


def apply_totals(order, totals: OrderTotals) -> None:
    order.subtotal = totals.subtotal
    order.discount = totals.discount
    order.tax = totals.tax
    order.net_amount = totals.net_amount
