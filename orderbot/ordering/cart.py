# orderbot/ordering/cart.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Sequence, Tuple

CATEGORY_MAIN = "main"
CATEGORY_SNACK = "snack"
CATEGORY_DRINK = "drink"


@dataclass
class CartLine:
    name: str
    unit_price: Decimal
    quantity: int
    category: str = CATEGORY_MAIN

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


def format_price(amount: Decimal | int | float, currency_symbol: str = "$") -> str:
    """Colombian-style price: '$ 10.000' (dot thousands, no decimals unless needed)."""
    value = Decimal(str(amount))
    if value == value.to_integral_value():
        body = f"{int(value):,}".replace(",", ".")
    else:
        body = f"{value:,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{currency_symbol} {body}"


def cart_total(cart: Sequence[CartLine]) -> Decimal:
    total = Decimal("0")
    for line in cart:
        total += line.subtotal
    return total


def build_summary(cart: Sequence[CartLine], currency_symbol: str = "$") -> Tuple[List[str], Decimal]:
    lines: List[str] = []
    for line in cart:
        lines.append(f"{line.quantity}x {line.name}: {format_price(line.subtotal, currency_symbol)}")
    return lines, cart_total(cart)
