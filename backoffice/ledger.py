"""Stock arithmetic for order reservations.

Pure functions only: nothing here reads or writes the store. A positive delta
reserves stock (it is taken out of availability), a negative delta releases it.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from .errors import InsufficientStock

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class StockAdjustment:
    product_id: str
    delta: int


def compute_delta(old_quantity: Optional[int], new_quantity: int) -> int:
    return new_quantity - (old_quantity or 0)


def validate_reservation(current_stock: int, delta: int, product_id: str = "") -> None:
    if delta > 0 and current_stock < delta:
        raise InsufficientStock(product_id, available=current_stock, requested=delta)


def apply_delta(current_stock: int, delta: int, product_id: str = "") -> int:
    validate_reservation(current_stock, delta, product_id)
    return current_stock - delta


def plan_edit(
    old_product_id: str,
    old_quantity: int,
    new_product_id: str,
    new_quantity: int,
    *,
    symmetric_switch: bool = True,
) -> List[StockAdjustment]:
    """Stock adjustments needed to move an order to its new product/quantity.

    When the product changes and `symmetric_switch` is on, the new product is
    charged the full new quantity and the old product gets its full old
    quantity back. Otherwise only the quantity delta is charged to the new
    product and the old product is left untouched.
    """
    if old_product_id != new_product_id and symmetric_switch:
        return [
            StockAdjustment(new_product_id, compute_delta(None, new_quantity)),
            StockAdjustment(old_product_id, -old_quantity),
        ]
    delta = compute_delta(old_quantity, new_quantity)
    if delta == 0:
        return []
    return [StockAdjustment(new_product_id, delta)]


def line_total(unit_price: Decimal, quantity: int) -> Decimal:
    return unit_price * quantity


def display_money(amount: Decimal) -> str:
    return str(Decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP))
