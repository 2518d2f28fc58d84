"""Line item and document total arithmetic.

Stored aggregates are never trusted: every derived document has its item
totals, subtotal, tax and total recomputed from its own line items.
"""

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from invoice_transform.core.schemas_documents import LineItem

_CENT = Decimal("0.01")


def round_currency(value: float) -> float:
    """Round half-up to the cent."""
    return float(Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


def _finite(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def normalize_line_item(item: LineItem, index: int) -> LineItem:
    """
    Copy of ``item`` with finite quantity, rate and total.

    A stored total is kept. A missing or non-finite total is recomputed as
    ``quantity * rate``; an item with neither becomes zero.
    """
    quantity, rate, total = item.quantity, item.rate, item.total

    if _finite(total):
        if not _finite(quantity):
            quantity = 1.0
        if not _finite(rate):
            rate = total / quantity if quantity else 0.0
        total = round_currency(total)
    elif _finite(quantity) and _finite(rate):
        total = round_currency(quantity * rate)
    else:
        quantity, rate, total = 0.0, 0.0, 0.0

    return item.model_copy(update={
        "id": item.id or f"item-{index}",
        "quantity": quantity,
        "rate": rate,
        "total": total,
    })


def compute_totals(items: list[LineItem], tax_rate: float | None) -> tuple[float, float, float]:
    """(subtotal, tax_amount, total) for already-normalized line items."""
    subtotal = round_currency(sum(item.total or 0.0 for item in items))
    rate = tax_rate if _finite(tax_rate) else 0.0
    tax_amount = round_currency(subtotal * rate / 100)
    return subtotal, tax_amount, round_currency(subtotal + tax_amount)
