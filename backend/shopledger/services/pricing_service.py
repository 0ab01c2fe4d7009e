# Overview: Pure money arithmetic for sale and purchase documents (integer cents).

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


BPS_DENOMINATOR = 10_000


@dataclass(frozen=True)
class DocumentTotals:
    total_amount_cents: int
    discount_cents: int
    tax_cents: int
    final_amount_cents: int


@dataclass(frozen=True)
class PricedLine:
    product_id: int
    quantity: int
    unit_price_cents: int
    discount_cents: int
    total_price_cents: int


def line_total(unit_price_cents: int, quantity: int, discount_cents: int = 0) -> int:
    """unit_price * quantity - discount."""
    return unit_price_cents * quantity - discount_cents


def vat(amount_cents: int, rate_bps: int) -> int:
    """
    Tax on amount_cents at rate_bps basis points, rounded to the nearest cent
    with halves rounded up (16.5% of 100000 -> 16500, of 1 -> 0, of 3 -> 0).
    """
    if amount_cents < 0:
        raise ValueError("amount_cents cannot be negative")
    if rate_bps < 0:
        raise ValueError("rate_bps cannot be negative")
    return (amount_cents * rate_bps + BPS_DENOMINATOR // 2) // BPS_DENOMINATOR


def apply_markup(cost_cents: int, markup_bps: int) -> int:
    """Selling price from cost: 13000 bps is cost * 1.3, rounded half-up."""
    return (cost_cents * markup_bps + BPS_DENOMINATOR // 2) // BPS_DENOMINATOR


def price_lines(items: Iterable) -> list[PricedLine]:
    """Price validated line inputs (anything with product_id/quantity/unit_price_cents/discount_cents)."""
    return [
        PricedLine(
            product_id=item.product_id,
            quantity=item.quantity,
            unit_price_cents=item.unit_price_cents,
            discount_cents=item.discount_cents,
            total_price_cents=line_total(item.unit_price_cents, item.quantity, item.discount_cents),
        )
        for item in items
    ]


def compute_totals(lines: Iterable[PricedLine], tax_rate_bps: int = 0) -> DocumentTotals:
    """
    Document totals from priced lines.

    total is the sum of line totals, already net of line discounts, so the
    header discount is always 0 and final = total - discount + tax holds.
    """
    lines = list(lines)
    total = sum(line.total_price_cents for line in lines)
    tax = vat(total, tax_rate_bps) if tax_rate_bps else 0
    return DocumentTotals(
        total_amount_cents=total,
        discount_cents=0,
        tax_cents=tax,
        final_amount_cents=total + tax,
    )
