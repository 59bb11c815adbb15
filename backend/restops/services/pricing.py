# Overview: Order totals and VAT lookup; pure functions, no database access.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

BPS_DENOMINATOR = Decimal(10000)


@dataclass(frozen=True)
class OrderTotals:
    total_ht_cents: int
    tva_amount_cents: int
    total_ttc_cents: int

    def to_dict(self) -> dict:
        return {
            "total_ht_cents": self.total_ht_cents,
            "tva_amount_cents": self.tva_amount_cents,
            "total_ttc_cents": self.total_ttc_cents,
        }


def _round_cents(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_order_totals(items: Iterable) -> OrderTotals:
    """
    Recompute totals from scratch.

    items: OrderItem rows, or any objects exposing unit_price_cents, quantity
    and vat_rate_bps. VAT is computed per line at the line's own rate and kept
    exact until the final rounding to cents (half-up).
    """
    total_ht = 0
    vat = Decimal(0)
    for item in items:
        line_ht = item.unit_price_cents * item.quantity
        total_ht += line_ht
        vat += Decimal(line_ht) * Decimal(item.vat_rate_bps) / BPS_DENOMINATOR

    tva_amount = _round_cents(vat)
    return OrderTotals(
        total_ht_cents=total_ht,
        tva_amount_cents=tva_amount,
        total_ttc_cents=total_ht + tva_amount,
    )


def vat_rate_for_category(category: str, categories: dict, rates: dict, default_class: str) -> int:
    """VAT rate in basis points for a product category (unknown categories use the default class)."""
    vat_class = categories.get(category, default_class)
    if vat_class not in rates:
        vat_class = default_class
    return int(rates[vat_class])
