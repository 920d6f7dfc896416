# Overview: Cart arithmetic in integer cents.

from __future__ import annotations

from dataclasses import dataclass, field
from fractions import Fraction
from typing import Iterable

from .models import CartItem, ReceiptItem

_CURRENCY_SYMBOLS = {"EUR": "€", "USD": "$", "GBP": "£"}


@dataclass(frozen=True)
class CartTotals:
    subtotal_cents: int
    tax_cents: int
    total_cents: int
    # Tax grouped by VAT rate; key 22 means 22%
    tax_by_vat_rate: dict = field(default_factory=dict)


def _round_half_up(value: Fraction) -> int:
    # Amounts are never negative, so half-up and half-away-from-zero agree
    return int((value + Fraction(1, 2)) // 1)


def line_subtotal_cents(item: CartItem) -> int:
    return item.unit_price_cents * item.qty


def line_tax_cents(item: CartItem) -> int:
    """round(line subtotal x rate / 100), computed on the exact rational value."""
    rate = Fraction(str(item.vat_rate))
    return _round_half_up(line_subtotal_cents(item) * rate / 100)


def calculate_cart_totals(items: Iterable[CartItem]) -> CartTotals:
    subtotal_cents = 0
    tax_cents = 0
    tax_by_vat_rate: dict = {}

    for item in items:
        subtotal = line_subtotal_cents(item)
        tax = line_tax_cents(item)

        subtotal_cents += subtotal
        tax_cents += tax
        tax_by_vat_rate[item.vat_rate] = tax_by_vat_rate.get(item.vat_rate, 0) + tax

    return CartTotals(
        subtotal_cents=subtotal_cents,
        tax_cents=tax_cents,
        total_cents=subtotal_cents + tax_cents,
        tax_by_vat_rate=tax_by_vat_rate,
    )


def cart_to_receipt_items(items: Iterable[CartItem]) -> list[ReceiptItem]:
    return [
        ReceiptItem(
            name=item.name,
            qty=item.qty,
            unit_price_cents=item.unit_price_cents,
            vat_rate=item.vat_rate,
            line_total_cents=line_subtotal_cents(item),
        )
        for item in items
    ]


def format_money(cents: int, currency: str = "EUR") -> str:
    """Render cents for display, e.g. 473 -> '€4.73'."""
    sign = "-" if cents < 0 else ""
    whole, minor = divmod(abs(cents), 100)
    amount = f"{whole:,}.{minor:02d}"
    symbol = _CURRENCY_SYMBOLS.get(currency.upper())
    if symbol:
        return f"{sign}{symbol}{amount}"
    return f"{sign}{amount} {currency.upper()}"
