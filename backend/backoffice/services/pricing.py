# Overview: Pure money arithmetic shared by sales, purchases and quotations.

"""
Totals math, in integer cents and basis points.

    line_total = quantity * unit_price - line_discount        (must be >= 0)
    subtotal   = sum(line_total)
    net        = subtotal - promotion_discount - header_discount  (must be >= 0)
    tax        = round_half_up(net * tax_rate_bps / 10000)
    total      = net + tax

Nothing here touches the database.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence

from backoffice.validation import MAX_BPS, MAX_PRICE_CENTS, ValidationError


@dataclass(frozen=True)
class LineInput:
    product_id: int
    quantity: int
    unit_price_cents: int
    discount_cents: int = 0


@dataclass(frozen=True)
class PricedLine:
    product_id: int
    quantity: int
    unit_price_cents: int
    discount_cents: int
    line_total_cents: int


@dataclass(frozen=True)
class Totals:
    lines: tuple[PricedLine, ...]
    subtotal_cents: int
    promotion_discount_cents: int
    discount_cents: int
    net_cents: int
    tax_rate_bps: int
    tax_cents: int
    total_cents: int


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def apply_bps(amount_cents: int, bps: int) -> int:
    """amount * bps / 10000, rounded half-up to the cent."""
    return round_half_up(Decimal(amount_cents) * Decimal(bps) / Decimal(MAX_BPS))


def price_line(line: LineInput) -> PricedLine:
    if line.quantity <= 0:
        raise ValidationError(
            "quantity must be > 0",
            details={"product_id": line.product_id, "quantity": line.quantity},
        )
    if line.unit_price_cents < 0:
        raise ValidationError(
            "unit_price_cents must be >= 0",
            details={"product_id": line.product_id},
        )
    if line.discount_cents < 0:
        raise ValidationError(
            "discount_cents must be >= 0",
            details={"product_id": line.product_id},
        )

    gross = line.quantity * line.unit_price_cents
    total = gross - line.discount_cents
    if total < 0:
        raise ValidationError(
            "InvalidAmount: line discount exceeds line amount",
            details={"product_id": line.product_id, "line_amount_cents": gross, "discount_cents": line.discount_cents},
        )
    if total > MAX_PRICE_CENTS:
        raise ValidationError("InvalidAmount: line total too large", details={"product_id": line.product_id})

    return PricedLine(
        product_id=line.product_id,
        quantity=line.quantity,
        unit_price_cents=line.unit_price_cents,
        discount_cents=line.discount_cents,
        line_total_cents=total,
    )


def subtotal_of(lines: Iterable[LineInput]) -> int:
    return sum(price_line(line).line_total_cents for line in lines)


def compute_totals(
    lines: Sequence[LineInput],
    *,
    discount_cents: int = 0,
    promotion_discount_cents: int = 0,
    tax_rate_bps: int = 0,
) -> Totals:
    if not lines:
        raise ValidationError("At least one item is required")
    if discount_cents < 0:
        raise ValidationError("discount_cents must be >= 0")
    if promotion_discount_cents < 0:
        raise ValidationError("promotion_discount_cents must be >= 0")
    if tax_rate_bps < 0 or tax_rate_bps > MAX_BPS:
        raise ValidationError(f"tax_rate_bps must be between 0 and {MAX_BPS}")

    priced = tuple(price_line(line) for line in lines)
    subtotal = sum(p.line_total_cents for p in priced)

    net = subtotal - promotion_discount_cents - discount_cents
    if net < 0:
        raise ValidationError(
            "InvalidAmount: discounts exceed subtotal",
            details={
                "subtotal_cents": subtotal,
                "promotion_discount_cents": promotion_discount_cents,
                "discount_cents": discount_cents,
            },
        )

    tax = apply_bps(net, tax_rate_bps)

    return Totals(
        lines=priced,
        subtotal_cents=subtotal,
        promotion_discount_cents=promotion_discount_cents,
        discount_cents=discount_cents,
        net_cents=net,
        tax_rate_bps=tax_rate_bps,
        tax_cents=tax,
        total_cents=net + tax,
    )
