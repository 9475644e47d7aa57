# Overview: Line and invoice arithmetic (discounts, tax, rounding) in integer cents.

"""
Totals Calculator

MONEY MODEL:
- Amounts are integer cents, rates and percent discounts are basis points
  (10000 = 100%). No binary floating point anywhere.
- Every multiplication by a rate is rounded to the nearest cent, half-up.

PER LINE:
    line_discount = FIXED   ? discount * qty
                    PERCENT ? round(price * qty * discount_bps / 10000)
    taxable_base  = price * qty - line_discount
    tax_amount    = round(max(0, taxable_base) * tax_rate_bps / 10000)
    line_total    = taxable_base + tax_amount

INVOICE:
    subtotal        = sum(price * qty)
    global_discount = FIXED   ? amount
                      PERCENT ? round((subtotal - line_discounts) * bps / 10000)
    discount_total  = line_discounts + global_discount
    tax_total       = sum(tax_amount), scaled by
                      (1 - global_discount / (subtotal - line_discounts))
                      when a global discount applies (approximation, not a
                      per-line recomputation)
    grand_total     = max(0, subtotal - discount_total + tax_total)
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..validation import ValidationError, coerce_bps, coerce_cents, coerce_choice, coerce_qty


DISCOUNT_FIXED = "FIXED"
DISCOUNT_PERCENT = "PERCENT"

DISCOUNT_TYPES = [DISCOUNT_FIXED, DISCOUNT_PERCENT]

BPS_DENOMINATOR = 10_000


def round_half_up(numerator: int, denominator: int) -> int:
    """Integer division rounded to nearest, ties away from zero."""
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    if numerator >= 0:
        return (numerator + denominator // 2) // denominator
    return -((-numerator + denominator // 2) // denominator)


def apply_bps(amount_cents: int, bps: int) -> int:
    return round_half_up(amount_cents * bps, BPS_DENOMINATOR)


@dataclass(frozen=True)
class LineInput:
    """
    Priced cart line.

    discount is cents per unit for FIXED, basis points for PERCENT.
    """
    qty: int
    price_cents: int
    tax_rate_bps: int = 0
    discount: int = 0
    discount_type: str = DISCOUNT_FIXED

    @classmethod
    def from_dict(cls, data: dict) -> "LineInput":
        discount_type = coerce_choice(data.get("discount_type", DISCOUNT_FIXED), "discount_type", DISCOUNT_TYPES)
        raw_discount = data.get("discount", 0)
        if discount_type == DISCOUNT_PERCENT:
            discount = coerce_bps(raw_discount, "discount")
        else:
            discount = coerce_cents(raw_discount, "discount")
        return cls(
            qty=coerce_qty(data.get("qty"), "qty"),
            price_cents=coerce_cents(data.get("price_cents"), "price_cents"),
            tax_rate_bps=coerce_bps(data.get("tax_rate_bps", 0), "tax_rate_bps"),
            discount=discount,
            discount_type=discount_type,
        )


@dataclass(frozen=True)
class LineTotals:
    gross_cents: int
    discount_cents: int
    taxable_base_cents: int
    tax_amount_cents: int
    total_cents: int

    def to_dict(self) -> dict:
        return {
            "gross_cents": self.gross_cents,
            "discount_cents": self.discount_cents,
            "taxable_base_cents": self.taxable_base_cents,
            "tax_amount_cents": self.tax_amount_cents,
            "total_cents": self.total_cents,
        }


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal_cents: int
    line_discount_cents: int
    global_discount_cents: int
    discount_total_cents: int
    net_before_tax_cents: int
    tax_total_cents: int
    grand_total_cents: int
    item_count: int
    lines: list[LineTotals] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "subtotal_cents": self.subtotal_cents,
            "line_discount_cents": self.line_discount_cents,
            "global_discount_cents": self.global_discount_cents,
            "discount_total_cents": self.discount_total_cents,
            "net_before_tax_cents": self.net_before_tax_cents,
            "tax_total_cents": self.tax_total_cents,
            "grand_total_cents": self.grand_total_cents,
            "item_count": self.item_count,
            "lines": [line.to_dict() for line in self.lines],
        }


def compute_line(line: LineInput) -> LineTotals:
    gross = line.price_cents * line.qty

    if line.discount_type == DISCOUNT_FIXED:
        discount = line.discount * line.qty
    elif line.discount_type == DISCOUNT_PERCENT:
        discount = apply_bps(gross, line.discount)
    else:
        raise ValidationError(f"Unknown discount type {line.discount_type}")

    return compute_resolved_line(
        qty=line.qty,
        price_cents=line.price_cents,
        discount_cents=discount,
        tax_rate_bps=line.tax_rate_bps,
    )


def compute_resolved_line(*, qty: int, price_cents: int, discount_cents: int, tax_rate_bps: int) -> LineTotals:
    """Line arithmetic once the discount is an absolute amount for the whole line."""
    gross = price_cents * qty
    taxable_base = gross - discount_cents
    tax_amount = apply_bps(max(0, taxable_base), tax_rate_bps)

    return LineTotals(
        gross_cents=gross,
        discount_cents=discount_cents,
        taxable_base_cents=taxable_base,
        tax_amount_cents=tax_amount,
        total_cents=taxable_base + tax_amount,
    )


def aggregate_totals(line_totals: list[LineTotals], global_amount: int, item_count: int) -> InvoiceTotals:
    """Invoice totals from already computed lines and a resolved global discount."""
    subtotal = sum(lt.gross_cents for lt in line_totals)
    line_discounts = sum(lt.discount_cents for lt in line_totals)
    tax_total = sum(lt.tax_amount_cents for lt in line_totals)

    if global_amount < 0:
        raise ValidationError("global discount cannot be negative")

    tax_total = scale_tax_for_global_discount(tax_total, global_amount, subtotal - line_discounts)

    discount_total = line_discounts + global_amount
    net_before_tax = subtotal - discount_total
    grand_total = max(0, net_before_tax + tax_total)

    return InvoiceTotals(
        subtotal_cents=subtotal,
        line_discount_cents=line_discounts,
        global_discount_cents=global_amount,
        discount_total_cents=discount_total,
        net_before_tax_cents=net_before_tax,
        tax_total_cents=tax_total,
        grand_total_cents=grand_total,
        item_count=item_count,
        lines=list(line_totals),
    )


def compute_invoice_totals(
    lines: list[LineInput],
    global_discount: int = 0,
    global_discount_type: str = DISCOUNT_FIXED,
) -> InvoiceTotals:
    """Aggregate lines and an optional invoice-level discount."""
    line_totals = [compute_line(line) for line in lines]

    net_after_lines = sum(lt.gross_cents - lt.discount_cents for lt in line_totals)
    if global_discount_type == DISCOUNT_FIXED:
        global_amount = global_discount
    elif global_discount_type == DISCOUNT_PERCENT:
        global_amount = apply_bps(net_after_lines, global_discount)
    else:
        raise ValidationError(f"Unknown discount type {global_discount_type}")

    return aggregate_totals(line_totals, global_amount, sum(line.qty for line in lines))


def scale_tax_for_global_discount(tax_total: int, global_amount: int, net_after_lines: int) -> int:
    """
    tax_total * (1 - global_amount / net_after_lines), rounded half-up.

    A global discount that swallows the whole net leaves no tax.
    """
    if global_amount <= 0 or net_after_lines <= 0:
        return tax_total
    remaining = net_after_lines - global_amount
    if remaining <= 0:
        return 0
    return round_half_up(tax_total * remaining, net_after_lines)
