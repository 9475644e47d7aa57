# Overview: Sign conventions mapping invoice type to stock, partner balance and cash direction.

"""
Balance/Stock Projector

Pure functions, no database access. The ledger engine asks this module
"which way does this invoice move things" and applies the answer.

Invoice type     | Stock | Partner balance (unpaid remainder > 0) | Cash
-----------------|-------|----------------------------------------|-----
SALE             |  -1   | increase                               | IN
PURCHASE         |  +1   | increase                               | OUT
SALE_RETURN      |  +1   | increase                               | OUT
PURCHASE_RETURN  |  -1   | increase                               | IN

Partner.balance is a running total of unpaid remainders for both partner
types. It is not split into receivable and payable.
"""

from __future__ import annotations

from ..models.cash import CASH_IN, CASH_OUT
from ..models.invoices import (
    INVOICE_PURCHASE,
    INVOICE_PURCHASE_RETURN,
    INVOICE_SALE,
    INVOICE_SALE_RETURN,
    PAYMENT_CASH,
)
from ..validation import ValidationError


STOCK_MULTIPLIERS = {
    INVOICE_SALE: -1,
    INVOICE_PURCHASE: 1,
    INVOICE_SALE_RETURN: 1,
    INVOICE_PURCHASE_RETURN: -1,
}

CASH_DIRECTIONS = {
    INVOICE_SALE: CASH_IN,
    INVOICE_PURCHASE: CASH_OUT,
    INVOICE_SALE_RETURN: CASH_OUT,
    INVOICE_PURCHASE_RETURN: CASH_IN,
}


def stock_multiplier(invoice_type: str) -> int:
    try:
        return STOCK_MULTIPLIERS[invoice_type]
    except KeyError:
        raise ValidationError(f"Unknown invoice type {invoice_type}")


def stock_delta(invoice_type: str, qty: int) -> int:
    """Signed change to Product.stock for one invoice line."""
    return qty * stock_multiplier(invoice_type)


def cash_direction(invoice_type: str) -> str:
    try:
        return CASH_DIRECTIONS[invoice_type]
    except KeyError:
        raise ValidationError(f"Unknown invoice type {invoice_type}")


def partner_balance_delta(
    *,
    invoice_type: str,
    partner_id: str | None,
    payment_method: str,
    grand_total_cents: int,
    paid_amount_cents: int,
) -> int:
    """
    Change to Partner.balance when the invoice is posted.

    Only a partner invoice not paid purely in cash with an unpaid remainder
    moves the balance, and it always moves up by that remainder.
    """
    stock_multiplier(invoice_type)  # rejects unknown types
    if not partner_id or payment_method == PAYMENT_CASH:
        return 0
    remaining = grand_total_cents - paid_amount_cents
    return remaining if remaining > 0 else 0
