"""
Ledger Engine - invoice posting and expenses

WHY: A posted invoice moves several things at once (stock, partner balance,
drawer cash). If any of those writes is lost the books drift silently, so
every operation here is one atomic transaction.

POSTING PIPELINE (postInvoice, POSTED status):
1. Invoice header
2. Invoice items
3. One StockMovement per item + Product.stock += signed delta
4. Partner balance += unpaid remainder (partner set, not pure cash)
5. One CashTransaction for paid_amount (IN or OUT by invoice type)

DRAFT invoices stop after step 2. post_draft_invoice runs steps 3-5 later.

TOTALS: line arithmetic is recomputed from the items. Supplied header totals
must match the recomputation exactly (ValidationError otherwise); omitted
totals are filled in.
"""

from __future__ import annotations

import logging
from datetime import datetime

from ..extensions import db
from ..models import (
    Expense,
    Invoice,
    InvoiceItem,
    Partner,
    Product,
    StockMovement,
    Warehouse,
)
from ..models.cash import CASH_OUT
from ..models.invoices import (
    INVOICE_STATUSES,
    INVOICE_TYPES,
    PAYMENT_CASH,
    PAYMENT_METHODS,
    PAYMENT_MIXED,
    STATUS_DRAFT,
    STATUS_POSTED,
)
from ..time_utils import normalize_datetime, parse_date_range, utcnow
from ..validation import (
    NotFoundError,
    ValidationError,
    coerce_bps,
    coerce_cents,
    coerce_choice,
    coerce_qty,
    coerce_str,
    require_fields,
)
from .cash_session_service import book_cash
from .concurrency import atomic, lock_for_update
from .document_service import next_invoice_number
from .outbox_service import record_insert, record_update
from .stock_projector import cash_direction, partner_balance_delta, stock_delta
from .totals_service import (
    DISCOUNT_FIXED,
    DISCOUNT_TYPES,
    InvoiceTotals,
    LineInput,
    aggregate_totals,
    compute_invoice_totals,
    compute_line,
    compute_resolved_line,
)


logger = logging.getLogger(__name__)

TOTAL_FIELDS = ["subtotal_cents", "discount_total_cents", "tax_total_cents", "grand_total_cents"]


# =============================================================================
# INPUT NORMALIZATION (no database writes)
# =============================================================================

def _normalize_payment_details(raw, payment_method: str, paid_amount_cents: int) -> list[dict]:
    if raw in (None, []):
        if payment_method == PAYMENT_MIXED and paid_amount_cents > 0:
            raise ValidationError("payment_details are required for MIXED payments")
        if paid_amount_cents == 0:
            return []
        return [{"method": payment_method, "amount_cents": paid_amount_cents, "reference": None}]

    if not isinstance(raw, list):
        raise ValidationError("payment_details must be a list")

    methods = [m for m in PAYMENT_METHODS if m != PAYMENT_MIXED]
    details = []
    for idx, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ValidationError(f"payment_details[{idx}] must be an object")
        details.append({
            "method": coerce_choice(entry.get("method"), f"payment_details[{idx}].method", methods),
            "amount_cents": coerce_cents(entry.get("amount_cents"), f"payment_details[{idx}].amount_cents", allow_zero=False),
            "reference": coerce_str(entry.get("reference"), f"payment_details[{idx}].reference", max_length=64, required=False),
        })

    split_total = sum(d["amount_cents"] for d in details)
    if split_total != paid_amount_cents:
        raise ValidationError(
            "payment_details must add up to paid_amount_cents",
            details={"payment_details_total": split_total, "paid_amount_cents": paid_amount_cents},
        )
    return details


def _normalize_header(invoice_data: dict) -> dict:
    if not isinstance(invoice_data, dict):
        raise ValidationError("invoice must be an object")
    require_fields(invoice_data, ["org_id", "type", "warehouse_id"])

    header = {
        "org_id": str(invoice_data["org_id"]),
        "type": coerce_choice(invoice_data["type"], "type", INVOICE_TYPES),
        "status": coerce_choice(invoice_data.get("status", STATUS_POSTED), "status", INVOICE_STATUSES),
        "warehouse_id": str(invoice_data["warehouse_id"]),
        "partner_id": invoice_data.get("partner_id") or None,
        "invoice_number": coerce_str(invoice_data.get("invoice_number"), "invoice_number", max_length=32, required=False),
        "payment_method": coerce_choice(invoice_data.get("payment_method", PAYMENT_CASH), "payment_method", PAYMENT_METHODS),
        "paid_amount_cents": coerce_cents(invoice_data.get("paid_amount_cents", 0), "paid_amount_cents"),
        "created_by": coerce_str(invoice_data.get("created_by"), "created_by", max_length=64, required=False),
    }
    if header["status"] not in (STATUS_DRAFT, STATUS_POSTED):
        raise ValidationError("Only DRAFT or POSTED invoices can be recorded")

    try:
        header["date"] = normalize_datetime(invoice_data.get("date"))
    except ValueError:
        raise ValidationError("date must be an ISO-8601 datetime")

    for field in TOTAL_FIELDS:
        value = invoice_data.get(field)
        header[field] = None if value is None else coerce_cents(value, field)

    header["payment_details"] = _normalize_payment_details(
        invoice_data.get("payment_details"),
        header["payment_method"],
        header["paid_amount_cents"],
    )
    return header


def _normalize_items(items_data) -> list[dict]:
    if not isinstance(items_data, list) or not items_data:
        raise ValidationError("An invoice needs at least one item")

    items = []
    for idx, raw in enumerate(items_data):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        if not raw.get("product_id"):
            raise ValidationError(f"items[{idx}].product_id is required")

        item = {
            "product_id": str(raw["product_id"]),
            "qty": coerce_qty(raw.get("qty"), f"items[{idx}].qty"),
            "product_name": coerce_str(raw.get("product_name"), f"items[{idx}].product_name", max_length=255, required=False),
            "unit_name": coerce_str(raw.get("unit_name"), f"items[{idx}].unit_name", max_length=32, required=False),
            "note": coerce_str(raw.get("note"), f"items[{idx}].note", max_length=255, required=False),
        }
        for field in ("price_cents", "cost_cents"):
            item[field] = None if raw.get(field) is None else coerce_cents(raw[field], f"items[{idx}].{field}")
        item["tax_rate_bps"] = None if raw.get("tax_rate_bps") is None else coerce_bps(raw["tax_rate_bps"], f"items[{idx}].tax_rate_bps")

        if raw.get("discount_type") is not None:
            # Unresolved discount: FIXED is cents per unit, PERCENT is basis points
            item["discount_type"] = coerce_choice(raw["discount_type"], f"items[{idx}].discount_type", DISCOUNT_TYPES)
            item["discount"] = raw.get("discount", 0)
            item["discount_cents"] = None
        else:
            item["discount_type"] = None
            item["discount_cents"] = coerce_cents(raw.get("discount_cents", 0), f"items[{idx}].discount_cents")
        items.append(item)
    return items


def _price_items(org_id: str, items: list[dict]) -> tuple[list[dict], InvoiceTotals]:
    """
    Fill product defaults (name, price, cost, tax rate) and compute each line.

    Returns the priced items and totals without any global discount.
    """
    product_ids = {item["product_id"] for item in items}
    products = {
        p.id: p
        for p in db.session.query(Product).filter(Product.org_id == org_id, Product.id.in_(product_ids)).all()
    }
    missing = sorted(product_ids - set(products))
    if missing:
        raise ValidationError("Unknown product(s) for this organization", details={"product_ids": missing})

    priced = []
    line_totals = []
    for item in items:
        product = products[item["product_id"]]
        price = product.price_cents if item["price_cents"] is None else item["price_cents"]
        tax_rate = product.tax_rate_bps if item["tax_rate_bps"] is None else item["tax_rate_bps"]

        if item["discount_type"] is not None:
            line = compute_line(LineInput.from_dict({
                "qty": item["qty"],
                "price_cents": price,
                "tax_rate_bps": tax_rate,
                "discount": item["discount"],
                "discount_type": item["discount_type"],
            }))
        else:
            line = compute_resolved_line(
                qty=item["qty"],
                price_cents=price,
                discount_cents=item["discount_cents"],
                tax_rate_bps=tax_rate,
            )

        priced.append({
            **item,
            "product": product,
            "product_name": item["product_name"] or product.name,
            "price_cents": price,
            "cost_cents": product.cost_cents if item["cost_cents"] is None else item["cost_cents"],
            "tax_rate_bps": tax_rate,
            "line": line,
        })
        line_totals.append(line)

    return priced, aggregate_totals(line_totals, 0, sum(item["qty"] for item in items))


def _reconcile_totals(header: dict, line_only: InvoiceTotals) -> InvoiceTotals:
    """
    Recompute header totals from the lines and check what the caller supplied.

    The global discount is whatever discount_total carries beyond the line
    discounts; it can never be negative.
    """
    supplied_discount = header["discount_total_cents"]
    if supplied_discount is None:
        global_amount = 0
    else:
        global_amount = supplied_discount - line_only.line_discount_cents
        if global_amount < 0:
            raise ValidationError(
                "discount_total_cents is smaller than the sum of line discounts",
                details={"discount_total_cents": supplied_discount, "line_discount_cents": line_only.line_discount_cents},
            )

    totals = aggregate_totals(line_only.lines, global_amount, line_only.item_count)
    recomputed = {
        "subtotal_cents": totals.subtotal_cents,
        "discount_total_cents": totals.discount_total_cents,
        "tax_total_cents": totals.tax_total_cents,
        "grand_total_cents": totals.grand_total_cents,
    }
    mismatches = {
        field: {"supplied": header[field], "expected": expected}
        for field, expected in recomputed.items()
        if header[field] is not None and header[field] != expected
    }
    if mismatches:
        raise ValidationError("Invoice totals do not match its items", details=mismatches)

    if header["paid_amount_cents"] > totals.grand_total_cents:
        raise ValidationError(
            "paid_amount_cents cannot exceed grand_total_cents",
            details={"paid_amount_cents": header["paid_amount_cents"], "grand_total_cents": totals.grand_total_cents},
        )
    return totals


# =============================================================================
# POSTING EFFECTS (steps 3-5, inside the caller's transaction)
# =============================================================================

def _apply_posting_effects(invoice: Invoice, items: list[InvoiceItem]) -> None:
    # Step 3: stock
    for item in items:
        delta = stock_delta(invoice.type, item.qty)
        product = lock_for_update(
            db.session.query(Product).filter_by(id=item.product_id, org_id=invoice.org_id)
        ).first()
        if not product:
            raise NotFoundError(f"Product {item.product_id} not found")
        product.stock += delta

        movement = StockMovement(
            org_id=invoice.org_id,
            warehouse_id=invoice.warehouse_id,
            product_id=product.id,
            qty=delta,
            type=invoice.type,
            ref_id=invoice.id,
            created_at=utcnow(),
        )
        db.session.add(movement)
        record_insert(movement)
        record_update(product)

    # Step 4: partner balance
    balance_delta = partner_balance_delta(
        invoice_type=invoice.type,
        partner_id=invoice.partner_id,
        payment_method=invoice.payment_method,
        grand_total_cents=invoice.grand_total_cents,
        paid_amount_cents=invoice.paid_amount_cents,
    )
    if balance_delta:
        partner = lock_for_update(
            db.session.query(Partner).filter_by(id=invoice.partner_id, org_id=invoice.org_id)
        ).first()
        if not partner:
            raise NotFoundError("Partner not found")
        partner.balance_cents += balance_delta
        record_update(partner)

    # Step 5: drawer
    if invoice.paid_amount_cents > 0:
        book_cash(
            org_id=invoice.org_id,
            amount_cents=invoice.paid_amount_cents,
            tx_type=cash_direction(invoice.type),
            description=f"Invoice {invoice.invoice_number}",
            ref_id=invoice.id,
        )


# =============================================================================
# OPERATIONS
# =============================================================================

def post_invoice(invoice_data: dict, items_data: list[dict]) -> Invoice:
    """
    Record an invoice and, when POSTED, apply its stock, balance and cash effects.

    Raises:
        ValidationError: malformed input or totals that disagree with the items
        NotFoundError: warehouse or partner outside the org
        NoActiveSessionError: strict session policy and no OPEN drawer
        StorageError: the transaction could not commit (nothing was written)
    """
    header = _normalize_header(invoice_data)
    items = _normalize_items(items_data)
    org_id = header["org_id"]

    with atomic("post_invoice"):
        warehouse = db.session.query(Warehouse).filter_by(id=header["warehouse_id"], org_id=org_id).first()
        if not warehouse:
            raise NotFoundError("Warehouse not found")
        if header["partner_id"]:
            partner = db.session.query(Partner).filter_by(id=header["partner_id"], org_id=org_id).first()
            if not partner:
                raise NotFoundError("Partner not found")

        priced, line_only = _price_items(org_id, items)
        totals = _reconcile_totals(header, line_only)

        if header["invoice_number"]:
            taken = db.session.query(Invoice.id).filter_by(
                org_id=org_id, invoice_number=header["invoice_number"]
            ).first()
            if taken:
                raise ValidationError(f"Invoice number {header['invoice_number']} already exists")
            invoice_number = header["invoice_number"]
        else:
            invoice_number = next_invoice_number(org_id, header["type"])

        is_posted = header["status"] == STATUS_POSTED

        # Step 1
        invoice = Invoice(
            org_id=org_id,
            invoice_number=invoice_number,
            type=header["type"],
            status=header["status"],
            partner_id=header["partner_id"],
            warehouse_id=warehouse.id,
            payment_method=header["payment_method"],
            payment_details=header["payment_details"],
            date=header["date"],
            subtotal_cents=totals.subtotal_cents,
            tax_total_cents=totals.tax_total_cents,
            discount_total_cents=totals.discount_total_cents,
            grand_total_cents=totals.grand_total_cents,
            paid_amount_cents=header["paid_amount_cents"],
            created_by=header["created_by"],
            posted_at=utcnow() if is_posted else None,
        )
        db.session.add(invoice)

        # Step 2
        invoice_items = [
            InvoiceItem(
                invoice=invoice,
                line_number=idx,
                product_id=item["product_id"],
                product_name=item["product_name"],
                qty=item["qty"],
                price_cents=item["price_cents"],
                cost_cents=item["cost_cents"],
                discount_cents=item["line"].discount_cents,
                tax_rate_bps=item["tax_rate_bps"],
                tax_amount_cents=item["line"].tax_amount_cents,
                total_cents=item["line"].total_cents,
                unit_name=item["unit_name"],
                note=item["note"],
            )
            for idx, item in enumerate(priced, start=1)
        ]
        db.session.add_all(invoice_items)
        record_insert(invoice)
        for item in invoice_items:
            record_insert(item)

        if is_posted:
            _apply_posting_effects(invoice, invoice_items)

    logger.info(
        "Invoice %s (%s, %s) recorded for org %s: grand_total=%s paid=%s",
        invoice.invoice_number, invoice.type, invoice.status, org_id,
        invoice.grand_total_cents, invoice.paid_amount_cents,
    )
    return invoice


def post_draft_invoice(org_id: str, invoice_id: str) -> Invoice:
    """
    DRAFT -> POSTED for a stored invoice, applying steps 3-5 to its stored items.

    Totals were fixed when the draft was recorded and are not recomputed.
    """
    with atomic("post_draft_invoice"):
        invoice = lock_for_update(
            db.session.query(Invoice).filter_by(id=invoice_id, org_id=org_id)
        ).first()
        if not invoice:
            raise NotFoundError("Invoice not found")
        if invoice.status != STATUS_DRAFT:
            raise ValidationError(f"Only DRAFT invoices can be posted (status is {invoice.status})")

        items = list(invoice.items)
        if not items:
            raise ValidationError("An invoice needs at least one item")

        invoice.status = STATUS_POSTED
        invoice.posted_at = utcnow()
        record_update(invoice)

        _apply_posting_effects(invoice, items)

    logger.info("Draft invoice %s posted for org %s", invoice.invoice_number, org_id)
    return invoice


def quote_invoice(
    org_id: str,
    items_data: list[dict],
    global_discount: int = 0,
    global_discount_type: str = DISCOUNT_FIXED,
) -> InvoiceTotals:
    """
    Totals for a prospective cart; nothing is written.

    Items may omit price_cents/tax_rate_bps to use the product's values.
    """
    if not isinstance(items_data, list) or not items_data:
        raise ValidationError("At least one item is required")

    global_discount_type = coerce_choice(global_discount_type, "global_discount_type", DISCOUNT_TYPES)
    if global_discount_type == DISCOUNT_FIXED:
        global_discount = coerce_cents(global_discount, "global_discount")
    else:
        global_discount = coerce_bps(global_discount, "global_discount")

    product_ids = {str(item.get("product_id")) for item in items_data if isinstance(item, dict) and item.get("product_id")}
    products = {}
    if product_ids:
        products = {
            p.id: p
            for p in db.session.query(Product).filter(Product.org_id == org_id, Product.id.in_(product_ids)).all()
        }

    lines = []
    for idx, raw in enumerate(items_data):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        data = dict(raw)
        product_id = data.get("product_id")
        if product_id:
            product = products.get(str(product_id))
            if product is None:
                raise ValidationError(f"items[{idx}].product_id is unknown")
            data.setdefault("price_cents", product.price_cents)
            data.setdefault("tax_rate_bps", product.tax_rate_bps)
        lines.append(LineInput.from_dict(data))

    return compute_invoice_totals(lines, global_discount, global_discount_type)


def record_expense(
    org_id: str,
    amount_cents: int,
    category: str,
    created_by: str,
    description: str | None = None,
    date: datetime | str | None = None,
) -> Expense:
    """
    Persist an expense and its OUT cash transaction in one commit.

    The drawer is resolved under CASH_SESSION_POLICY like any other cash write.
    """
    amount_cents = coerce_cents(amount_cents, "amount_cents", allow_zero=False)
    category = coerce_str(category, "category", max_length=64)
    created_by = coerce_str(created_by, "created_by", max_length=64)
    description = coerce_str(description, "description", max_length=255, required=False)
    try:
        expense_date = normalize_datetime(date)
    except ValueError:
        raise ValidationError("date must be an ISO-8601 datetime")

    with atomic("record_expense"):
        expense = Expense(
            org_id=org_id,
            date=expense_date,
            amount_cents=amount_cents,
            category=category,
            description=description,
            created_by=created_by,
        )
        db.session.add(expense)
        record_insert(expense)

        label = f"Expense: {category} - {description}" if description else f"Expense: {category}"
        book_cash(
            org_id=org_id,
            amount_cents=amount_cents,
            tx_type=CASH_OUT,
            description=label[:255],
            ref_id=expense.id,
        )

    logger.info("Expense %s (%s) of %s recorded for org %s", expense.id, category, amount_cents, org_id)
    return expense


# =============================================================================
# READS
# =============================================================================

def get_invoice(org_id: str, invoice_id: str) -> Invoice:
    invoice = db.session.query(Invoice).filter_by(id=invoice_id, org_id=org_id).first()
    if not invoice:
        raise NotFoundError("Invoice not found")
    return invoice


def list_invoices(
    org_id: str,
    invoice_type: str | None = None,
    status: str | None = None,
    limit: int | None = 100,
    date_from: datetime | str | None = None,
    date_to: datetime | str | None = None,
) -> list[Invoice]:
    """Newest first. The date range is inclusive on Invoice.date; limit=None returns every match."""
    query = db.session.query(Invoice).filter_by(org_id=org_id)
    if invoice_type:
        query = query.filter_by(type=coerce_choice(invoice_type, "type", INVOICE_TYPES))
    if status:
        query = query.filter_by(status=coerce_choice(status, "status", INVOICE_STATUSES))
    start, end = _date_bounds(date_from, date_to)
    if start is not None:
        query = query.filter(Invoice.date >= start)
    if end is not None:
        query = query.filter(Invoice.date <= end)
    query = query.order_by(Invoice.date.desc(), Invoice.created_at.desc())
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def list_expenses(
    org_id: str,
    date_from: datetime | str | None = None,
    date_to: datetime | str | None = None,
) -> list[Expense]:
    query = db.session.query(Expense).filter_by(org_id=org_id)
    start, end = _date_bounds(date_from, date_to)
    if start is not None:
        query = query.filter(Expense.date >= start)
    if end is not None:
        query = query.filter(Expense.date <= end)
    return query.order_by(Expense.date.desc()).all()


def _date_bounds(date_from, date_to):
    try:
        return parse_date_range(date_from, date_to)
    except ValueError:
        raise ValidationError("date_from/date_to must be ISO-8601 dates or datetimes")
