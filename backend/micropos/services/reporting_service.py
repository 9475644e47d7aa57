# Overview: Read-only reporting over posted invoices; sales summary, top products and the dashboard.

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import Invoice, InvoiceItem, Partner
from ..models.invoices import INVOICE_SALE, INVOICE_SALE_RETURN, STATUS_POSTED
from ..models.partners import PARTNER_CUSTOMER
from ..time_utils import parse_date_range, to_utc_z, utcnow
from ..validation import ValidationError, coerce_int
from .partners_service import list_debtors
from .products_service import low_stock_products


def _parse_range(date_from, date_to) -> tuple[datetime | None, datetime | None]:
    try:
        start, end = parse_date_range(date_from or None, date_to or None)
    except ValueError:
        raise ValidationError("from/to must be ISO-8601 dates or datetimes")
    if start and end and start > end:
        raise ValidationError("from must not be after to")
    return start, end


def _posted(query, org_id: str, invoice_type: str, start: datetime | None, end: datetime | None):
    query = query.filter(
        Invoice.org_id == org_id,
        Invoice.type == invoice_type,
        Invoice.status == STATUS_POSTED,
    )
    if start:
        query = query.filter(Invoice.date >= start)
    if end:
        query = query.filter(Invoice.date <= end)
    return query


def _invoice_totals(org_id: str, invoice_type: str, start, end):
    return _posted(
        db.session.query(
            func.count(Invoice.id).label("invoice_count"),
            func.coalesce(func.sum(Invoice.grand_total_cents), 0).label("grand_total_cents"),
            func.coalesce(func.sum(Invoice.tax_total_cents), 0).label("tax_total_cents"),
            func.coalesce(func.sum(Invoice.discount_total_cents), 0).label("discount_total_cents"),
            func.coalesce(func.sum(Invoice.paid_amount_cents), 0).label("paid_amount_cents"),
        ),
        org_id, invoice_type, start, end,
    ).one()


def sales_summary(org_id: str, date_from=None, date_to=None) -> dict:
    """
    Posted SALE totals in the inclusive range, with SALE_RETURN netted out.

    Drafts never count.
    """
    start, end = _parse_range(date_from, date_to)
    sales = _invoice_totals(org_id, INVOICE_SALE, start, end)
    returns = _invoice_totals(org_id, INVOICE_SALE_RETURN, start, end)

    total_sales = int(sales.grand_total_cents or 0)
    total_returns = int(returns.grand_total_cents or 0)
    return {
        "start": to_utc_z(start),
        "end": to_utc_z(end),
        "invoice_count": int(sales.invoice_count or 0),
        "total_sales_cents": total_sales,
        "tax_total_cents": int(sales.tax_total_cents or 0),
        "discount_total_cents": int(sales.discount_total_cents or 0),
        "paid_amount_cents": int(sales.paid_amount_cents or 0),
        "return_count": int(returns.invoice_count or 0),
        "total_returns_cents": total_returns,
        "net_sales_cents": total_sales - total_returns,
    }


def top_products(org_id: str, date_from=None, date_to=None, limit=10) -> list[dict]:
    """Best sellers by line total over posted SALE invoices."""
    start, end = _parse_range(date_from, date_to)
    limit = coerce_int(limit, "limit", minimum=1, maximum=100)

    total = func.sum(InvoiceItem.total_cents)
    rows = (
        _posted(
            db.session.query(
                InvoiceItem.product_id.label("product_id"),
                func.max(InvoiceItem.product_name).label("product_name"),
                func.sum(InvoiceItem.qty).label("qty"),
                total.label("total_cents"),
            ).join(Invoice, InvoiceItem.invoice_id == Invoice.id),
            org_id, INVOICE_SALE, start, end,
        )
        .group_by(InvoiceItem.product_id)
        .order_by(total.desc(), InvoiceItem.product_id.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "product_id": row.product_id,
            "product_name": row.product_name,
            "qty": int(row.qty or 0),
            "total_cents": int(row.total_cents or 0),
        }
        for row in rows
    ]


def dashboard(org_id: str, now: datetime | None = None) -> dict:
    """Today's sales (UTC day), low-stock count, active customers and outstanding debt."""
    now = now or utcnow()
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    today = _invoice_totals(org_id, INVOICE_SALE, day_start, day_start + timedelta(days=1) - timedelta(microseconds=1))

    active_customers = (
        db.session.query(func.count(Partner.id))
        .filter(
            Partner.org_id == org_id,
            Partner.type == PARTNER_CUSTOMER,
            Partner.is_active.is_(True),
        )
        .scalar()
    )
    return {
        "date": day_start.date().isoformat(),
        "today_sales_cents": int(today.grand_total_cents or 0),
        "today_invoice_count": int(today.invoice_count or 0),
        "low_stock_count": len(low_stock_products(org_id)),
        "active_customers": int(active_customers or 0),
        "total_debt_cents": list_debtors(org_id)["total_debt_cents"],
    }
