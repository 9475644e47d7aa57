from __future__ import annotations

from ..extensions import db
from ..id_utils import new_id
from ..time_utils import to_utc_z


# Invoice types
INVOICE_SALE = "SALE"
INVOICE_PURCHASE = "PURCHASE"
INVOICE_SALE_RETURN = "SALE_RETURN"
INVOICE_PURCHASE_RETURN = "PURCHASE_RETURN"

INVOICE_TYPES = [INVOICE_SALE, INVOICE_PURCHASE, INVOICE_SALE_RETURN, INVOICE_PURCHASE_RETURN]

# Invoice lifecycle
STATUS_DRAFT = "DRAFT"
STATUS_POSTED = "POSTED"
STATUS_RETURNED = "RETURNED"
STATUS_CANCELED = "CANCELED"

INVOICE_STATUSES = [STATUS_DRAFT, STATUS_POSTED, STATUS_RETURNED, STATUS_CANCELED]

# Payment methods
PAYMENT_CASH = "CASH"
PAYMENT_CREDIT = "CREDIT"
PAYMENT_CARD = "CARD"
PAYMENT_CHECK = "CHECK"
PAYMENT_MIXED = "MIXED"

PAYMENT_METHODS = [PAYMENT_CASH, PAYMENT_CREDIT, PAYMENT_CARD, PAYMENT_CHECK, PAYMENT_MIXED]


class Invoice(db.Model):
    """
    Sale / purchase / return document header.

    TOTALS: grand_total = (subtotal - discount_total) + tax_total, computed
    once at posting time and never recomputed retroactively.

    IMMUTABLE: once POSTED, neither the header nor its items change.
    Corrections are made with a return-type invoice.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("org_id", "invoice_number", name="uq_invoices_org_number"),
        db.Index("ix_invoices_org_type_status", "org_id", "type", "status"),
        db.Index("ix_invoices_org_date", "org_id", "date"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    org_id = db.Column(db.String(36), db.ForeignKey("organizations.id"), nullable=False, index=True)
    invoice_number = db.Column(db.String(32), nullable=False)

    type = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=STATUS_DRAFT, index=True)

    partner_id = db.Column(db.String(36), db.ForeignKey("partners.id"), nullable=True, index=True)
    warehouse_id = db.Column(db.String(36), db.ForeignKey("warehouses.id"), nullable=False)

    payment_method = db.Column(db.String(16), nullable=False, default=PAYMENT_CASH)
    # Split payment: [{"method": "CASH", "amount_cents": 500, "reference": null}, ...]
    payment_details = db.Column(db.JSON, nullable=False, default=list)

    date = db.Column(db.DateTime(timezone=True), nullable=False)

    # All amounts in cents
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_total_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_total_cents = db.Column(db.Integer, nullable=False, default=0)
    grand_total_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    created_by = db.Column(db.String(64), nullable=True)
    posted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    partner = db.relationship("Partner", backref=db.backref("invoices", lazy=True))
    warehouse = db.relationship("Warehouse")

    @property
    def remaining_cents(self) -> int:
        return self.grand_total_cents - self.paid_amount_cents

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "invoice_number": self.invoice_number,
            "type": self.type,
            "status": self.status,
            "partner_id": self.partner_id,
            "warehouse_id": self.warehouse_id,
            "payment_method": self.payment_method,
            "payment_details": list(self.payment_details or []),
            "date": to_utc_z(self.date),
            "subtotal_cents": self.subtotal_cents,
            "tax_total_cents": self.tax_total_cents,
            "discount_total_cents": self.discount_total_cents,
            "grand_total_cents": self.grand_total_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "remaining_cents": self.remaining_cents,
            "created_by": self.created_by,
            "posted_at": to_utc_z(self.posted_at) if self.posted_at else None,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [i.to_dict() for i in self.items]
        return data


class InvoiceItem(db.Model):
    """
    Invoice line. Owned exclusively by its invoice.

    qty is always positive; direction comes from the parent invoice type.
    discount_cents is the resolved absolute amount for the whole line.
    """
    __tablename__ = "invoice_items"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    invoice_id = db.Column(db.String(36), db.ForeignKey("invoices.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False, default=1)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    qty = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    tax_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    unit_name = db.Column(db.String(32), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    invoice = db.relationship(
        "Invoice",
        backref=db.backref("items", lazy=True, order_by="InvoiceItem.line_number"),
    )
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "line_number": self.line_number,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "qty": self.qty,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "discount_cents": self.discount_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_amount_cents": self.tax_amount_cents,
            "total_cents": self.total_cents,
            "unit_name": self.unit_name,
            "note": self.note,
        }
