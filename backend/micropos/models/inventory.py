from __future__ import annotations

from ..extensions import db
from ..id_utils import new_id
from ..time_utils import to_utc_z


class StockMovement(db.Model):
    """
    Append-only stock audit trail.

    One row per posted invoice line. qty is signed (positive = stock in).
    Sum(qty) per product equals Product.stock; see reconciliation_service.
    Never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_org_product", "org_id", "product_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    org_id = db.Column(db.String(36), db.ForeignKey("organizations.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.String(36), db.ForeignKey("warehouses.id"), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)

    qty = db.Column(db.Integer, nullable=False)
    type = db.Column(db.String(16), nullable=False)
    ref_id = db.Column(db.String(36), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "warehouse_id": self.warehouse_id,
            "product_id": self.product_id,
            "qty": self.qty,
            "type": self.type,
            "ref_id": self.ref_id,
            "created_at": to_utc_z(self.created_at),
        }
