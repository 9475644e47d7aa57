from __future__ import annotations

from ..extensions import db
from ..id_utils import new_id
from ..time_utils import to_utc_z


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_categories_org_name"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    org_id = db.Column(db.String(36), db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)

    def to_dict(self) -> dict:
        return {"id": self.id, "org_id": self.org_id, "name": self.name}


class Product(db.Model):
    """
    Product master data.

    STOCK: `stock` is a denormalized running total of stock_movements.qty.
    It is only written by the ledger engine, in the same transaction as the
    movement row that explains it. Never patch it directly.

    MONEY: price/cost in cents, tax_rate in basis points (2000 = 20%).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_org_name", "org_id", "name"),
        db.Index("ix_products_org_active", "org_id", "is_active"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    org_id = db.Column(db.String(36), db.ForeignKey("organizations.id"), nullable=False, index=True)
    category_id = db.Column(db.String(36), db.ForeignKey("categories.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True)

    cost_cents = db.Column(db.Integer, nullable=False, default=0)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)

    min_stock = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_stock_tracking = db.Column(db.Boolean, nullable=False, default=True)

    stock = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock}>"

    def to_dict(self, include_barcodes: bool = False) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "category_id": self.category_id,
            "name": self.name,
            "sku": self.sku,
            "cost_cents": self.cost_cents,
            "price_cents": self.price_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "min_stock": self.min_stock,
            "is_active": self.is_active,
            "is_stock_tracking": self.is_stock_tracking,
            "stock": self.stock,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_barcodes:
            data["barcodes"] = [b.to_dict() for b in self.barcodes]
        return data


class ProductBarcode(db.Model):
    """
    Scannable code for a product unit.

    One product has 1..N barcodes, exactly one primary. A carton barcode
    carries factor=12 so a single scan adds twelve units.
    """
    __tablename__ = "product_barcodes"
    __table_args__ = (
        db.UniqueConstraint("org_id", "barcode", name="uq_product_barcodes_org_barcode"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    org_id = db.Column(db.String(36), db.ForeignKey("organizations.id"), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)

    barcode = db.Column(db.String(64), nullable=False)
    is_primary = db.Column(db.Boolean, nullable=False, default=False)
    unit_type = db.Column(db.String(32), nullable=False, default="piece")
    factor = db.Column(db.Integer, nullable=False, default=1)
    price_override_cents = db.Column(db.Integer, nullable=True)

    product = db.relationship(
        "Product",
        backref=db.backref("barcodes", lazy=True, order_by="ProductBarcode.is_primary.desc()"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "product_id": self.product_id,
            "barcode": self.barcode,
            "is_primary": self.is_primary,
            "unit_type": self.unit_type,
            "factor": self.factor,
            "price_override_cents": self.price_override_cents,
        }
