from __future__ import annotations

from ..extensions import db
from ..id_utils import new_id
from ..time_utils import to_utc_z


class Organization(db.Model):
    """
    Tenant root: every shop is an Organization.

    MULTI-TENANT: all ledger tables carry org_id as a partition key.
    No data may cross organization boundaries.
    """
    __tablename__ = "organizations"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(255), nullable=False)
    tax_number = db.Column(db.String(64), nullable=True)
    currency = db.Column(db.String(3), nullable=False, default="USD")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Organization id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "tax_number": self.tax_number,
            "currency": self.currency,
            "created_at": to_utc_z(self.created_at),
        }


class Warehouse(db.Model):
    """Stock location (a shop usually has exactly one)."""
    __tablename__ = "warehouses"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_warehouses_org_name"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    org_id = db.Column(db.String(36), db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    organization = db.relationship("Organization", backref=db.backref("warehouses", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "is_active": self.is_active,
        }
