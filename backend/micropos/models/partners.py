from __future__ import annotations

from ..extensions import db
from ..id_utils import new_id
from ..time_utils import to_utc_z


PARTNER_CUSTOMER = "CUSTOMER"
PARTNER_SUPPLIER = "SUPPLIER"

PARTNER_TYPES = [PARTNER_CUSTOMER, PARTNER_SUPPLIER]


class Partner(db.Model):
    """
    Customer or supplier account.

    BALANCE: signed running total of unpaid invoice remainders, in cents.
    Written only by the ledger engine when an invoice is posted on credit.
    The sign convention is shared by both partner types.
    """
    __tablename__ = "partners"
    __table_args__ = (
        db.Index("ix_partners_org_type", "org_id", "type"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    org_id = db.Column(db.String(36), db.ForeignKey("organizations.id"), nullable=False, index=True)
    type = db.Column(db.String(16), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    tax_number = db.Column(db.String(64), nullable=True)

    balance_cents = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "type": self.type,
            "name": self.name,
            "phone": self.phone,
            "tax_number": self.tax_number,
            "balance_cents": self.balance_cents,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }
