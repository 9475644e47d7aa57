from __future__ import annotations

from ..extensions import db
from ..id_utils import new_id
from ..time_utils import to_utc_z


class Expense(db.Model):
    """Shop expense paid from the drawer. Always paired with one OUT cash transaction."""
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_org_date", "org_id", "date"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    org_id = db.Column(db.String(36), db.ForeignKey("organizations.id"), nullable=False, index=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    category = db.Column(db.String(64), nullable=False, index=True)
    description = db.Column(db.String(255), nullable=True)
    created_by = db.Column(db.String(64), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "date": to_utc_z(self.date),
            "amount_cents": self.amount_cents,
            "category": self.category,
            "description": self.description,
            "created_by": self.created_by,
        }
