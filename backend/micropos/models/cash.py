from __future__ import annotations

from ..extensions import db
from ..id_utils import new_id
from ..time_utils import to_utc_z


SESSION_OPEN = "OPEN"
SESSION_CLOSED = "CLOSED"

SESSION_STATUSES = [SESSION_OPEN, SESSION_CLOSED]

CASH_IN = "IN"
CASH_OUT = "OUT"

CASH_DIRECTIONS = [CASH_IN, CASH_OUT]

# session_id stored on cash rows written while no session was OPEN
NO_SESSION = "NO_SESSION"


class CashSession(db.Model):
    """
    Cash drawer shift.

    LIFECYCLE:
    - OPEN: created by open_cash_session, accepts cash transactions
    - CLOSED: set exactly once by close_cash_session with the physical count

    At most one OPEN session per org. Checked inside the opening transaction
    and backed by a partial unique index.

    IMMUTABLE: Once closed, session cannot be reopened or modified.
    """
    __tablename__ = "cash_sessions"
    __table_args__ = (
        db.Index("ix_cash_sessions_org_status", "org_id", "status"),
        db.Index(
            "uq_cash_sessions_org_open",
            "org_id",
            unique=True,
            sqlite_where=db.text("status = 'OPEN'"),
            postgresql_where=db.text("status = 'OPEN'"),
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    org_id = db.Column(db.String(36), db.ForeignKey("organizations.id"), nullable=False, index=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=SESSION_OPEN)

    # Cash tracking (all amounts in cents)
    opening_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    expected_amount_cents = db.Column(db.Integer, nullable=True)  # sum(IN) - sum(OUT), set on close
    closing_amount_cents = db.Column(db.Integer, nullable=True)  # physical count
    variance_cents = db.Column(db.Integer, nullable=True)  # closing - expected

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "user_id": self.user_id,
            "status": self.status,
            "opening_amount_cents": self.opening_amount_cents,
            "expected_amount_cents": self.expected_amount_cents,
            "closing_amount_cents": self.closing_amount_cents,
            "variance_cents": self.variance_cents,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "notes": self.notes,
            "version_id": self.version_id,
        }


class CashTransaction(db.Model):
    """
    Cash drawer movement. Append-only.

    amount is always positive; direction is type IN/OUT. session_id is the
    OPEN session at write time, or NO_SESSION under the sentinel policy
    (hence no foreign key).
    """
    __tablename__ = "cash_transactions"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    org_id = db.Column(db.String(36), db.ForeignKey("organizations.id"), nullable=False, index=True)
    session_id = db.Column(db.String(36), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    type = db.Column(db.String(8), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    ref_id = db.Column(db.String(36), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    @property
    def signed_amount_cents(self) -> int:
        return self.amount_cents if self.type == CASH_IN else -self.amount_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "session_id": self.session_id,
            "amount_cents": self.amount_cents,
            "type": self.type,
            "description": self.description,
            "ref_id": self.ref_id,
            "created_at": to_utc_z(self.created_at),
        }
