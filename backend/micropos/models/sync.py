from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


OUTBOX_PENDING = "PENDING"
OUTBOX_SYNCED = "SYNCED"
OUTBOX_ERROR = "ERROR"

ACTION_INSERT = "INSERT"
ACTION_UPDATE = "UPDATE"


class OutboxEntry(db.Model):
    """
    Pending change for remote sync.

    Written in the same DB transaction as the change it records.
    The payload is a full row snapshot; the remote applies it last-write-wins.
    """
    __tablename__ = "outbox"
    __table_args__ = (
        db.Index("ix_outbox_status_id", "status", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.String(36), nullable=False, index=True)
    table_name = db.Column(db.String(64), nullable=False, index=True)
    record_id = db.Column(db.String(36), nullable=False)
    action = db.Column(db.String(8), nullable=False)
    payload = db.Column(db.JSON, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=OUTBOX_PENDING)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "table_name": self.table_name,
            "record_id": self.record_id,
            "action": self.action,
            "payload": self.payload,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "created_at": to_utc_z(self.created_at),
            "synced_at": to_utc_z(self.synced_at) if self.synced_at else None,
        }


class DocumentSequence(db.Model):
    """
    Atomic per-org document sequences.

    WHY: Prevent race conditions when generating invoice numbers.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("org_id", "document_type", name="uq_doc_sequences_org_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.String(36), db.ForeignKey("organizations.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
