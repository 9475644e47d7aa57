# Overview: Outbox append for remote sync; rows are written inside the caller's transaction.

from __future__ import annotations

from ..extensions import db
from ..models import OutboxEntry
from ..models.sync import ACTION_INSERT, ACTION_UPDATE
"""
Outbox Invariants

- Append-only change log feeding remote sync.
- No domain/business logic here.
- Entries are written inside the same DB transaction as the change they record,
  so a rolled back ledger operation leaves no outbox trace.
- Payload is the full row snapshot (to_dict) after the change.
"""


def record_change(obj, *, action: str = ACTION_INSERT) -> OutboxEntry:
    """
    Append an outbox entry for a model instance.

    The instance must expose org_id (directly or through its invoice) and to_dict().
    """
    db.session.flush()  # ensures defaults (ids, timestamps) are populated

    org_id = getattr(obj, "org_id", None)
    if org_id is None and getattr(obj, "invoice", None) is not None:
        org_id = obj.invoice.org_id

    entry = OutboxEntry(
        org_id=org_id,
        table_name=obj.__tablename__,
        record_id=str(obj.id),
        action=action,
        payload=obj.to_dict(),
    )
    db.session.add(entry)
    return entry


def record_insert(obj) -> OutboxEntry:
    return record_change(obj, action=ACTION_INSERT)


def record_update(obj) -> OutboxEntry:
    return record_change(obj, action=ACTION_UPDATE)
