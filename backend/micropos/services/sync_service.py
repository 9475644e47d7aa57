# Overview: Outbox drain for remote sync; last-write-wins push through a caller-supplied pusher.

from __future__ import annotations

import logging
from itertools import groupby
from typing import Callable

from sqlalchemy import func

from ..extensions import db
from ..models import OutboxEntry
from ..models.sync import OUTBOX_ERROR, OUTBOX_PENDING, OUTBOX_SYNCED
from ..time_utils import utcnow
from ..validation import coerce_int
from .concurrency import atomic


logger = logging.getLogger(__name__)

# pusher(table_name, rows) upserts the row snapshots remotely; raising marks the batch ERROR
Pusher = Callable[[str, list], None]

UNSYNCED_STATUSES = [OUTBOX_PENDING, OUTBOX_ERROR]


def pending_count(org_id: str | None = None) -> int:
    query = db.session.query(func.count(OutboxEntry.id)).filter(OutboxEntry.status.in_(UNSYNCED_STATUSES))
    if org_id is not None:
        query = query.filter(OutboxEntry.org_id == org_id)
    return int(query.scalar() or 0)


def outbox_status(org_id: str | None = None) -> dict:
    query = db.session.query(OutboxEntry.status, func.count(OutboxEntry.id))
    if org_id is not None:
        query = query.filter(OutboxEntry.org_id == org_id)
    counts = {status: 0 for status in (OUTBOX_PENDING, OUTBOX_SYNCED, OUTBOX_ERROR)}
    for status, count in query.group_by(OutboxEntry.status).all():
        counts[status] = int(count)
    return counts


def _mark(entry_ids: list[int], status: str, error: str | None = None) -> None:
    synced_at = utcnow() if status == OUTBOX_SYNCED else None
    with atomic(f"outbox_mark_{status.lower()}"):
        for entry in db.session.query(OutboxEntry).filter(OutboxEntry.id.in_(entry_ids)).all():
            entry.status = status
            entry.attempts += 1
            entry.last_error = error
            entry.synced_at = synced_at


def push_pending(pusher: Pusher, batch_size: int = 100, org_id: str | None = None) -> dict:
    """
    Hand unsynced outbox rows to `pusher`, one call per table, oldest first.

    The pusher runs outside any database transaction. Each table batch is
    then marked SYNCED or ERROR (with the message) in its own commit; ERROR
    rows are picked up again on the next push.
    """
    batch_size = coerce_int(batch_size, "batch_size", minimum=1)

    query = db.session.query(OutboxEntry).filter(OutboxEntry.status.in_(UNSYNCED_STATUSES))
    if org_id is not None:
        query = query.filter(OutboxEntry.org_id == org_id)
    snapshot = [
        (e.table_name, e.id, {"action": e.action, "record_id": e.record_id, "payload": e.payload})
        for e in query.order_by(OutboxEntry.id.asc()).limit(batch_size).all()
    ]
    # Release the read transaction before calling out
    db.session.commit()

    result = {"pushed": 0, "failed": 0, "tables": {}}
    for table_name, group in groupby(sorted(snapshot, key=lambda s: (s[0], s[1])), key=lambda s: s[0]):
        batch = list(group)
        ids = [entry_id for _, entry_id, _ in batch]
        try:
            pusher(table_name, [row for _, _, row in batch])
        except Exception as exc:
            logger.warning("Outbox push for %s failed (%d rows): %s", table_name, len(batch), exc)
            _mark(ids, OUTBOX_ERROR, error=str(exc)[:255])
            result["failed"] += len(batch)
            result["tables"][table_name] = OUTBOX_ERROR
            continue

        _mark(ids, OUTBOX_SYNCED)
        result["pushed"] += len(batch)
        result["tables"][table_name] = OUTBOX_SYNCED

    logger.info("Outbox push: %d synced, %d failed", result["pushed"], result["failed"])
    return result
