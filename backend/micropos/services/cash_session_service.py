"""
Cash Session Service - drawer shift lifecycle

WHY: Every cash movement belongs to a bounded shift so the drawer can be
counted and reconciled (Z-report) at the end.

DESIGN PRINCIPLES:
- At most one OPEN session per org. The existence check runs inside the
  same transaction as the insert; a partial unique index backs it up.
- OPEN -> CLOSED exactly once. Closed sessions are never reopened or modified.
- The opening float is itself an IN transaction, so the expected balance is
  simply sum(IN) - sum(OUT).
- Cash lookups only ever return OPEN sessions, so nothing can be booked
  against a closed one.
"""

from __future__ import annotations

import logging
from datetime import datetime

from flask import current_app
from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import CashSession, CashTransaction, Invoice, Organization
from ..models.cash import (
    CASH_DIRECTIONS,
    CASH_IN,
    CASH_OUT,
    NO_SESSION,
    SESSION_CLOSED,
    SESSION_OPEN,
)
from ..time_utils import normalize_datetime, utcnow
from ..validation import (
    LedgerError,
    NotFoundError,
    ValidationError,
    coerce_cents,
    coerce_choice,
    coerce_str,
)
from .concurrency import atomic, lock_for_update
from .outbox_service import record_insert, record_update


logger = logging.getLogger(__name__)

POLICY_SENTINEL = "sentinel"
POLICY_STRICT = "strict"

SESSION_POLICIES = [POLICY_SENTINEL, POLICY_STRICT]

OPENING_FLOAT_DESCRIPTION = "opening float"


class SessionError(LedgerError):
    """Raised for cash session state errors."""


class SessionAlreadyOpenError(SessionError):
    """An OPEN session already exists for the org."""

    def __init__(self, org_id: str, session_id: str | None = None):
        super().__init__(f"Cash session already open for org {org_id}" + (f" (session {session_id})" if session_id else ""))
        self.org_id = org_id
        self.session_id = session_id


class SessionNotOpenError(SessionError):
    """The referenced session is CLOSED."""


class NoActiveSessionError(SessionError):
    """A drawer operation found no OPEN session under the strict policy."""


def session_policy() -> str:
    policy = str(current_app.config.get("CASH_SESSION_POLICY", POLICY_SENTINEL)).lower()
    if policy not in SESSION_POLICIES:
        raise ValueError(f"CASH_SESSION_POLICY must be one of {SESSION_POLICIES}, got {policy!r}")
    return policy


# =============================================================================
# LOOKUPS
# =============================================================================

def get_current_session(org_id: str) -> CashSession | None:
    """The single OPEN session for the org, if any."""
    return db.session.query(CashSession).filter_by(
        org_id=org_id,
        status=SESSION_OPEN,
    ).first()


def get_session(session_id: str, org_id: str | None = None) -> CashSession:
    query = db.session.query(CashSession).filter_by(id=session_id)
    if org_id is not None:
        query = query.filter_by(org_id=org_id)
    session = query.first()
    if not session:
        raise NotFoundError("Cash session not found")
    return session


def list_sessions(org_id: str, status: str | None = None, limit: int = 50) -> list[CashSession]:
    query = db.session.query(CashSession).filter_by(org_id=org_id)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(CashSession.opened_at.desc()).limit(limit).all()


def get_session_transactions(session_id: str) -> list[CashTransaction]:
    return db.session.query(CashTransaction).filter_by(
        session_id=session_id
    ).order_by(CashTransaction.created_at, CashTransaction.id).all()


def session_totals(session_id: str) -> dict:
    """sum(IN), sum(OUT) and the expected drawer balance for a session."""
    row = db.session.query(
        func.coalesce(func.sum(case((CashTransaction.type == CASH_IN, CashTransaction.amount_cents), else_=0)), 0).label("total_in"),
        func.coalesce(func.sum(case((CashTransaction.type == CASH_OUT, CashTransaction.amount_cents), else_=0)), 0).label("total_out"),
        func.count(CashTransaction.id).label("count"),
    ).filter(CashTransaction.session_id == session_id).one()

    total_in = int(row.total_in or 0)
    total_out = int(row.total_out or 0)
    return {
        "total_in_cents": total_in,
        "total_out_cents": total_out,
        "expected_balance_cents": total_in - total_out,
        "transaction_count": int(row.count or 0),
    }


def resolve_session_id(org_id: str) -> str:
    """
    Session id to stamp on a new cash row.

    Uses the OPEN session; otherwise applies CASH_SESSION_POLICY:
    sentinel -> NO_SESSION, strict -> NoActiveSessionError.
    """
    current = get_current_session(org_id)
    if current is not None:
        return current.id
    if session_policy() == POLICY_STRICT:
        raise NoActiveSessionError(f"No open cash session for org {org_id}")
    logger.warning("No open cash session for org %s; tagging cash row %s", org_id, NO_SESSION)
    return NO_SESSION


# =============================================================================
# CASH ROWS
# =============================================================================

def _append_cash_transaction(
    *,
    org_id: str,
    session_id: str,
    amount_cents: int,
    tx_type: str,
    description: str | None,
    ref_id: str | None = None,
    created_at: datetime | None = None,
) -> CashTransaction:
    """Insert a cash row inside the caller's transaction (no commit)."""
    tx = CashTransaction(
        org_id=org_id,
        session_id=session_id,
        amount_cents=amount_cents,
        type=tx_type,
        description=description,
        ref_id=ref_id,
        created_at=created_at or utcnow(),
    )
    db.session.add(tx)
    record_insert(tx)
    return tx


def book_cash(
    *,
    org_id: str,
    amount_cents: int,
    tx_type: str,
    description: str | None,
    ref_id: str | None = None,
) -> CashTransaction:
    """Resolve the drawer under the session policy and append one cash row (no commit)."""
    session_id = resolve_session_id(org_id)
    return _append_cash_transaction(
        org_id=org_id,
        session_id=session_id,
        amount_cents=amount_cents,
        tx_type=tx_type,
        description=description,
        ref_id=ref_id,
    )


def add_cash_transaction(
    org_id: str,
    amount_cents: int,
    tx_type: str,
    description: str | None = None,
    ref_id: str | None = None,
    session_id: str | None = None,
) -> CashTransaction:
    """
    Manual drawer movement (cash in / pay out).

    With session_id the session must belong to the org and be OPEN.
    Without it the current session is resolved under the session policy.
    """
    amount_cents = coerce_cents(amount_cents, "amount_cents", allow_zero=False)
    tx_type = coerce_choice(tx_type, "type", CASH_DIRECTIONS)
    description = coerce_str(description, "description", max_length=255, required=False)

    with atomic("add_cash_transaction"):
        if session_id is not None:
            session = get_session(session_id, org_id=org_id)
            if session.status != SESSION_OPEN:
                raise SessionNotOpenError(f"Cash session {session_id} is closed")
            tx = _append_cash_transaction(
                org_id=org_id,
                session_id=session.id,
                amount_cents=amount_cents,
                tx_type=tx_type,
                description=description,
                ref_id=ref_id,
            )
        else:
            tx = book_cash(
                org_id=org_id,
                amount_cents=amount_cents,
                tx_type=tx_type,
                description=description,
                ref_id=ref_id,
            )

    logger.info("Cash %s %s recorded for org %s (session %s)", tx.type, tx.amount_cents, org_id, tx.session_id)
    return tx


# =============================================================================
# LIFECYCLE
# =============================================================================

def open_cash_session(
    org_id: str,
    user_id: str,
    opening_amount_cents: int,
    opened_at: datetime | str | None = None,
) -> CashSession:
    """
    Open a new drawer session.

    The opening float is appended as an IN transaction in the same commit.

    Raises:
        SessionAlreadyOpenError: if the org already has an OPEN session
    """
    opening_amount_cents = coerce_cents(opening_amount_cents, "opening_amount_cents")
    user_id = coerce_str(user_id, "user_id", max_length=64)
    try:
        opened_dt = normalize_datetime(opened_at)
    except ValueError:
        raise ValidationError("opened_at must be an ISO-8601 datetime")

    with atomic("open_cash_session"):
        if db.session.get(Organization, org_id) is None:
            raise NotFoundError("Organization not found")

        existing = get_current_session(org_id)
        if existing is not None:
            raise SessionAlreadyOpenError(org_id, existing.id)

        session = CashSession(
            org_id=org_id,
            user_id=user_id,
            status=SESSION_OPEN,
            opening_amount_cents=opening_amount_cents,
            opened_at=opened_dt,
        )
        db.session.add(session)
        try:
            db.session.flush()
        except IntegrityError:
            raise SessionAlreadyOpenError(org_id)
        record_insert(session)

        if opening_amount_cents > 0:
            _append_cash_transaction(
                org_id=org_id,
                session_id=session.id,
                amount_cents=opening_amount_cents,
                tx_type=CASH_IN,
                description=OPENING_FLOAT_DESCRIPTION,
                created_at=opened_dt,
            )

    logger.info("Cash session %s opened for org %s with float %s", session.id, org_id, opening_amount_cents)
    return session


def close_cash_session(
    session_id: str,
    actual_cash_counted_cents: int,
    closed_at: datetime | str | None = None,
    notes: str | None = None,
    org_id: str | None = None,
) -> CashSession:
    """
    Close a session and record the count.

    expected = sum(IN) - sum(OUT) over the session's transactions
    variance = counted - expected

    Raises:
        SessionNotOpenError: if the session is already CLOSED
    """
    actual_cash_counted_cents = coerce_cents(actual_cash_counted_cents, "actual_cash_counted_cents")
    try:
        closed_dt = normalize_datetime(closed_at)
    except ValueError:
        raise ValidationError("closed_at must be an ISO-8601 datetime")
    notes = coerce_str(notes, "notes", max_length=2000, required=False)

    with atomic("close_cash_session"):
        query = db.session.query(CashSession).filter_by(id=session_id)
        if org_id is not None:
            query = query.filter_by(org_id=org_id)
        session = lock_for_update(query).first()
        if not session:
            raise NotFoundError("Cash session not found")
        if session.status != SESSION_OPEN:
            raise SessionNotOpenError(f"Cash session {session_id} already closed")
        if closed_dt < session.opened_at:
            raise ValidationError("closed_at cannot precede opened_at")

        expected = session_totals(session.id)["expected_balance_cents"]

        session.status = SESSION_CLOSED
        session.expected_amount_cents = expected
        session.closing_amount_cents = actual_cash_counted_cents
        session.variance_cents = actual_cash_counted_cents - expected
        session.closed_at = closed_dt
        session.notes = notes
        record_update(session)

    logger.info(
        "Cash session %s closed: expected=%s counted=%s variance=%s",
        session.id, session.expected_amount_cents, session.closing_amount_cents, session.variance_cents,
    )
    return session


# =============================================================================
# REPORTING
# =============================================================================

def get_session_summary(session_id: str, org_id: str | None = None) -> dict:
    """
    Z-report for a session.

    Returns session details, cash totals, invoice count and variance.
    Expected balance is live for OPEN sessions and frozen for CLOSED ones.
    """
    session = get_session(session_id, org_id=org_id)
    totals = session_totals(session.id)

    invoice_count = (
        db.session.query(func.count(func.distinct(CashTransaction.ref_id)))
        .join(Invoice, Invoice.id == CashTransaction.ref_id)
        .filter(CashTransaction.session_id == session.id)
        .scalar()
    )

    return {
        "session": session.to_dict(),
        **totals,
        "invoice_count": int(invoice_count or 0),
        "is_closed": session.status == SESSION_CLOSED,
        "variance_cents": session.variance_cents,
    }
