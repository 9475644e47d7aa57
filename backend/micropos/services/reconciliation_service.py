# Overview: Read-only audits recomputing denormalized totals from the append-only logs.

"""
Reconciliation

Product.stock and the closing figures of a cash session are caches of sums
over append-only rows. These audits recompute them and report disagreement.
Nothing is repaired automatically.
"""

from __future__ import annotations

import logging

from sqlalchemy import func

from ..extensions import db
from ..models import CashSession, Product, StockMovement
from ..models.cash import SESSION_CLOSED
from .cash_session_service import session_totals


logger = logging.getLogger(__name__)


def audit_stock(org_id: str) -> list[dict]:
    """Products whose stored stock differs from sum(stock_movements.qty)."""
    movement_totals = dict(
        db.session.query(StockMovement.product_id, func.coalesce(func.sum(StockMovement.qty), 0))
        .filter(StockMovement.org_id == org_id)
        .group_by(StockMovement.product_id)
        .all()
    )

    drift = []
    for product in db.session.query(Product).filter_by(org_id=org_id).order_by(Product.name.asc()).all():
        from_movements = int(movement_totals.get(product.id, 0))
        if product.stock != from_movements:
            drift.append({
                "product_id": product.id,
                "name": product.name,
                "stored_stock": product.stock,
                "movement_stock": from_movements,
                "drift": product.stock - from_movements,
            })

    if drift:
        logger.warning("Stock drift in org %s: %d product(s)", org_id, len(drift))
    return drift


def audit_sessions(org_id: str) -> list[dict]:
    """CLOSED sessions whose stored expected balance or variance disagrees with their transactions."""
    mismatches = []
    sessions = (
        db.session.query(CashSession)
        .filter_by(org_id=org_id, status=SESSION_CLOSED)
        .order_by(CashSession.opened_at.asc())
        .all()
    )
    for session in sessions:
        expected = session_totals(session.id)["expected_balance_cents"]
        variance = (session.closing_amount_cents or 0) - expected
        if session.expected_amount_cents != expected or session.variance_cents != variance:
            mismatches.append({
                "session_id": session.id,
                "stored_expected_cents": session.expected_amount_cents,
                "recomputed_expected_cents": expected,
                "stored_variance_cents": session.variance_cents,
                "recomputed_variance_cents": variance,
            })

    if mismatches:
        logger.warning("Cash session mismatch in org %s: %d session(s)", org_id, len(mismatches))
    return mismatches
