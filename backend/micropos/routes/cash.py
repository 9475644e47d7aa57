# Overview: Flask API routes for cash sessions and manual drawer movements.

# backend/micropos/routes/cash.py
"""
Cash Session API Routes

DESIGN:
- Session lifecycle: open -> close (immutable once closed)
- One OPEN session per organization; a second open is a 409
- Drawer movements outside invoices/expenses go through /api/cash-transactions
"""

from flask import Blueprint, jsonify, request

from ..services import cash_session_service
from ..models.cash import SESSION_STATUSES
from ..validation import coerce_choice, coerce_int
from .common import error_response, json_body, require_org_id


cash_bp = Blueprint("cash", __name__)


# =============================================================================
# SESSION LIFECYCLE
# =============================================================================

@cash_bp.post("/api/cash-sessions")
def open_session_route():
    """
    Open the drawer.

    Request body:
    {
        "user_id": "cashier-1",
        "opening_amount_cents": 20000
    }
    """
    try:
        org_id = require_org_id()
        data = json_body()
        session = cash_session_service.open_cash_session(
            org_id=org_id,
            user_id=data.get("user_id"),
            opening_amount_cents=data.get("opening_amount_cents", 0),
            opened_at=data.get("opened_at"),
        )
        return jsonify({"session": session.to_dict()}), 201
    except Exception as exc:
        return error_response(exc, "open cash session")


@cash_bp.get("/api/cash-sessions")
def list_sessions_route():
    try:
        org_id = require_org_id()
        status = request.args.get("status")
        if status:
            status = coerce_choice(status, "status", SESSION_STATUSES)
        limit = coerce_int(request.args.get("limit", 50), "limit", minimum=1, maximum=500)
        sessions = cash_session_service.list_sessions(org_id, status=status, limit=limit)
        return jsonify({"sessions": [s.to_dict() for s in sessions], "count": len(sessions)}), 200
    except Exception as exc:
        return error_response(exc, "list cash sessions")


@cash_bp.get("/api/cash-sessions/current")
def current_session_route():
    try:
        org_id = require_org_id()
        session = cash_session_service.get_current_session(org_id)
        return jsonify({"session": session.to_dict() if session else None}), 200
    except Exception as exc:
        return error_response(exc, "get current cash session")


@cash_bp.get("/api/cash-sessions/<session_id>")
def session_summary_route(session_id: str):
    """Z-report: session, totals in/out, expected balance and variance."""
    try:
        org_id = require_org_id()
        summary = cash_session_service.get_session_summary(session_id, org_id=org_id)
        return jsonify(summary), 200
    except Exception as exc:
        return error_response(exc, "get cash session")


@cash_bp.post("/api/cash-sessions/<session_id>/close")
def close_session_route(session_id: str):
    """
    Close the drawer with the physical count.

    Request body:
    {
        "actual_cash_counted_cents": 12000,
        "notes": "optional"
    }
    """
    try:
        org_id = require_org_id()
        data = json_body()
        session = cash_session_service.close_cash_session(
            session_id,
            data.get("actual_cash_counted_cents"),
            closed_at=data.get("closed_at"),
            notes=data.get("notes"),
            org_id=org_id,
        )
        return jsonify({"session": session.to_dict()}), 200
    except Exception as exc:
        return error_response(exc, "close cash session")


@cash_bp.get("/api/cash-sessions/<session_id>/transactions")
def session_transactions_route(session_id: str):
    try:
        org_id = require_org_id()
        session = cash_session_service.get_session(session_id, org_id=org_id)
        transactions = cash_session_service.get_session_transactions(session.id)
        return jsonify({"transactions": [t.to_dict() for t in transactions], "count": len(transactions)}), 200
    except Exception as exc:
        return error_response(exc, "list cash transactions")


# =============================================================================
# MANUAL DRAWER MOVEMENTS
# =============================================================================

@cash_bp.post("/api/cash-transactions")
def add_cash_transaction_route():
    """
    Request body:
    {
        "amount_cents": 500,
        "type": "IN" | "OUT",
        "description": "change top-up",
        "session_id": "optional, must be OPEN"
    }
    """
    try:
        org_id = require_org_id()
        data = json_body()
        tx = cash_session_service.add_cash_transaction(
            org_id=org_id,
            amount_cents=data.get("amount_cents"),
            tx_type=data.get("type"),
            description=data.get("description"),
            ref_id=data.get("ref_id"),
            session_id=data.get("session_id"),
        )
        return jsonify({"transaction": tx.to_dict()}), 201
    except Exception as exc:
        return error_response(exc, "add cash transaction")
