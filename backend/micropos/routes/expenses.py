# Overview: Flask API routes for expenses; each expense is paid out of the drawer.

from flask import Blueprint, jsonify, request

from ..services import ledger_service
from .common import error_response, json_body, require_org_id


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.post("")
@expenses_bp.post("/")
def create_expense_route():
    """
    Request body:
    {
        "amount_cents": 1500,
        "category": "Supplies",
        "description": "paper rolls",
        "created_by": "cashier-1"
    }
    """
    try:
        org_id = require_org_id()
        data = json_body()
        expense = ledger_service.record_expense(
            org_id=org_id,
            amount_cents=data.get("amount_cents"),
            category=data.get("category"),
            created_by=data.get("created_by"),
            description=data.get("description"),
            date=data.get("date"),
        )
        return jsonify({"expense": expense.to_dict()}), 201
    except Exception as exc:
        return error_response(exc, "record expense")


@expenses_bp.get("")
@expenses_bp.get("/")
def list_expenses_route():
    try:
        org_id = require_org_id()
        expenses = ledger_service.list_expenses(
            org_id,
            date_from=request.args.get("from"),
            date_to=request.args.get("to"),
        )
        return jsonify({"expenses": [e.to_dict() for e in expenses], "count": len(expenses)}), 200
    except Exception as exc:
        return error_response(exc, "list expenses")
