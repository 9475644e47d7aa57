# Overview: Flask API routes for invoices; parses input and returns JSON responses.

# backend/micropos/routes/invoices.py
"""
Invoice API Routes

WHY: Sales, purchases and returns are all invoices; posting one applies
stock, partner balance and drawer effects in a single transaction.

DESIGN:
- POST /api/invoices records a POSTED (default) or DRAFT invoice
- Drafts are posted later with POST /api/invoices/<id>/post
- POST /api/invoices/quote prices a cart without writing anything
"""

from flask import Blueprint, jsonify, request

from ..services import ledger_service
from ..services.totals_service import DISCOUNT_FIXED
from ..validation import coerce_int
from .common import error_response, json_body, require_org_id


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.post("")
@invoices_bp.post("/")
def create_invoice_route():
    """
    Request body:
    {
        "type": "SALE",
        "status": "POSTED",
        "warehouse_id": "...",
        "partner_id": null,
        "payment_method": "CASH",
        "paid_amount_cents": 12000,
        "grand_total_cents": 12000,      (optional, checked against items)
        "items": [{"product_id": "...", "qty": 2, "price_cents": 5000}]
    }
    """
    try:
        org_id = require_org_id()
        data = json_body()
        items = data.pop("items", None)
        data["org_id"] = org_id
        invoice = ledger_service.post_invoice(data, items)
        return jsonify({"invoice": invoice.to_dict(include_items=True)}), 201
    except Exception as exc:
        return error_response(exc, "post invoice")


@invoices_bp.get("")
@invoices_bp.get("/")
def list_invoices_route():
    try:
        org_id = require_org_id()
        limit = coerce_int(request.args.get("limit", 100), "limit", minimum=1, maximum=500)
        invoices = ledger_service.list_invoices(
            org_id,
            invoice_type=request.args.get("type"),
            status=request.args.get("status"),
            limit=limit,
            date_from=request.args.get("from"),
            date_to=request.args.get("to"),
        )
        return jsonify({"invoices": [i.to_dict() for i in invoices], "count": len(invoices)}), 200
    except Exception as exc:
        return error_response(exc, "list invoices")


@invoices_bp.post("/quote")
def quote_invoice_route():
    """
    Request body:
    {
        "items": [{"product_id": "...", "qty": 3, "discount": 1000, "discount_type": "PERCENT"}],
        "global_discount": 0,
        "global_discount_type": "FIXED"
    }
    """
    try:
        org_id = require_org_id()
        data = json_body()
        totals = ledger_service.quote_invoice(
            org_id,
            data.get("items"),
            global_discount=data.get("global_discount", 0),
            global_discount_type=data.get("global_discount_type", DISCOUNT_FIXED),
        )
        return jsonify({"totals": totals.to_dict()}), 200
    except Exception as exc:
        return error_response(exc, "quote invoice")


@invoices_bp.get("/<invoice_id>")
def get_invoice_route(invoice_id: str):
    try:
        org_id = require_org_id()
        invoice = ledger_service.get_invoice(org_id, invoice_id)
        return jsonify({"invoice": invoice.to_dict(include_items=True)}), 200
    except Exception as exc:
        return error_response(exc, "get invoice")


@invoices_bp.post("/<invoice_id>/post")
def post_draft_route(invoice_id: str):
    try:
        org_id = require_org_id()
        invoice = ledger_service.post_draft_invoice(org_id, invoice_id)
        return jsonify({"invoice": invoice.to_dict(include_items=True)}), 200
    except Exception as exc:
        return error_response(exc, "post draft invoice")
