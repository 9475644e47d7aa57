# Overview: Flask API routes for reports; read-only aggregates over posted invoices.

from flask import Blueprint, jsonify, request

from ..services import reporting_service
from .common import error_response, require_org_id


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/sales")
def sales_report_route():
    """Query: from, to (ISO-8601 date or datetime, inclusive)."""
    try:
        org_id = require_org_id()
        report = reporting_service.sales_summary(
            org_id,
            date_from=request.args.get("from"),
            date_to=request.args.get("to"),
        )
        return jsonify(report), 200
    except Exception as exc:
        return error_response(exc, "sales report")


@reports_bp.get("/top-products")
def top_products_route():
    try:
        org_id = require_org_id()
        rows = reporting_service.top_products(
            org_id,
            date_from=request.args.get("from"),
            date_to=request.args.get("to"),
            limit=request.args.get("limit", 10),
        )
        return jsonify({"items": rows, "count": len(rows)}), 200
    except Exception as exc:
        return error_response(exc, "top products report")


@reports_bp.get("/dashboard")
def dashboard_route():
    try:
        org_id = require_org_id()
        return jsonify(reporting_service.dashboard(org_id)), 200
    except Exception as exc:
        return error_response(exc, "dashboard")
