# backend/micropos/routes/partners.py
from flask import Blueprint, jsonify, request

from ..services import partners_service
from .common import error_response, json_body, require_org_id

partners_bp = Blueprint("partners", __name__, url_prefix="/api/partners")


@partners_bp.get("")
@partners_bp.get("/")
def list_partners_route():
    try:
        org_id = require_org_id()
        partners = partners_service.list_partners(org_id, partner_type=request.args.get("type"))
        return jsonify({"items": [p.to_dict() for p in partners], "count": len(partners)}), 200
    except Exception as exc:
        return error_response(exc, "list partners")


@partners_bp.post("")
@partners_bp.post("/")
def create_partner_route():
    try:
        org_id = require_org_id()
        data = json_body()
        partner = partners_service.create_partner(
            org_id=org_id,
            partner_type=data.get("type"),
            name=data.get("name"),
            phone=data.get("phone"),
            tax_number=data.get("tax_number"),
        )
        return jsonify(partner.to_dict()), 201
    except Exception as exc:
        return error_response(exc, "create partner")


@partners_bp.get("/<partner_id>")
def get_partner_route(partner_id: str):
    try:
        org_id = require_org_id()
        partner = partners_service.get_partner(org_id, partner_id)
        return jsonify(partner.to_dict()), 200
    except Exception as exc:
        return error_response(exc, "get partner")


@partners_bp.patch("/<partner_id>")
def update_partner_route(partner_id: str):
    try:
        org_id = require_org_id()
        partner = partners_service.update_partner(org_id, partner_id, json_body())
        return jsonify(partner.to_dict()), 200
    except Exception as exc:
        return error_response(exc, "update partner")


@partners_bp.get("/debtors")
def list_debtors_route():
    try:
        org_id = require_org_id()
        debtors = partners_service.list_debtors(org_id)
        return jsonify({
            "items": [p.to_dict() for p in debtors["partners"]],
            "count": len(debtors["partners"]),
            "total_debt_cents": debtors["total_debt_cents"],
        }), 200
    except Exception as exc:
        return error_response(exc, "list debtors")
