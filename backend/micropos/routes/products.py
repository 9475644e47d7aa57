# backend/micropos/routes/products.py
from flask import Blueprint, jsonify, request

from ..services import products_service
from ..validation import coerce_bool
from .common import error_response, json_body, require_org_id

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@products_bp.get("/")
def list_products_route():
    """
    Query: active_only=true, low_stock=true
    """
    try:
        org_id = require_org_id()
        if coerce_bool(request.args.get("low_stock", "false"), "low_stock"):
            products = products_service.low_stock_products(org_id)
        else:
            active_only = coerce_bool(request.args.get("active_only", "false"), "active_only")
            products = products_service.list_products(org_id, active_only=active_only)
        return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200
    except Exception as exc:
        return error_response(exc, "list products")


@products_bp.post("")
@products_bp.post("/")
def create_product_route():
    try:
        org_id = require_org_id()
        data = json_body()
        barcodes = data.pop("barcodes", None)
        product = products_service.create_product(org_id, data, barcodes=barcodes)
        return jsonify(product.to_dict(include_barcodes=True)), 201
    except Exception as exc:
        return error_response(exc, "create product")


@products_bp.get("/barcode/<code>")
def lookup_barcode_route(code: str):
    try:
        org_id = require_org_id()
        match = products_service.lookup_barcode(org_id, code)
        if match is None:
            return jsonify({"error": "Barcode not found"}), 404
        return jsonify({
            "product": match["product"].to_dict(),
            "barcode": match["barcode"].to_dict(),
            "qty": match["qty"],
            "unit_price_cents": match["unit_price_cents"],
        }), 200
    except Exception as exc:
        return error_response(exc, "look up barcode")


@products_bp.get("/<product_id>")
def get_product_route(product_id: str):
    try:
        org_id = require_org_id()
        product = products_service.get_product(org_id, product_id)
        return jsonify(product.to_dict(include_barcodes=True)), 200
    except Exception as exc:
        return error_response(exc, "get product")


@products_bp.patch("/<product_id>")
def update_product_route(product_id: str):
    try:
        org_id = require_org_id()
        product = products_service.update_product(org_id, product_id, json_body())
        return jsonify(product.to_dict()), 200
    except Exception as exc:
        return error_response(exc, "update product")
