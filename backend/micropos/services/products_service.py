# backend/micropos/services/products_service.py
"""
Products Service - catalog master data

MULTI-TENANT: every lookup is filtered by org_id; barcodes are unique per org.

STOCK: `stock` is never part of a create or patch payload. It starts at 0
and only the ledger engine moves it.
"""
from __future__ import annotations

import logging

from sqlalchemy import and_

from ..extensions import db
from ..models import Category, Organization, Product, ProductBarcode
from ..validation import (
    NotFoundError,
    ValidationError,
    coerce_bool,
    coerce_bps,
    coerce_cents,
    coerce_int,
    coerce_qty,
    coerce_str,
)
from .concurrency import atomic
from .outbox_service import record_insert, record_update


logger = logging.getLogger(__name__)

PRODUCT_MUTABLE_FIELDS = {
    "name",
    "sku",
    "category_id",
    "cost_cents",
    "price_cents",
    "tax_rate_bps",
    "min_stock",
    "is_active",
    "is_stock_tracking",
}


def _normalize_product_fields(patch: dict) -> dict:
    """Validate and coerce the mutable product fields present in patch."""
    fields = {}
    for key, value in patch.items():
        if key == "name":
            fields[key] = coerce_str(value, "name", max_length=255)
        elif key == "sku":
            fields[key] = coerce_str(value, "sku", max_length=64, required=False)
        elif key == "category_id":
            fields[key] = value or None
        elif key in ("cost_cents", "price_cents"):
            fields[key] = coerce_cents(value, key)
        elif key == "tax_rate_bps":
            fields[key] = coerce_bps(value, key)
        elif key == "min_stock":
            fields[key] = coerce_int(value, key, minimum=0)
        elif key in ("is_active", "is_stock_tracking"):
            fields[key] = coerce_bool(value, key)
    return fields


def _normalize_barcodes(raw) -> list[dict]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("barcodes must be a list")

    barcodes = []
    seen = set()
    for idx, entry in enumerate(raw):
        if isinstance(entry, str):
            entry = {"barcode": entry}
        if not isinstance(entry, dict):
            raise ValidationError(f"barcodes[{idx}] must be a string or an object")
        code = coerce_str(entry.get("barcode"), f"barcodes[{idx}].barcode", max_length=64)
        if code in seen:
            raise ValidationError(f"Duplicate barcode {code}")
        seen.add(code)
        override = entry.get("price_override_cents")
        barcodes.append({
            "barcode": code,
            "is_primary": coerce_bool(entry.get("is_primary", False), f"barcodes[{idx}].is_primary"),
            "unit_type": coerce_str(entry.get("unit_type"), f"barcodes[{idx}].unit_type", max_length=32, required=False) or "piece",
            "factor": coerce_qty(entry.get("factor", 1), f"barcodes[{idx}].factor"),
            "price_override_cents": None if override is None else coerce_cents(override, f"barcodes[{idx}].price_override_cents"),
        })

    primaries = [b for b in barcodes if b["is_primary"]]
    if len(primaries) > 1:
        raise ValidationError("Only one barcode can be primary")
    if barcodes and not primaries:
        barcodes[0]["is_primary"] = True
    return barcodes


def _require_category(org_id: str, category_id: str | None) -> None:
    if category_id is None:
        return
    exists = db.session.query(Category.id).filter_by(id=category_id, org_id=org_id).first()
    if not exists:
        raise ValidationError("Unknown category for this organization")


def create_category(org_id: str, name: str) -> Category:
    name = coerce_str(name, "name", max_length=120)
    with atomic("create_category"):
        if db.session.query(Category.id).filter_by(org_id=org_id, name=name).first():
            raise ValidationError(f"Category {name} already exists")
        category = Category(org_id=org_id, name=name)
        db.session.add(category)
        record_insert(category)
    return category


def create_product(org_id: str, patch: dict, barcodes=None) -> Product:
    """
    Create a product with its barcodes in one commit.

    The first barcode becomes primary when none is flagged.

    Raises:
        ValidationError: bad fields, stock in payload, or a barcode already used in the org
    """
    if not isinstance(patch, dict):
        raise ValidationError("product must be an object")
    if "stock" in patch:
        raise ValidationError("stock cannot be set directly; post a PURCHASE invoice instead")
    if "name" not in patch:
        raise ValidationError("name is required")

    fields = _normalize_product_fields(patch)
    barcode_rows = _normalize_barcodes(barcodes if barcodes is not None else patch.get("barcodes"))

    with atomic("create_product"):
        if db.session.get(Organization, org_id) is None:
            raise NotFoundError("Organization not found")
        _require_category(org_id, fields.get("category_id"))

        if barcode_rows:
            codes = [b["barcode"] for b in barcode_rows]
            taken = [
                row.barcode
                for row in db.session.query(ProductBarcode.barcode).filter(
                    ProductBarcode.org_id == org_id,
                    ProductBarcode.barcode.in_(codes),
                ).all()
            ]
            if taken:
                raise ValidationError("Barcode already in use", details={"barcodes": sorted(taken)})

        product = Product(org_id=org_id, stock=0, **fields)
        db.session.add(product)
        record_insert(product)

        for row in barcode_rows:
            barcode = ProductBarcode(org_id=org_id, product_id=product.id, **row)
            db.session.add(barcode)
            record_insert(barcode)

    logger.info("Product %s (%s) created for org %s", product.id, product.name, org_id)
    return product


def get_product(org_id: str, product_id: str) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, org_id=org_id).first()
    if not product:
        raise NotFoundError("Product not found")
    return product


def list_products(org_id: str, active_only: bool = False) -> list[Product]:
    query = db.session.query(Product).filter_by(org_id=org_id)
    if active_only:
        query = query.filter_by(is_active=True)
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def update_product(org_id: str, product_id: str, patch: dict) -> Product:
    """
    Apply a partial update.

    Unknown keys are ignored; `stock` is rejected outright.
    """
    if not isinstance(patch, dict):
        raise ValidationError("patch must be an object")
    if "stock" in patch:
        raise ValidationError("stock cannot be patched; it only changes through posted invoices")

    fields = _normalize_product_fields({k: v for k, v in patch.items() if k in PRODUCT_MUTABLE_FIELDS})

    with atomic("update_product"):
        product = get_product(org_id, product_id)
        if "category_id" in fields:
            _require_category(org_id, fields["category_id"])
        for key, value in fields.items():
            setattr(product, key, value)
        record_update(product)

    logger.info("Product %s updated: %s", product.id, ", ".join(sorted(fields)) or "no changes")
    return product


def lookup_barcode(org_id: str, barcode: str) -> dict | None:
    """
    Resolve a scanned code.

    Returns the product, the barcode row, the quantity one scan represents
    (factor) and the effective unit price, or None for an unknown code.
    """
    row = (
        db.session.query(ProductBarcode)
        .join(Product, and_(Product.id == ProductBarcode.product_id, Product.org_id == ProductBarcode.org_id))
        .filter(ProductBarcode.org_id == org_id, ProductBarcode.barcode == barcode)
        .first()
    )
    if row is None:
        return None

    product = row.product
    unit_price = row.price_override_cents if row.price_override_cents is not None else product.price_cents
    return {
        "product": product,
        "barcode": row,
        "qty": row.factor,
        "unit_price_cents": unit_price,
    }


def low_stock_products(org_id: str) -> list[Product]:
    """Active, stock-tracked products at or below their min_stock."""
    return (
        db.session.query(Product)
        .filter(
            Product.org_id == org_id,
            Product.is_active.is_(True),
            Product.is_stock_tracking.is_(True),
            Product.stock <= Product.min_stock,
        )
        .order_by(Product.stock.asc(), Product.name.asc())
        .all()
    )
