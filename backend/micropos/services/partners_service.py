# backend/micropos/services/partners_service.py
"""
Partners Service - customers and suppliers

balance_cents starts at 0 and is never written here; only posted invoices move it.
Updates touch contact fields and the active flag only.
"""
from __future__ import annotations

import logging

from ..extensions import db
from ..models import Organization, Partner
from ..models.partners import PARTNER_CUSTOMER, PARTNER_TYPES
from ..validation import NotFoundError, ValidationError, coerce_bool, coerce_choice, coerce_str
from .concurrency import atomic
from .outbox_service import record_insert, record_update


logger = logging.getLogger(__name__)


def create_partner(
    org_id: str,
    partner_type: str,
    name: str,
    phone: str | None = None,
    tax_number: str | None = None,
) -> Partner:
    partner_type = coerce_choice(partner_type, "type", PARTNER_TYPES)
    name = coerce_str(name, "name", max_length=255)
    phone = coerce_str(phone, "phone", max_length=32, required=False)
    tax_number = coerce_str(tax_number, "tax_number", max_length=64, required=False)

    with atomic("create_partner"):
        if db.session.get(Organization, org_id) is None:
            raise NotFoundError("Organization not found")
        partner = Partner(
            org_id=org_id,
            type=partner_type,
            name=name,
            phone=phone,
            tax_number=tax_number,
            balance_cents=0,
        )
        db.session.add(partner)
        record_insert(partner)

    logger.info("Partner %s (%s) created for org %s", partner.id, partner_type, org_id)
    return partner


def get_partner(org_id: str, partner_id: str) -> Partner:
    partner = db.session.query(Partner).filter_by(id=partner_id, org_id=org_id).first()
    if not partner:
        raise NotFoundError("Partner not found")
    return partner


def list_partners(org_id: str, partner_type: str | None = None) -> list[Partner]:
    query = db.session.query(Partner).filter_by(org_id=org_id)
    if partner_type:
        query = query.filter_by(type=coerce_choice(partner_type, "type", PARTNER_TYPES))
    return query.order_by(Partner.name.asc(), Partner.id.asc()).all()


def update_partner(org_id: str, partner_id: str, patch: dict) -> Partner:
    """
    Apply a partial update to name, phone, tax_number or is_active.

    Unknown keys are ignored; a balance in the patch is rejected.
    """
    if not isinstance(patch, dict):
        raise ValidationError("patch must be an object")
    if "balance_cents" in patch or "balance" in patch:
        raise ValidationError("balance cannot be patched; it only changes through posted invoices")

    fields = {}
    if "name" in patch:
        fields["name"] = coerce_str(patch["name"], "name", max_length=255)
    if "phone" in patch:
        fields["phone"] = coerce_str(patch["phone"], "phone", max_length=32, required=False)
    if "tax_number" in patch:
        fields["tax_number"] = coerce_str(patch["tax_number"], "tax_number", max_length=64, required=False)
    if "is_active" in patch:
        fields["is_active"] = coerce_bool(patch["is_active"], "is_active")

    with atomic("update_partner"):
        partner = get_partner(org_id, partner_id)
        for key, value in fields.items():
            setattr(partner, key, value)
        record_update(partner)

    logger.info("Partner %s updated: %s", partner.id, ", ".join(sorted(fields)) or "no changes")
    return partner


def list_debtors(org_id: str) -> dict:
    """Customers that still owe money, largest balance first, with the total owed."""
    debtors = (
        db.session.query(Partner)
        .filter(
            Partner.org_id == org_id,
            Partner.type == PARTNER_CUSTOMER,
            Partner.balance_cents > 0,
        )
        .order_by(Partner.balance_cents.desc(), Partner.name.asc())
        .all()
    )
    return {
        "partners": debtors,
        "total_debt_cents": sum(p.balance_cents for p in debtors),
    }
