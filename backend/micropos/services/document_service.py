# Overview: Per-org invoice numbering; allocation happens inside the posting transaction.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import DocumentSequence, Invoice
from ..models.invoices import (
    INVOICE_PURCHASE,
    INVOICE_PURCHASE_RETURN,
    INVOICE_SALE,
    INVOICE_SALE_RETURN,
)
from ..validation import ValidationError


INVOICE_PREFIXES = {
    INVOICE_SALE: "S",
    INVOICE_PURCHASE: "P",
    INVOICE_SALE_RETURN: "SR",
    INVOICE_PURCHASE_RETURN: "PR",
}


def next_document_number(
    *,
    org_id: str,
    document_type: str,
    prefix: str,
    pad: int = 6,
) -> str:
    """
    Allocate the next document number for an org/type.

    Must run inside the caller's atomic() block: the increment is a single
    UPDATE, so the number is only consumed if the surrounding transaction commits.
    """
    if not org_id:
        raise ValidationError("org_id is required")
    if not document_type:
        raise ValidationError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.org_id == org_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(org_id=org_id, document_type=document_type)
            .scalar()
        )
        next_num = current - 1
    else:
        db.session.add(DocumentSequence(org_id=org_id, document_type=document_type, next_number=2))
        db.session.flush()
        next_num = 1

    return f"{prefix}-{next_num:0{pad}d}"


def next_invoice_number(org_id: str, invoice_type: str) -> str:
    """
    Allocate the next free invoice number for an org/type.

    Numbers already taken by a caller-supplied invoice_number are skipped.
    """
    try:
        prefix = INVOICE_PREFIXES[invoice_type]
    except KeyError:
        raise ValidationError(f"Unknown invoice type {invoice_type}")

    document_type = f"INVOICE_{invoice_type}"
    while True:
        number = next_document_number(org_id=org_id, document_type=document_type, prefix=prefix)
        taken = db.session.query(Invoice.id).filter_by(org_id=org_id, invoice_number=number).first()
        if not taken:
            return number
