"""
ORM-level append-only enforcement for ledger records.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database. The listeners below reject changes that would rewrite financial
or inventory history:

Entity            | When immutable                | Allowed instead
------------------|-------------------------------|--------------------------------
StockMovement     | always                        | new movement row
CashTransaction   | always                        | new IN/OUT row
Expense           | always                        | new expense
Invoice           | once POSTED; never deleted    | return-type invoice
InvoiceItem       | when invoice POSTED; no delete| return-type invoice
CashSession       | once CLOSED; never deleted    | next session

Raising inside the flush aborts it; atomic() rolls the transaction back.
"""

from __future__ import annotations

import logging

from sqlalchemy import event, inspect
from sqlalchemy.orm import object_session

from .validation import ImmutableRecordError


logger = logging.getLogger(__name__)

_registered = False


def _has_column_changes(target) -> bool:
    session = object_session(target)
    if session is None:
        return False
    return session.is_modified(target, include_collections=False)


def _committed_value(target, attr: str):
    history = inspect(target).attrs[attr].history
    if history.deleted:
        return history.deleted[0]
    return getattr(target, attr)


def _blocked(entity_type: str, target, reason: str) -> None:
    logger.error("Blocked %s on %s %s", reason, entity_type, getattr(target, "id", None))
    raise ImmutableRecordError(entity_type, getattr(target, "id", None), reason)


def _append_only(entity_type: str):
    def _before_update(mapper, connection, target):
        if _has_column_changes(target):
            _blocked(entity_type, target, "append-only records cannot be updated")

    def _before_delete(mapper, connection, target):
        _blocked(entity_type, target, "append-only records cannot be deleted")

    return _before_update, _before_delete


def _check_invoice_update(mapper, connection, target):
    from .models.invoices import STATUS_POSTED

    if not _has_column_changes(target):
        return
    if _committed_value(target, "status") == STATUS_POSTED:
        _blocked("Invoice", target, "posted invoices are immutable")


def _check_invoice_delete(mapper, connection, target):
    _blocked("Invoice", target, "invoices cannot be deleted")


def _check_invoice_item_update(mapper, connection, target):
    from .models.invoices import STATUS_POSTED

    if not _has_column_changes(target):
        return
    if target.invoice is not None and target.invoice.status == STATUS_POSTED:
        _blocked("InvoiceItem", target, "items of a posted invoice are immutable")


def _check_invoice_item_delete(mapper, connection, target):
    _blocked("InvoiceItem", target, "invoice items cannot be deleted")


def _check_session_update(mapper, connection, target):
    from .models.cash import SESSION_CLOSED

    if not _has_column_changes(target):
        return
    if _committed_value(target, "status") == SESSION_CLOSED:
        _blocked("CashSession", target, "closed sessions cannot be modified")


def _check_session_delete(mapper, connection, target):
    _blocked("CashSession", target, "cash sessions cannot be deleted")


def register_immutability_listeners() -> None:
    """
    Register all append-only listeners. Idempotent.

    Call after models are imported and before any ledger writes.
    """
    global _registered
    if _registered:
        return

    from .models import StockMovement, CashTransaction, Expense, Invoice, InvoiceItem, CashSession

    for model, name in (
        (StockMovement, "StockMovement"),
        (CashTransaction, "CashTransaction"),
        (Expense, "Expense"),
    ):
        before_update, before_delete = _append_only(name)
        event.listen(model, "before_update", before_update)
        event.listen(model, "before_delete", before_delete)

    event.listen(Invoice, "before_update", _check_invoice_update)
    event.listen(Invoice, "before_delete", _check_invoice_delete)

    event.listen(InvoiceItem, "before_update", _check_invoice_item_update)
    event.listen(InvoiceItem, "before_delete", _check_invoice_item_delete)

    event.listen(CashSession, "before_update", _check_session_update)
    event.listen(CashSession, "before_delete", _check_session_delete)

    _registered = True
