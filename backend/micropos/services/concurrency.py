# Overview: Transaction boundary for ledger operations; all-or-nothing commit over the ORM session.

from __future__ import annotations

import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..validation import StorageError


logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; the BEGIN IMMEDIATE issued by
    atomic() serializes writers there instead.
    """
    return query.with_for_update()


def _begin_immediate() -> None:
    """
    Take the SQLite write lock for the current session transaction.

    pysqlite opens no transaction for plain reads, so a session that has only
    read so far still gets the lock. After a write the driver already holds it.
    """
    connection = db.session.connection()
    if connection.connection.dbapi_connection.in_transaction:
        return
    connection.exec_driver_sql("BEGIN IMMEDIATE")


@contextmanager
def atomic(operation: str = "ledger operation"):
    """
    Run the enclosed block as one database transaction.

    - Commits on normal exit; every write inside is visible at once or not at all.
    - Any exception rolls everything back.
    - SQLAlchemy failures (constraint, lock, stale version) surface as StorageError.
    - Ledger errors (ValidationError etc.) propagate unchanged.

    No retries here: retrying is the caller's decision.
    """
    try:
        if db.engine.dialect.name == "sqlite":
            # Take the write lock up front so check-then-insert sequences cannot interleave.
            _begin_immediate()
        yield db.session
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning("%s rolled back: %s", operation, exc.__class__.__name__)
        raise StorageError(f"{operation} could not be committed") from exc
    except Exception:
        db.session.rollback()
        raise
