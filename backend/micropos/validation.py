from __future__ import annotations

from typing import Any, Iterable


# Maximum money amount: 9,999,999.99 (999,999,999 cents)
# Keeps arithmetic well inside 64-bit columns after qty * price * rate products
MAX_AMOUNT_CENTS = 999_999_999

# 100% in basis points
MAX_BPS = 10_000

# Largest quantity on one line or barcode pack
# Keeps qty * MAX_AMOUNT_CENTS inside SQLite's 64-bit integers
MAX_QTY = 1_000_000


class LedgerError(Exception):
    """Base class for every error surfaced by the ledger core."""


class ValidationError(LedgerError, ValueError):
    """400-level input problem. Raised before any write."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class NotFoundError(LedgerError, LookupError):
    """Referenced entity does not exist in the caller's organization."""


class StorageError(LedgerError):
    """
    The atomic transaction could not commit.

    All partial writes were rolled back; the caller may retry from scratch.
    """


class ImmutableRecordError(LedgerError):
    """Attempt to modify or delete an append-only or posted record."""

    def __init__(self, entity_type: str, entity_id: str | None, reason: str):
        super().__init__(f"{entity_type} {entity_id}: {reason}")
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason


def require_fields(payload: dict, fields: Iterable[str]) -> None:
    missing = [f for f in fields if payload.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}", details={"missing": missing})


def coerce_int(value: Any, field: str, *, minimum: int | None = None, maximum: int | None = None) -> int:
    """
    Strict integer coercion for money (cents), basis points and quantities.

    Rejects floats, bools, scientific notation and decimal strings so that
    "12.5" never silently becomes 12.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    if maximum is not None and result > maximum:
        raise ValidationError(f"{field} must be <= {maximum}")
    return result


def coerce_cents(value: Any, field: str, *, allow_zero: bool = True) -> int:
    return coerce_int(value, field, minimum=0 if allow_zero else 1, maximum=MAX_AMOUNT_CENTS)


def coerce_bps(value: Any, field: str) -> int:
    return coerce_int(value, field, minimum=0, maximum=MAX_BPS)


def coerce_qty(value: Any, field: str) -> int:
    return coerce_int(value, field, minimum=1, maximum=MAX_QTY)


def coerce_choice(value: Any, field: str, choices: Iterable[str]) -> str:
    allowed = list(choices)
    if not isinstance(value, str) or value.upper() not in allowed:
        raise ValidationError(f"{field} must be one of {allowed}")
    return value.upper()


def coerce_str(value: Any, field: str, *, max_length: int, required: bool = True) -> str | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required")
        return None
    s = str(value).strip()
    if len(s) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return s


def coerce_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "1", "yes"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "0", "no"):
        return False
    if isinstance(value, int):
        return bool(value)
    raise ValidationError(f"{field} must be a boolean")
