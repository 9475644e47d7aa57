# Overview: Shared request helpers for the API blueprints (org context, error mapping).

from flask import current_app, jsonify, request

from ..extensions import db
from ..models import Organization
from ..services.cash_session_service import SessionError
from ..validation import ImmutableRecordError, LedgerError, NotFoundError, StorageError, ValidationError


ORG_HEADER = "X-Org-Id"


def require_org_id() -> str:
    """
    Organization context for the request, from the X-Org-Id header.

    Raises:
        ValidationError: header missing
        NotFoundError: unknown organization
    """
    org_id = (request.headers.get(ORG_HEADER) or "").strip()
    if not org_id:
        raise ValidationError(f"{ORG_HEADER} header is required")
    if db.session.get(Organization, org_id) is None:
        raise NotFoundError("Organization not found")
    return org_id


def json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def error_response(exc: Exception, action: str):
    """Map ledger errors to HTTP statuses; anything else is logged and becomes a 500."""
    if isinstance(exc, ValidationError):
        body = {"error": str(exc)}
        if exc.details:
            body["details"] = exc.details
        return jsonify(body), 400
    if isinstance(exc, NotFoundError):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, (SessionError, ImmutableRecordError)):
        return jsonify({"error": str(exc), "type": exc.__class__.__name__}), 409
    if isinstance(exc, StorageError):
        current_app.logger.warning("%s: %s", action, exc)
        return jsonify({"error": str(exc), "retryable": True}), 503
    if isinstance(exc, LedgerError):
        return jsonify({"error": str(exc)}), 400

    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500
