# backend/retailops/routes/errors.py
"""
Domain error -> HTTP response mapping.

This is the only place that knows about status codes. Services raise
RetailOpsError subclasses; the handlers below turn them into
{"error": message, "kind": KIND, "details": {...}} bodies.
"""
from flask import current_app, jsonify
from werkzeug.exceptions import HTTPException

from ..errors import ErrorKind, RetailOpsError


STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.INSUFFICIENT_STOCK: 409,
    ErrorKind.INVALID_INVENTORY_STATE: 409,
    ErrorKind.INVALID_ORDER_STATE: 409,
    ErrorKind.PAYMENT_INCOMPLETE: 409,
}


def status_for(error: RetailOpsError) -> int:
    return STATUS_BY_KIND.get(error.kind, 400)


def handle_domain_error(error: RetailOpsError):
    status = status_for(error)
    current_app.logger.info("Request rejected kind=%s status=%s: %s", error.kind.value, status, error.message)
    return jsonify(error.to_dict()), status


def handle_unexpected_error(error: Exception):
    # Let Flask render its own 404/405/etc.
    if isinstance(error, HTTPException):
        return error
    current_app.logger.exception("Unhandled error")
    return jsonify({"error": "Internal server error"}), 500


def register_error_handlers(app) -> None:
    app.register_error_handler(RetailOpsError, handle_domain_error)
    app.register_error_handler(Exception, handle_unexpected_error)
