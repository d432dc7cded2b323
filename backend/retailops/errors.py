# Overview: Typed domain errors raised by the service layer.

"""
Domain error kinds (closed set).

Every failure a core operation reports to its caller is one of the RetailOpsError
subclasses below. The kind is machine-checkable; the message is for humans.
Transport mapping (HTTP status codes) lives in routes/errors.py, never here.

Retry guidance:
- INSUFFICIENT_STOCK / PAYMENT_INCOMPLETE: retry after fixing the condition
  (receive stock, add payment). The core never retries these itself.
- NOT_FOUND / INVALID_REQUEST: permanent for the given input.
"""

from __future__ import annotations

import enum


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "NOT_FOUND"
    INVALID_REQUEST = "INVALID_REQUEST"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    INVALID_INVENTORY_STATE = "INVALID_INVENTORY_STATE"
    INVALID_ORDER_STATE = "INVALID_ORDER_STATE"
    PAYMENT_INCOMPLETE = "PAYMENT_INCOMPLETE"


class RetailOpsError(Exception):
    """Base class for all domain errors."""
    kind: ErrorKind

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "kind": self.kind.value,
            "details": self.details,
        }


class NotFoundError(RetailOpsError):
    """Product, inventory row, order, PO or PO item does not exist (in this tenant)."""
    kind = ErrorKind.NOT_FOUND


class InvalidRequestError(RetailOpsError):
    """Input rejected before touching state (same-warehouse transfer, bad direction...)."""
    kind = ErrorKind.INVALID_REQUEST


class InsufficientStockError(RetailOpsError):
    """Transfer or sale would take on-hand below zero."""
    kind = ErrorKind.INSUFFICIENT_STOCK


class InvalidInventoryStateError(RetailOpsError):
    """Adjustment would leave the inventory row negative."""
    kind = ErrorKind.INVALID_INVENTORY_STATE


class InvalidOrderStateError(RetailOpsError):
    """Operation not allowed for the order's current status."""
    kind = ErrorKind.INVALID_ORDER_STATE


class PaymentIncompleteError(RetailOpsError):
    """Completion attempted before the order is PAID."""
    kind = ErrorKind.PAYMENT_INCOMPLETE
