# Overview: Domain error taxonomy shared by services and routes.

"""
Every error a core operation can surface to its caller.

Routes never inspect messages to pick a status code; each class carries its
own HTTP status and a stable machine code. The registered error handler turns
them into JSON bodies: {"error": ..., "code": ..., "details": {...}}.
"""

from __future__ import annotations


class DomainError(Exception):
    """Base class for errors raised by the storefront core."""

    status_code = 400
    code = "domain_error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


class ValidationError(DomainError):
    """400-level input or configuration problem."""

    code = "validation_error"


class InvalidQuantityError(ValidationError):
    code = "invalid_quantity"


class NotFoundError(DomainError):
    """Unknown variant/parent/order referenced by id."""

    status_code = 404
    code = "not_found"


class InsufficientStockError(DomainError):
    """Requested quantity exceeds available stock and backorder is disallowed."""

    code = "insufficient_stock"


class StockConflictError(InsufficientStockError):
    """
    The atomic conditional stock update lost a race against another request.

    Callers handle it exactly like InsufficientStockError; the separate code
    only helps when reading logs.
    """

    code = "stock_conflict"


class InvalidTransitionError(DomainError):
    """Order status change not permitted from its current state."""

    code = "invalid_transition"
