# Overview: Error taxonomy shared by services and routes.

"""
Ledger error taxonomy.

Every error raised by the service layer for a *caller* problem derives from
LedgerError and carries the HTTP status the routes answer with. Anything that
is not a LedgerError is an internal failure: routes log it and answer 500
without exposing detail.

Raised inside an atomic scope, any of these aborts the whole scope: no
inventory mutation, no movement row, no sale/purchase header survives.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for caller-facing ledger errors."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(LedgerError):
    """400-level input problem; never reaches the store."""
    status_code = 400


class NotFoundError(LedgerError):
    """Referenced entity (inventory record, product, shop, ...) is absent."""
    status_code = 404


class InsufficientStockError(LedgerError):
    """A decrement would drive on-hand quantity below zero."""
    status_code = 400

    def __init__(
        self,
        message: str = "Insufficient stock for this operation",
        *,
        product_id: int | None = None,
        shop_id: int | None = None,
        requested: int | None = None,
        on_hand: int | None = None,
    ):
        details = {}
        if product_id is not None:
            details["product_id"] = product_id
        if shop_id is not None:
            details["shop_id"] = shop_id
        if requested is not None:
            details["requested_quantity"] = requested
        if on_hand is not None:
            details["on_hand"] = on_hand
        super().__init__(message, details)
        self.product_id = product_id
        self.shop_id = shop_id
        self.requested = requested
        self.on_hand = on_hand


class DuplicateRecordError(LedgerError):
    """An inventory record already exists for the (product, shop) pair."""
    status_code = 400


class ConcurrencyConflictError(LedgerError):
    """Simultaneous writers collided; the caller may resubmit."""
    status_code = 409


class InvalidStateError(LedgerError):
    """Operation is not allowed for the document's current status."""
    status_code = 409


class RecordInUseError(LedgerError):
    """Record is still referenced by transactional history."""
    status_code = 409


class UnauthorizedError(LedgerError):
    """Missing or invalid caller identity."""
    status_code = 401
