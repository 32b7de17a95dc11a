# Overview: Typed error taxonomy shared by the POS services.

"""
Error kinds surfaced to callers.

Every service raises a PosError subclass; routes turn it into a JSON body
with the error's status_code. Anything that is not a PosError is an
unexpected failure and becomes a 500.
"""

from __future__ import annotations


class PosError(Exception):
    """Base class for POS operation errors."""
    code = "POS_ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


# =============================================================================
# KINDS
# =============================================================================

class NotFoundError(PosError):
    code = "NOT_FOUND"
    status_code = 404


class ValidationError(PosError):
    code = "VALIDATION_ERROR"
    status_code = 400


class StateConflictError(PosError):
    code = "STATE_CONFLICT"
    status_code = 409


class InsufficientStockError(PosError):
    code = "INSUFFICIENT_STOCK"
    status_code = 409


class DependencyFailureError(PosError):
    code = "DEPENDENCY_FAILURE"
    status_code = 503


# =============================================================================
# NOT FOUND
# =============================================================================

class ProductNotFound(NotFoundError):
    code = "PRODUCT_NOT_FOUND"


class CustomerNotFound(NotFoundError):
    code = "CUSTOMER_NOT_FOUND"


class CouponNotFound(NotFoundError):
    code = "COUPON_NOT_FOUND"


class DiscountNotFound(NotFoundError):
    code = "DISCOUNT_NOT_FOUND"


class TicketNotFound(NotFoundError):
    code = "TICKET_NOT_FOUND"


class SessionNotFound(NotFoundError):
    code = "SESSION_NOT_FOUND"


# =============================================================================
# STATE CONFLICTS
# =============================================================================

class SessionReconciled(StateConflictError):
    code = "SESSION_RECONCILED"


class SessionAlreadyOpen(StateConflictError):
    code = "SESSION_ALREADY_OPEN"


class AlreadyClosed(StateConflictError):
    code = "ALREADY_CLOSED"


class NotYetClosed(StateConflictError):
    code = "NOT_YET_CLOSED"


class AlreadyCancelled(StateConflictError):
    code = "ALREADY_CANCELLED"


class CouponInactive(StateConflictError):
    code = "COUPON_INACTIVE"


class CouponExpired(StateConflictError):
    code = "COUPON_EXPIRED"


class CouponUsageExceeded(StateConflictError):
    code = "COUPON_USAGE_EXCEEDED"


class DiscountInactive(StateConflictError):
    code = "DISCOUNT_INACTIVE"


class DiscountExpired(StateConflictError):
    code = "DISCOUNT_EXPIRED"


class MinimumPurchaseNotMet(StateConflictError):
    code = "MINIMUM_PURCHASE_NOT_MET"


class CustomerRequired(StateConflictError):
    code = "CUSTOMER_REQUIRED"


# =============================================================================
# STOCK / DEPENDENCIES
# =============================================================================

class InsufficientStock(InsufficientStockError):
    code = "INSUFFICIENT_STOCK"


class StockRecordMissing(DependencyFailureError):
    code = "STOCK_RECORD_MISSING"
