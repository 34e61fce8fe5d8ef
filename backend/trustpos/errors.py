# Overview: Error taxonomy shared by services and routes.

"""
Business error hierarchy.

Every error raised by the checkout core derives from PosError and carries:
- category: one of VALIDATION, NOT_FOUND, CONFLICT, POLICY, PERSISTENCE
- code: stable machine-readable identifier (e.g. INSUFFICIENT_STOCK)
- status_code: HTTP status the routes map it to
- details: structured context (e.g. item_index of the offending cart line)

Routes never inspect messages; they serialize the error with to_dict().
"""

from __future__ import annotations


class PosError(Exception):
    category = "INTERNAL"
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def with_item_index(self, index: int) -> "PosError":
        self.details.setdefault("item_index", index)
        return self

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "category": self.category,
            "code": self.code,
            "details": self.details,
        }


# =============================================================================
# CATEGORIES
# =============================================================================

class ValidationError(PosError):
    """400-level input problem (malformed request shape)."""
    category = "VALIDATION"
    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(PosError):
    category = "NOT_FOUND"
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(PosError):
    """409-level conflict with current state (stock, serials, numbering)."""
    category = "CONFLICT"
    code = "CONFLICT"
    status_code = 409


class PolicyError(PosError):
    """Request is well-formed but a business rule forbids it."""
    category = "POLICY"
    code = "POLICY_VIOLATION"
    status_code = 422


class PersistenceError(PosError):
    category = "PERSISTENCE"
    code = "PERSISTENCE_ERROR"
    status_code = 503


# =============================================================================
# VALIDATION
# =============================================================================

class EmptyCart(ValidationError):
    code = "EMPTY_CART"


class InvalidQuantity(ValidationError):
    code = "INVALID_QUANTITY"


# =============================================================================
# NOT FOUND
# =============================================================================

class ProductNotFound(NotFoundError):
    code = "PRODUCT_NOT_FOUND"


class DiscountNotFound(NotFoundError):
    code = "DISCOUNT_NOT_FOUND"


class CustomerNotFound(NotFoundError):
    code = "CUSTOMER_NOT_FOUND"


class OrderNotFound(NotFoundError):
    code = "ORDER_NOT_FOUND"


class ReceiptNotFound(NotFoundError):
    code = "RECEIPT_NOT_FOUND"


class TaxConfigNotFound(NotFoundError):
    code = "TAX_CONFIG_NOT_FOUND"


class ReturnNotFound(NotFoundError):
    code = "RETURN_NOT_FOUND"


class UserNotFound(NotFoundError):
    code = "USER_NOT_FOUND"


# =============================================================================
# CONFLICT
# =============================================================================

class InsufficientStock(ConflictError):
    code = "INSUFFICIENT_STOCK"


class SerialNotAvailable(ConflictError):
    code = "SERIAL_NOT_AVAILABLE"


class OrderNumberCollision(ConflictError):
    code = "ORDER_NUMBER_COLLISION"


class DuplicateCode(ConflictError):
    code = "DUPLICATE_CODE"


class InvalidState(ConflictError):
    code = "INVALID_STATE"


class ReceiptExists(ConflictError):
    code = "RECEIPT_EXISTS"


# =============================================================================
# POLICY
# =============================================================================

class ProductInactive(PolicyError):
    code = "PRODUCT_INACTIVE"


class DiscountInactive(PolicyError):
    code = "DISCOUNT_INACTIVE"


class MinPurchaseNotMet(PolicyError):
    code = "MIN_PURCHASE_NOT_MET"


class InsufficientPayment(PolicyError):
    code = "INSUFFICIENT_PAYMENT"


class InvalidTotal(PolicyError):
    code = "INVALID_TOTAL"


class OverrideNotPermitted(PolicyError):
    code = "OVERRIDE_NOT_PERMITTED"


class ReturnQuantityExceeded(PolicyError):
    code = "RETURN_QUANTITY_EXCEEDED"
