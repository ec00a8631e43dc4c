"""
Storefront errors.

User-facing message constants plus the exception taxonomy raised by the
remote cart client and payment layer.
"""

# Cart errors
ERROR_NO_ACTIVE_CART = "No active cart found"
ERROR_CART_UNAVAILABLE = "Cart service unavailable"
ERROR_CART_SYNC_FAILED = "We couldn't reach the store. Your cart was saved on this device."
ERROR_PRODUCT_UNAVAILABLE = (
    "This product is not available for purchase at the moment. Please contact support."
)
ERROR_LINE_NOT_FOUND = "Line item not found"
ERROR_SESSION_EXPIRED = "Your session has expired. Please sign in again."
ERROR_INVALID_QUANTITY = "Quantity must be a whole number of at least 1"
ERROR_LINES_NOT_SYNCED = "Some items could not be added to your cart and were removed."

# Order errors
ERROR_ORDER_NOT_CREATED = "Order was not created properly"
ERROR_ORDER_NOT_RECORDED = "Payment received, but the order could not be recorded. Please contact support."

# Payment errors
ERROR_PAYMENT_VERIFICATION_FAILED = "Failed to verify payment"
ERROR_PAYMENT_RECORD_NOT_FOUND = "Payment record not found"
ERROR_PAYMENT_AMOUNT_MISMATCH = "Payment amount mismatch"
ERROR_MISSING_ORDER_ID = "Missing order ID in payment response"
ERROR_PAYMENT_CANCELLED = "You cancelled the payment process. Your cart items are still saved."

# Remote API hint for unpriced variants
PRICE_MISSING_HINT = "do not have a price"


class StorefrontError(Exception):
    """Base class for storefront errors."""


class CartServiceError(StorefrontError):
    """Remote cart operation failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class CartNotFoundError(CartServiceError):
    """Remote cart id is unknown or expired; the remembered CartId is stale."""


class CartConflictError(CartServiceError):
    """Remote API rejected the mutation (e.g. item has no price in this region)."""


class TransientCartError(CartServiceError):
    """Network failure, timeout or 5xx from the commerce API."""


class UnauthenticatedError(CartServiceError):
    """Bearer token missing, expired or rejected."""


class PaymentConfigError(StorefrontError):
    """Payment provider is not configured."""


class PaymentVerificationError(StorefrontError):
    """Returned payment parameters could not be verified."""


class OrderPersistenceError(StorefrontError):
    """Paid order could not be written to the database."""
