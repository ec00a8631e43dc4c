"""Payment constants, enums, and aliases."""
from enum import Enum
from typing import Optional, Set


class PaymentProvider(str, Enum):
    """Supported payment providers."""
    PAYFAST = "payfast"
    OZOW = "ozow"
    STORE = "store"  # pay at store pickup


class PaymentStatus(str, Enum):
    """Provider-reported payment status."""
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    PENDING = "PENDING"


class ReconciliationState(str, Enum):
    """
    Payment attempt lifecycle on return from a provider redirect.

    Flow:
        verifying -> success
                  -> failed
        (cancel entry) -> cancelled
    """
    VERIFYING = "verifying"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class NextStep(str, Enum):
    """Action offered to the shopper after reconciliation."""
    VIEW_ORDERS = "view_orders"
    RETRY_CHECKOUT = "retry_checkout"
    RETURN_TO_CART = "return_to_cart"


TERMINAL_STATES: Set[str] = {
    ReconciliationState.SUCCESS.value,
    ReconciliationState.FAILED.value,
    ReconciliationState.CANCELLED.value,
}

# Provider name aliases (input -> canonical)
PROVIDER_ALIASES: dict[str, PaymentProvider] = {
    "payfast": PaymentProvider.PAYFAST,
    "pay_fast": PaymentProvider.PAYFAST,
    "pay-fast": PaymentProvider.PAYFAST,
    "pf": PaymentProvider.PAYFAST,
    "ozow": PaymentProvider.OZOW,
    "i-pay": PaymentProvider.OZOW,
    "store": PaymentProvider.STORE,
    "manual": PaymentProvider.STORE,
}

# PayFast payment_status -> PaymentStatus
PAYFAST_STATUS_MAP: dict[str, PaymentStatus] = {
    "COMPLETE": PaymentStatus.COMPLETE,
    "CANCELLED": PaymentStatus.CANCELLED,
    "FAILED": PaymentStatus.FAILED,
}

# Ozow Status -> PaymentStatus
OZOW_STATUS_MAP: dict[str, PaymentStatus] = {
    "Complete": PaymentStatus.COMPLETE,
    "Success": PaymentStatus.COMPLETE,
    "Cancelled": PaymentStatus.CANCELLED,
    "Cancel": PaymentStatus.CANCELLED,
    "Error": PaymentStatus.FAILED,
    "Failed": PaymentStatus.FAILED,
}

PAYFAST_URL = "https://www.payfast.co.za/eng/process"
PAYFAST_SANDBOX_URL = "https://sandbox.payfast.co.za/eng/process"
OZOW_URL = "https://pay.ozow.com"


def normalize_provider(provider: Optional[str]) -> Optional[PaymentProvider]:
    """
    Normalize a provider name to the enum.

    Example:
        normalize_provider("PayFast") -> PaymentProvider.PAYFAST
        normalize_provider("unknown") -> None
    """
    if not provider:
        return None
    return PROVIDER_ALIASES.get(provider.lower().strip())
