"""Payment providers and reconciliation."""
from .config import is_gateway_configured, validate_gateway_config
from .constants import NextStep, PaymentProvider, PaymentStatus, ReconciliationState, normalize_provider
from .providers import (
    PaymentItem,
    PaymentRequest,
    PaymentResponse,
    PaymentService,
    PaymentVerification,
)
from .reconciliation import VERIFIERS, PaymentReconciler, ReconciliationResult, resolve_provider

__all__ = [
    "NextStep",
    "PaymentItem",
    "PaymentProvider",
    "PaymentReconciler",
    "PaymentRequest",
    "PaymentResponse",
    "PaymentService",
    "PaymentStatus",
    "PaymentVerification",
    "ReconciliationResult",
    "ReconciliationState",
    "VERIFIERS",
    "is_gateway_configured",
    "normalize_provider",
    "resolve_provider",
    "validate_gateway_config",
]
