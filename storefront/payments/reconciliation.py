"""
Payment reconciliation on return from a provider redirect.

    verifying -> success    verified COMPLETE, order persisted, cart cleared
              -> failed     anything else; cart preserved
    cancel()  -> cancelled  no verification call; cart preserved

There is no automatic retry: a failed attempt is retried by starting a
new checkout, which allocates a new payment attempt.
"""
import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Mapping, Optional, Tuple

from storefront.cart.service import CartManager
from storefront.cart.storage import LocalStorage, StorageKeys
from storefront.errors import (
    ERROR_ORDER_NOT_RECORDED,
    ERROR_PAYMENT_CANCELLED,
    ERROR_PAYMENT_VERIFICATION_FAILED,
)
from storefront.logging import get_logger, sanitize_id_for_logging
from storefront.repositories import OrderRepository

from .constants import NextStep, PaymentProvider, PaymentStatus, ReconciliationState, normalize_provider
from .providers import PaymentService, PaymentVerification

logger = get_logger(__name__)

Verifier = Callable[[PaymentService, Mapping[str, str]], Awaitable[PaymentVerification]]

VERIFIERS: Dict[PaymentProvider, Verifier] = {
    PaymentProvider.PAYFAST: PaymentService.verify_payfast,
    PaymentProvider.OZOW: PaymentService.verify_ozow,
}

PAYFAST_MARKERS = ("pf_payment_id", "m_payment_id")
OZOW_MARKERS = ("TransactionReference",)


def resolve_provider(params: Mapping[str, str]) -> PaymentProvider:
    """
    Pick the provider for a redirect: an explicit `provider` parameter
    wins, otherwise it is inferred from provider-specific parameters.
    Unrecognised redirects are treated as Ozow.
    """
    explicit = normalize_provider(params.get("provider"))
    if explicit in VERIFIERS:
        return explicit
    if any(key in params for key in PAYFAST_MARKERS):
        return PaymentProvider.PAYFAST
    if any(key in params for key in OZOW_MARKERS):
        return PaymentProvider.OZOW
    return PaymentProvider.OZOW


def order_reference(provider: PaymentProvider, params: Mapping[str, str]) -> str:
    """Best-effort order id from raw redirect parameters (lock key)."""
    if provider == PaymentProvider.PAYFAST:
        return params.get("m_payment_id") or params.get("custom_str1") or ""
    parts = (params.get("TransactionReference") or "").split("-")
    return parts[1] if len(parts) > 1 else ""


@dataclass(frozen=True)
class ReconciliationResult:
    """Terminal outcome of one payment attempt."""
    state: ReconciliationState
    message: str
    next_step: NextStep
    verification: Optional[PaymentVerification] = None

    @property
    def order_id(self) -> Optional[str]:
        return self.verification.order_id if self.verification else None

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "message": self.message,
            "next_step": self.next_step.value,
            "verification": self.verification.to_dict() if self.verification else None,
        }


class PaymentReconciler:
    """
    Turns a provider redirect into a terminal payment state.

    Duplicate callbacks for the same order inside this process are
    serialised by a per-order lock; across processes the order upsert
    keeps a single row.
    """

    def __init__(
        self,
        payments: PaymentService,
        cart: CartManager,
        storage: LocalStorage,
        orders: Optional[OrderRepository] = None,
    ):
        self.payments = payments
        self.cart = cart
        self.storage = storage
        self.orders = orders
        # order ref -> (lock, callers holding or waiting on it)
        self._locks: Dict[str, Tuple[asyncio.Lock, int]] = {}

    def _acquire_ref(self, order_ref: str) -> asyncio.Lock:
        lock, users = self._locks.get(order_ref, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[order_ref] = (lock, users + 1)
        return lock

    def _release_ref(self, order_ref: str) -> None:
        lock, users = self._locks[order_ref]
        if users <= 1:
            del self._locks[order_ref]
        else:
            self._locks[order_ref] = (lock, users - 1)

    async def reconcile(self, params: Mapping[str, str], customer_id: Optional[str] = None) -> ReconciliationResult:
        """Verify a success redirect and settle the attempt."""
        provider = resolve_provider(params)
        order_ref = order_reference(provider, params)
        logger.info(
            "Reconciling %s payment for order %s",
            provider.value,
            sanitize_id_for_logging(order_ref),
        )

        lock = self._acquire_ref(order_ref)
        try:
            async with lock:
                return await self._settle(params, provider, customer_id)
        finally:
            self._release_ref(order_ref)

    async def _settle(
        self,
        params: Mapping[str, str],
        provider: PaymentProvider,
        customer_id: Optional[str],
    ) -> ReconciliationResult:
        try:
            verification = await VERIFIERS[provider](self.payments, params)
        except Exception:
            logger.error("Payment verification raised", exc_info=True)
            return ReconciliationResult(
                state=ReconciliationState.FAILED,
                message=ERROR_PAYMENT_VERIFICATION_FAILED,
                next_step=NextStep.RETRY_CHECKOUT,
            )

        if not (verification.verified and verification.status == PaymentStatus.COMPLETE):
            logger.warning(
                "Payment for order %s not verified: %s",
                sanitize_id_for_logging(verification.order_id),
                verification.status.value,
            )
            return ReconciliationResult(
                state=ReconciliationState.FAILED,
                message=verification.message or ERROR_PAYMENT_VERIFICATION_FAILED,
                next_step=NextStep.RETRY_CHECKOUT,
                verification=verification,
            )

        try:
            await self._persist_order(verification, customer_id)
        except Exception:
            logger.error(
                "Paid order %s could not be recorded",
                sanitize_id_for_logging(verification.order_id),
                exc_info=True,
            )
            return ReconciliationResult(
                state=ReconciliationState.FAILED,
                message=ERROR_ORDER_NOT_RECORDED,
                next_step=NextStep.RETURN_TO_CART,
                verification=verification,
            )

        self.cart.clear()
        return ReconciliationResult(
            state=ReconciliationState.SUCCESS,
            message=verification.message or "Payment successful",
            next_step=NextStep.VIEW_ORDERS,
            verification=verification,
        )

    def cancel(self, order_id: Optional[str] = None) -> ReconciliationResult:
        """Shopper aborted at the provider. Nothing is verified or cleared."""
        if order_id:
            logger.info("Payment cancelled for order %s", sanitize_id_for_logging(order_id))
        return ReconciliationResult(
            state=ReconciliationState.CANCELLED,
            message=ERROR_PAYMENT_CANCELLED,
            next_step=NextStep.RETURN_TO_CART,
        )

    async def _persist_order(self, verification: PaymentVerification, customer_id: Optional[str]) -> None:
        if self.orders is not None:
            await self.orders.record_paid_order(verification, customer_id)

        key = StorageKeys.order_key(verification.order_id)
        if self.storage.get_json(key) is None:
            self.storage.set_json(
                key,
                {
                    "order_id": verification.order_id,
                    "payment_id": verification.payment_id,
                    "transaction_id": verification.transaction_id,
                    "amount": verification.amount,
                    "status": "PAID",
                    "provider": verification.provider.value,
                    "created_at": datetime.now(timezone.utc).isoformat(),
                },
            )
