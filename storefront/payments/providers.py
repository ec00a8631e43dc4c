"""Payment Service - PayFast and Ozow redirect integrations.

A payment attempt is started by building a signed redirect URL to the
provider and recording the attempt locally under `payment_{order_id}`.
When the shopper is redirected back, the returned query parameters are
checked against that record before anything downstream trusts them.
"""

import hashlib
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional
from urllib.parse import quote_plus, urlencode

from storefront.cart.storage import LocalStorage, StorageKeys
from storefront.config import Settings
from storefront.errors import (
    ERROR_MISSING_ORDER_ID,
    ERROR_PAYMENT_AMOUNT_MISMATCH,
    ERROR_PAYMENT_RECORD_NOT_FOUND,
    ERROR_PAYMENT_VERIFICATION_FAILED,
    PaymentConfigError,
    PaymentVerificationError,
)
from storefront.logging import get_logger, sanitize_id_for_logging
from storefront.money import from_minor_units, to_minor_units

from .config import validate_gateway_config
from .constants import (
    OZOW_STATUS_MAP,
    OZOW_URL,
    PAYFAST_SANDBOX_URL,
    PAYFAST_STATUS_MAP,
    PAYFAST_URL,
    PaymentProvider,
    PaymentStatus,
)

logger = get_logger(__name__)

# Allowed difference between recorded and returned amount (minor units)
AMOUNT_TOLERANCE = 1


@dataclass
class PaymentItem:
    name: str
    quantity: int
    price: int  # minor units


@dataclass
class PaymentRequest:
    """A payment attempt for one order. `amount` is in minor units."""
    order_id: str
    amount: int
    customer_email: str
    customer_name: str
    customer_phone: Optional[str] = None
    items: List[PaymentItem] = field(default_factory=list)


@dataclass
class PaymentResponse:
    success: bool
    payment_id: Optional[str] = None
    redirect_url: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class PaymentVerification:
    """Outcome of checking a provider redirect against the recorded attempt."""
    verified: bool
    payment_id: str
    order_id: str
    amount: int  # minor units
    status: PaymentStatus
    provider: PaymentProvider
    transaction_id: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "verified": self.verified,
            "payment_id": self.payment_id,
            "order_id": self.order_id,
            "amount": self.amount,
            "status": self.status.value,
            "provider": self.provider.value,
            "transaction_id": self.transaction_id,
            "message": self.message,
        }


def _format_amount(minor: int) -> str:
    return f"{from_minor_units(minor):.2f}"


def _split_name(full_name: str) -> tuple[str, str]:
    parts = (full_name or "").split()
    first = parts[0] if parts else "Customer"
    last = " ".join(parts[1:]) or "Name"
    return first, last


def payfast_signature(data: Mapping[str, str], passphrase: Optional[str] = None) -> str:
    """
    MD5 signature over the alphabetically sorted, URL-encoded fields.

    Spaces encode as '+'. The passphrase, when set, is appended as a
    final `passphrase=` field.
    """
    param_string = "&".join(f"{key}={quote_plus(str(data[key]))}" for key in sorted(data))
    if passphrase:
        param_string = f"{param_string}&passphrase={quote_plus(passphrase)}"
    return hashlib.md5(param_string.encode("utf-8")).hexdigest()


def ozow_hash_check(values: List[str], private_key: str) -> str:
    """SHA-512 over the concatenated fields plus private key, lower-cased."""
    hash_input = "".join(values) + private_key
    return hashlib.sha512(hash_input.lower().encode("utf-8")).hexdigest()


class PaymentService:
    """
    PayFast and Ozow payment attempts backed by device-local records.

    Callback signature validation is not performed; trust comes from the
    recorded attempt and the amount check.
    """

    def __init__(
        self,
        settings: Settings,
        storage: LocalStorage,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.storage = storage
        self._clock = clock

    # ==================== URLS ====================

    @property
    def return_url(self) -> str:
        return f"{self.settings.storefront_url}/payment/success"

    @property
    def cancel_url(self) -> str:
        return f"{self.settings.storefront_url}/payment/cancelled"

    @property
    def error_url(self) -> str:
        return f"{self.settings.storefront_url}/payment/error"

    def notify_url(self, provider: PaymentProvider) -> str:
        return f"{self.settings.storefront_url}/api/payment/{provider.value}/webhook"

    # ==================== ATTEMPT RECORDS ====================

    def _timestamp_ms(self) -> int:
        return int(self._clock() * 1000)

    def _record_attempt(self, request: PaymentRequest, provider: PaymentProvider, **extra: Any) -> None:
        record = {
            "order_id": request.order_id,
            "amount": request.amount,
            "provider": provider.value,
            "status": PaymentStatus.PENDING.value,
            "created_at": self._timestamp_ms(),
            **extra,
        }
        self.storage.set_json(StorageKeys.payment_key(request.order_id), record)

    def _load_attempt(self, order_id: str) -> dict:
        record = self.storage.get_json(StorageKeys.payment_key(order_id))
        if not isinstance(record, dict):
            raise PaymentVerificationError(ERROR_PAYMENT_RECORD_NOT_FOUND)
        return record

    def _check_amount(self, record: dict, returned: int) -> None:
        expected = int(record.get("amount") or 0)
        if abs(expected - returned) > AMOUNT_TOLERANCE:
            raise PaymentVerificationError(ERROR_PAYMENT_AMOUNT_MISMATCH)

    def _mark_attempt(self, order_id: str, record: dict, status: PaymentStatus) -> None:
        record["status"] = status.value
        record["verified_at"] = self._timestamp_ms()
        self.storage.set_json(StorageKeys.payment_key(order_id), record)

    # ==================== PAYFAST ====================

    async def initialize_payfast(self, request: PaymentRequest) -> PaymentResponse:
        """Build the PayFast redirect and record the pending attempt."""
        try:
            validate_gateway_config(self.settings, PaymentProvider.PAYFAST)

            first, last = _split_name(request.customer_name)
            payment_data: Dict[str, str] = {
                "merchant_id": self.settings.payfast_merchant_id,
                "merchant_key": self.settings.payfast_merchant_key,
                "return_url": self.return_url,
                "cancel_url": self.cancel_url,
                "notify_url": self.notify_url(PaymentProvider.PAYFAST),
                "name_first": first,
                "name_last": last,
                "email_address": request.customer_email,
                "cell_number": request.customer_phone or "",
                "m_payment_id": request.order_id,
                "amount": _format_amount(request.amount),
                "item_name": f"Order #{request.order_id}",
                "item_description": ", ".join(f"{i.name} ({i.quantity}x)" for i in request.items),
                "custom_str1": request.order_id,
                "custom_int1": str(int(self._clock())),
            }
            payment_data["signature"] = payfast_signature(payment_data, self.settings.payfast_passphrase)

            base_url = PAYFAST_SANDBOX_URL if self.settings.payfast_sandbox else PAYFAST_URL
            redirect_url = f"{base_url}?{urlencode(payment_data)}"

            self._record_attempt(request, PaymentProvider.PAYFAST, payment_data=payment_data)
            logger.info("PayFast payment initialised for order %s", sanitize_id_for_logging(request.order_id))
            return PaymentResponse(success=True, payment_id=request.order_id, redirect_url=redirect_url)
        except PaymentConfigError as e:
            return PaymentResponse(success=False, error=str(e))
        except Exception as e:
            logger.error("PayFast initialization error: %s", e, exc_info=True)
            return PaymentResponse(success=False, error="Failed to initialize PayFast payment")

    async def verify_payfast(self, params: Mapping[str, str]) -> PaymentVerification:
        """Check a PayFast return against the recorded attempt."""
        try:
            order_id = params.get("m_payment_id") or params.get("custom_str1") or ""
            if not order_id:
                raise PaymentVerificationError(ERROR_MISSING_ORDER_ID)

            record = self._load_attempt(order_id)
            amount = to_minor_units(params.get("amount_gross") or "0")
            self._check_amount(record, amount)

            status = PAYFAST_STATUS_MAP.get(params.get("payment_status") or "", PaymentStatus.PENDING)
            self._mark_attempt(order_id, record, status)

            pf_payment_id = params.get("pf_payment_id") or None
            return PaymentVerification(
                verified=status == PaymentStatus.COMPLETE,
                payment_id=pf_payment_id or order_id,
                order_id=order_id,
                amount=amount,
                status=status,
                provider=PaymentProvider.PAYFAST,
                transaction_id=pf_payment_id,
                message="Payment successful" if status == PaymentStatus.COMPLETE else f"Payment {status.value.lower()}",
            )
        except Exception as e:
            logger.warning("PayFast verification failed: %s", e)
            return PaymentVerification(
                verified=False,
                payment_id="",
                order_id=params.get("m_payment_id") or "",
                amount=0,
                status=PaymentStatus.FAILED,
                provider=PaymentProvider.PAYFAST,
                message=str(e) if isinstance(e, PaymentVerificationError) else ERROR_PAYMENT_VERIFICATION_FAILED,
            )

    # ==================== OZOW ====================

    async def initialize_ozow(self, request: PaymentRequest) -> PaymentResponse:
        """Build the Ozow redirect and record the pending attempt."""
        try:
            validate_gateway_config(self.settings, PaymentProvider.OZOW)

            amount = _format_amount(request.amount)
            transaction_reference = f"ORD-{request.order_id}-{self._timestamp_ms()}"
            notify_url = self.notify_url(PaymentProvider.OZOW)

            # Field order is fixed by Ozow
            hash_check = ozow_hash_check(
                [
                    self.settings.ozow_site_code,
                    transaction_reference,
                    amount,
                    self.return_url,
                    self.cancel_url,
                    self.error_url,
                    notify_url,
                ],
                self.settings.ozow_private_key,
            )

            params = {
                "SiteCode": self.settings.ozow_site_code,
                "CountryCode": "ZA",
                "CurrencyCode": self.settings.currency,
                "Amount": amount,
                "TransactionReference": transaction_reference,
                "BankReference": f"ZABS-{request.order_id}",
                "Customer": request.customer_name,
                "Email": request.customer_email,
                "Mobile": request.customer_phone or "",
                "SuccessUrl": self.return_url,
                "CancelUrl": self.cancel_url,
                "ErrorUrl": self.error_url,
                "NotifyUrl": notify_url,
                "HashCheck": hash_check,
                "IsTest": "true" if self.settings.ozow_sandbox else "false",
            }
            redirect_url = f"{OZOW_URL}?{urlencode(params)}"

            self._record_attempt(request, PaymentProvider.OZOW, transaction_reference=transaction_reference)
            logger.info("Ozow payment initialised for order %s", sanitize_id_for_logging(request.order_id))
            return PaymentResponse(success=True, payment_id=transaction_reference, redirect_url=redirect_url)
        except PaymentConfigError as e:
            return PaymentResponse(success=False, error=str(e))
        except Exception as e:
            logger.error("Ozow initialization error: %s", e, exc_info=True)
            return PaymentResponse(success=False, error="Failed to initialize Ozow payment")

    async def verify_ozow(self, params: Mapping[str, str]) -> PaymentVerification:
        """Check an Ozow return against the recorded attempt."""
        try:
            transaction_reference = params.get("TransactionReference") or ""
            # ORD-{order_id}-{timestamp}
            parts = transaction_reference.split("-")
            order_id = parts[1] if len(parts) > 1 else ""
            if not order_id:
                raise PaymentVerificationError(ERROR_MISSING_ORDER_ID)

            record = self._load_attempt(order_id)
            amount = to_minor_units(params.get("Amount") or "0")
            self._check_amount(record, amount)

            status = OZOW_STATUS_MAP.get(params.get("Status") or "", PaymentStatus.PENDING)
            self._mark_attempt(order_id, record, status)

            return PaymentVerification(
                verified=status == PaymentStatus.COMPLETE,
                payment_id=transaction_reference,
                order_id=order_id,
                amount=amount,
                status=status,
                provider=PaymentProvider.OZOW,
                transaction_id=params.get("TransactionId") or transaction_reference,
                message=params.get("StatusMessage") or f"Payment {status.value.lower()}",
            )
        except Exception as e:
            logger.warning("Ozow verification failed: %s", e)
            return PaymentVerification(
                verified=False,
                payment_id="",
                order_id="",
                amount=0,
                status=PaymentStatus.FAILED,
                provider=PaymentProvider.OZOW,
                message=str(e) if isinstance(e, PaymentVerificationError) else ERROR_PAYMENT_VERIFICATION_FAILED,
            )

    # ==================== PAY AT STORE ====================

    def create_manual_payment_record(self, request: PaymentRequest) -> PaymentVerification:
        """Record a pay-at-store attempt; pre-verified so the order can be placed."""
        self._record_attempt(request, PaymentProvider.STORE)
        return PaymentVerification(
            verified=True,
            payment_id=f"STORE-{request.order_id}",
            order_id=request.order_id,
            amount=request.amount,
            status=PaymentStatus.PENDING,
            provider=PaymentProvider.STORE,
            message="Order created - payment required at store pickup",
        )

    # ==================== RECORDS ====================

    def get_payment_status(self, order_id: str) -> Optional[PaymentVerification]:
        record = self.storage.get_json(StorageKeys.payment_key(order_id))
        if not isinstance(record, dict):
            return None
        try:
            status = PaymentStatus(record.get("status", PaymentStatus.PENDING.value))
            provider = PaymentProvider(record.get("provider", PaymentProvider.STORE.value))
        except ValueError:
            logger.warning("Unreadable payment record for order %s", sanitize_id_for_logging(order_id))
            return None
        return PaymentVerification(
            verified=status == PaymentStatus.COMPLETE,
            payment_id=record.get("transaction_reference") or order_id,
            order_id=order_id,
            amount=int(record.get("amount") or 0),
            status=status,
            provider=provider,
        )

    def clear_payment_record(self, order_id: str) -> None:
        self.storage.remove_item(StorageKeys.payment_key(order_id))
