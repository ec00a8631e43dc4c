"""
Tests for PayFast / Ozow payment attempts and verification
"""
import hashlib
from dataclasses import replace
from urllib.parse import parse_qs, urlparse

import pytest

from storefront.cart.storage import StorageKeys
from storefront.errors import (
    ERROR_MISSING_ORDER_ID,
    ERROR_PAYMENT_AMOUNT_MISMATCH,
    ERROR_PAYMENT_RECORD_NOT_FOUND,
    PaymentConfigError,
)
from storefront.payments.config import is_gateway_configured, validate_gateway_config
from storefront.payments.constants import PaymentProvider, PaymentStatus, normalize_provider
from storefront.payments.providers import (
    PaymentItem,
    PaymentRequest,
    PaymentService,
    ozow_hash_check,
    payfast_signature,
)

FIXED_NOW = 1760000000.0


@pytest.fixture
def payments(settings, storage):
    return PaymentService(settings, storage, clock=lambda: FIXED_NOW)


@pytest.fixture
def request_250():
    return PaymentRequest(
        order_id="1001",
        amount=25000,
        customer_email="thandi@example.com",
        customer_name="Thandi Mokoena Dlamini",
        customer_phone="0820000000",
        items=[PaymentItem(name="Wireless Mouse", quantity=1, price=25000)],
    )


def _query(url: str) -> dict:
    return {k: v[0] for k, v in parse_qs(urlparse(url).query, keep_blank_values=True).items()}


class TestConfig:
    def test_configured(self, settings):
        assert is_gateway_configured(settings, PaymentProvider.PAYFAST)
        assert is_gateway_configured(settings, PaymentProvider.STORE)

    def test_missing_keys_listed(self, settings):
        bare = replace(settings, ozow_api_key="")
        with pytest.raises(PaymentConfigError) as exc:
            validate_gateway_config(bare, PaymentProvider.OZOW)
        assert "OZOW_API_KEY" in str(exc.value)

    def test_normalize_provider(self):
        assert normalize_provider(" PayFast ") == PaymentProvider.PAYFAST
        assert normalize_provider("unknown") is None
        assert normalize_provider(None) is None


class TestSignatures:
    def test_payfast_signature_encodes_spaces_as_plus(self):
        data = {"b": "two words", "a": "x&y"}
        expected = hashlib.md5(b"a=x%26y&b=two+words").hexdigest()
        assert payfast_signature(data) == expected

    def test_payfast_signature_appends_passphrase(self):
        expected = hashlib.md5(b"a=1&passphrase=secret+phrase").hexdigest()
        assert payfast_signature({"a": "1"}, "secret phrase") == expected

    def test_ozow_hash_is_lowercased_sha512(self):
        expected = hashlib.sha512(b"site1ref100.00key").hexdigest()
        assert ozow_hash_check(["SITE1", "REF", "100.00"], "KEY") == expected


class TestPayFast:
    @pytest.mark.asyncio
    async def test_initialize_builds_signed_redirect(self, payments, request_250, storage):
        response = await payments.initialize_payfast(request_250)

        assert response.success
        assert response.payment_id == "1001"
        assert response.redirect_url.startswith("https://sandbox.payfast.co.za/eng/process?")

        query = _query(response.redirect_url)
        signature = query.pop("signature")
        assert signature == payfast_signature(query, "jt7NOE43FZPn")
        assert query["amount"] == "250.00"
        assert query["name_first"] == "Thandi"
        assert query["name_last"] == "Mokoena Dlamini"
        assert query["return_url"] == "https://shop.test/payment/success"
        assert query["item_description"] == "Wireless Mouse (1x)"

        record = storage.get_json(StorageKeys.payment_key("1001"))
        assert record["status"] == "PENDING"
        assert record["amount"] == 25000
        assert record["provider"] == "payfast"

    @pytest.mark.asyncio
    async def test_initialize_unconfigured(self, settings, storage, request_250):
        service = PaymentService(replace(settings, payfast_merchant_id=""), storage)

        response = await service.initialize_payfast(request_250)

        assert not response.success
        assert "PAYFAST_MERCHANT_ID" in response.error
        assert storage.get_item(StorageKeys.payment_key("1001")) is None

    @pytest.mark.asyncio
    async def test_verify_complete(self, payments, request_250, storage):
        await payments.initialize_payfast(request_250)

        verification = await payments.verify_payfast(
            {"m_payment_id": "1001", "payment_status": "COMPLETE", "amount_gross": "250.00", "pf_payment_id": "pf_77"}
        )

        assert verification.verified
        assert verification.status == PaymentStatus.COMPLETE
        assert verification.payment_id == "pf_77"
        assert verification.transaction_id == "pf_77"
        assert verification.amount == 25000
        assert storage.get_json(StorageKeys.payment_key("1001"))["status"] == "COMPLETE"

    @pytest.mark.asyncio
    async def test_verify_uses_custom_str1(self, payments, request_250):
        await payments.initialize_payfast(request_250)

        verification = await payments.verify_payfast(
            {"custom_str1": "1001", "payment_status": "CANCELLED", "amount_gross": "250.00"}
        )

        assert not verification.verified
        assert verification.status == PaymentStatus.CANCELLED
        assert verification.message == "Payment cancelled"

    @pytest.mark.asyncio
    async def test_amount_within_one_cent(self, payments, request_250):
        await payments.initialize_payfast(request_250)

        verification = await payments.verify_payfast(
            {"m_payment_id": "1001", "payment_status": "COMPLETE", "amount_gross": "250.01"}
        )

        assert verification.verified

    @pytest.mark.asyncio
    async def test_amount_mismatch_fails(self, payments, request_250):
        await payments.initialize_payfast(request_250)

        verification = await payments.verify_payfast(
            {"m_payment_id": "1001", "payment_status": "COMPLETE", "amount_gross": "25.00"}
        )

        assert not verification.verified
        assert verification.status == PaymentStatus.FAILED
        assert verification.message == ERROR_PAYMENT_AMOUNT_MISMATCH

    @pytest.mark.asyncio
    async def test_missing_record_fails(self, payments):
        verification = await payments.verify_payfast(
            {"m_payment_id": "9999", "payment_status": "COMPLETE", "amount_gross": "10.00"}
        )

        assert verification.status == PaymentStatus.FAILED
        assert verification.message == ERROR_PAYMENT_RECORD_NOT_FOUND

    @pytest.mark.asyncio
    async def test_missing_order_id_fails(self, payments):
        verification = await payments.verify_payfast({"payment_status": "COMPLETE"})
        assert verification.message == ERROR_MISSING_ORDER_ID


class TestOzow:
    @pytest.mark.asyncio
    async def test_initialize_builds_hashed_redirect(self, payments, request_250, settings):
        response = await payments.initialize_ozow(request_250)

        assert response.success
        reference = f"ORD-1001-{int(FIXED_NOW * 1000)}"
        assert response.payment_id == reference

        query = _query(response.redirect_url)
        assert query["TransactionReference"] == reference
        assert query["Amount"] == "250.00"
        assert query["BankReference"] == "ZABS-1001"
        assert query["HashCheck"] == ozow_hash_check(
            [
                settings.ozow_site_code,
                reference,
                "250.00",
                "https://shop.test/payment/success",
                "https://shop.test/payment/cancelled",
                "https://shop.test/payment/error",
                "https://shop.test/api/payment/ozow/webhook",
            ],
            settings.ozow_private_key,
        )

    @pytest.mark.asyncio
    async def test_verify_complete(self, payments, request_250):
        response = await payments.initialize_ozow(request_250)

        verification = await payments.verify_ozow(
            {
                "TransactionReference": response.payment_id,
                "Status": "Complete",
                "Amount": "250.00",
                "TransactionId": "oz_1",
            }
        )

        assert verification.verified
        assert verification.order_id == "1001"
        assert verification.transaction_id == "oz_1"
        assert verification.message == "Payment complete"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status, expected",
        [
            ("Success", PaymentStatus.COMPLETE),
            ("Cancel", PaymentStatus.CANCELLED),
            ("Error", PaymentStatus.FAILED),
            ("PendingInvestigation", PaymentStatus.PENDING),
        ],
    )
    async def test_status_mapping(self, payments, request_250, status, expected):
        response = await payments.initialize_ozow(request_250)

        verification = await payments.verify_ozow(
            {"TransactionReference": response.payment_id, "Status": status, "Amount": "250.00"}
        )

        assert verification.status == expected

    @pytest.mark.asyncio
    async def test_status_message_passed_through(self, payments, request_250):
        response = await payments.initialize_ozow(request_250)

        verification = await payments.verify_ozow(
            {
                "TransactionReference": response.payment_id,
                "Status": "Error",
                "Amount": "250.00",
                "StatusMessage": "Bank declined",
            }
        )

        assert verification.message == "Bank declined"

    @pytest.mark.asyncio
    async def test_malformed_reference_fails(self, payments):
        verification = await payments.verify_ozow({"TransactionReference": "garbage", "Status": "Complete"})

        assert not verification.verified
        assert verification.status == PaymentStatus.FAILED
        assert verification.order_id == ""


class TestRecords:
    def test_manual_payment_record(self, payments, request_250):
        verification = payments.create_manual_payment_record(request_250)

        assert verification.verified
        assert verification.status == PaymentStatus.PENDING
        assert verification.provider == PaymentProvider.STORE
        assert verification.payment_id == "STORE-1001"

        status = payments.get_payment_status("1001")
        assert status.provider == PaymentProvider.STORE
        assert not status.verified

    def test_clear_payment_record(self, payments, request_250):
        payments.create_manual_payment_record(request_250)
        payments.clear_payment_record("1001")
        assert payments.get_payment_status("1001") is None

    def test_unknown_order_has_no_status(self, payments):
        assert payments.get_payment_status("nope") is None
