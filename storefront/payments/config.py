"""Payment provider configuration and validation."""
from typing import Dict, Optional, Tuple

from storefront.config import Settings
from storefront.errors import PaymentConfigError
from storefront.logging import get_logger

from .constants import PaymentProvider

logger = get_logger(__name__)


# Provider configuration requirements
PROVIDER_ENV_REQUIREMENTS: Dict[PaymentProvider, Tuple[str, ...]] = {
    PaymentProvider.PAYFAST: ("PAYFAST_MERCHANT_ID", "PAYFAST_MERCHANT_KEY"),
    PaymentProvider.OZOW: ("OZOW_SITE_CODE", "OZOW_PRIVATE_KEY", "OZOW_API_KEY"),
    PaymentProvider.STORE: (),
}

PROVIDER_NAMES: Dict[PaymentProvider, str] = {
    PaymentProvider.PAYFAST: "PayFast",
    PaymentProvider.OZOW: "Ozow",
    PaymentProvider.STORE: "Pay at store",
}


def get_provider_config(settings: Settings, provider: PaymentProvider) -> Dict[str, Optional[str]]:
    """Required settings for a provider, keyed by name."""
    if provider == PaymentProvider.PAYFAST:
        return {
            "merchant_id": settings.payfast_merchant_id,
            "merchant_key": settings.payfast_merchant_key,
        }
    if provider == PaymentProvider.OZOW:
        return {
            "site_code": settings.ozow_site_code,
            "private_key": settings.ozow_private_key,
            "api_key": settings.ozow_api_key,
        }
    return {}


def is_gateway_configured(settings: Settings, provider: PaymentProvider) -> bool:
    """Check if a provider is configured without raising."""
    return all(get_provider_config(settings, provider).values())


def validate_gateway_config(settings: Settings, provider: PaymentProvider) -> PaymentProvider:
    """
    Validate provider configuration.

    Raises:
        PaymentConfigError: listing the missing environment variables
    """
    if is_gateway_configured(settings, provider):
        return provider

    name = PROVIDER_NAMES.get(provider, provider.value)
    env_vars = PROVIDER_ENV_REQUIREMENTS.get(provider, ())
    logger.error("Payment provider %s not configured", name)
    raise PaymentConfigError(f"{name} is not configured. Set: {', '.join(env_vars)}")
