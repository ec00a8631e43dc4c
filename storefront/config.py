"""
Storefront configuration.

Settings come from environment variables (a local `.env` file is loaded
first when present). Two store channels share one commerce backend and
are told apart by their publishable API keys.
"""

import os
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from functools import lru_cache

from dotenv import load_dotenv

from storefront.logging import get_logger

logger = get_logger(__name__)

DEFAULT_BACKEND_URL = "http://localhost:9000"
DEFAULT_REGION_ID = "reg_01JCQM9SC16SEK8PNRJ5TSGSCZ"  # South Africa
DEFAULT_CURRENCY = "ZAR"


class StoreType(str, Enum):
    """Store channels served by the commerce backend."""
    ELECTRONICS = "electronics"
    HEALTH = "health"


STORE_ALIASES = {
    "electronics": StoreType.ELECTRONICS,
    "health": StoreType.HEALTH,
    "healthcare": StoreType.HEALTH,
}


def normalize_store(value, default: StoreType = StoreType.ELECTRONICS) -> StoreType:
    """Store channel for a stored or remote value; unknown values map to `default`."""
    if isinstance(value, StoreType):
        return value
    if not isinstance(value, str):
        return default
    return STORE_ALIASES.get(value.lower().strip(), default)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes")


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        logger.warning("Invalid integer for %s, using %s", name, default)
        return default


def _env_decimal(name: str, default: str) -> Decimal:
    try:
        return Decimal(os.environ.get(name, default))
    except ArithmeticError:
        logger.warning("Invalid decimal for %s, using %s", name, default)
        return Decimal(default)


@dataclass(frozen=True)
class Settings:
    """Immutable storefront settings."""

    medusa_backend_url: str = DEFAULT_BACKEND_URL
    electronics_key: str = ""
    health_key: str = ""
    default_region_id: str = DEFAULT_REGION_ID
    currency: str = DEFAULT_CURRENCY

    supabase_url: str = ""
    supabase_anon_key: str = ""

    payfast_merchant_id: str = ""
    payfast_merchant_key: str = ""
    payfast_passphrase: str = ""
    payfast_sandbox: bool = False

    ozow_site_code: str = ""
    ozow_private_key: str = ""
    ozow_api_key: str = ""
    ozow_sandbox: bool = False

    storefront_url: str = "http://localhost:5173"
    local_storage_path: str | None = None

    # Prices are tax-inclusive; the rate is used only to split tax out
    tax_rate: Decimal = Decimal("0.15")
    free_shipping_threshold: int = 100000  # minor units (R1000.00)
    flat_shipping_fee: int = 10000  # minor units (R100.00)

    product_cache_size: int = 100
    product_cache_ttl: float = 600.0
    http_timeout: float = 10.0

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        return cls(
            medusa_backend_url=os.environ.get("MEDUSA_BACKEND_URL", DEFAULT_BACKEND_URL).rstrip("/"),
            electronics_key=os.environ.get("MEDUSA_ELECTRONICS_KEY", ""),
            health_key=os.environ.get("MEDUSA_HEALTH_KEY", ""),
            default_region_id=os.environ.get("MEDUSA_DEFAULT_REGION_ID", DEFAULT_REGION_ID),
            currency=os.environ.get("STORE_CURRENCY", DEFAULT_CURRENCY).upper(),
            supabase_url=os.environ.get("SUPABASE_URL", ""),
            supabase_anon_key=os.environ.get("SUPABASE_ANON_KEY", ""),
            payfast_merchant_id=os.environ.get("PAYFAST_MERCHANT_ID", ""),
            payfast_merchant_key=os.environ.get("PAYFAST_MERCHANT_KEY", ""),
            payfast_passphrase=os.environ.get("PAYFAST_PASSPHRASE", ""),
            payfast_sandbox=_env_bool("PAYFAST_SANDBOX"),
            ozow_site_code=os.environ.get("OZOW_SITE_CODE", ""),
            ozow_private_key=os.environ.get("OZOW_PRIVATE_KEY", ""),
            ozow_api_key=os.environ.get("OZOW_API_KEY", ""),
            ozow_sandbox=_env_bool("OZOW_SANDBOX"),
            storefront_url=os.environ.get("STOREFRONT_URL", "http://localhost:5173").rstrip("/"),
            local_storage_path=os.environ.get("LOCAL_STORAGE_PATH") or None,
            tax_rate=_env_decimal("TAX_RATE", "0.15"),
            free_shipping_threshold=_env_int("FREE_SHIPPING_THRESHOLD", 100000),
            flat_shipping_fee=_env_int("FLAT_SHIPPING_FEE", 10000),
            product_cache_size=_env_int("PRODUCT_CACHE_SIZE", 100),
            product_cache_ttl=float(_env_int("PRODUCT_CACHE_TTL", 600)),
            http_timeout=float(_env_int("HTTP_TIMEOUT", 10)),
        )

    def publishable_key(self, store: StoreType) -> str:
        """Publishable API key for a store channel."""
        return self.health_key if store == StoreType.HEALTH else self.electronics_key

    def is_configured(self) -> bool:
        return bool(self.electronics_key and self.health_key and self.medusa_backend_url)

    def is_supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)

    def config_status(self) -> dict:
        """Configuration summary for health checks."""
        return {
            "backend_url": self.medusa_backend_url,
            "electronics_key_configured": bool(self.electronics_key),
            "health_key_configured": bool(self.health_key),
            "default_region": self.default_region_id,
            "supabase_configured": self.is_supabase_configured(),
            "is_fully_configured": self.is_configured() and self.is_supabase_configured(),
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get process-wide settings (loads `.env` on first call)."""
    load_dotenv()
    return Settings.from_env()
