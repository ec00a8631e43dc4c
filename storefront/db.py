"""
Database Module - Supabase client

Provides the async Supabase client used for customer profiles, paid
orders and wishlists. The client is created once per process by
`get_supabase()`, or built explicitly with `Database.create()`.
"""

from typing import Optional

from supabase._async.client import AsyncClient
from supabase._async.client import create_client as acreate_client

from storefront.config import Settings, get_settings
from storefront.logging import get_logger
from storefront.repositories import CustomerRepository, OrderRepository

logger = get_logger(__name__)

# Singleton instance
_async_supabase_client: Optional[AsyncClient] = None


async def get_supabase(settings: Optional[Settings] = None) -> AsyncClient:
    """
    Get async Supabase client (singleton).

    Raises:
        ValueError: SUPABASE_URL / SUPABASE_ANON_KEY not set
    """
    global _async_supabase_client

    if _async_supabase_client is None:
        settings = settings or get_settings()
        if not settings.is_supabase_configured():
            raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY must be set")
        _async_supabase_client = await acreate_client(settings.supabase_url, settings.supabase_anon_key)
        logger.info("Supabase client initialised")

    return _async_supabase_client


class Database:
    """
    Supabase access grouped by repository.

    Must be built with the async factory `create()`, or directly from an
    existing client (tests pass a fake).
    """

    def __init__(self, client: AsyncClient):
        self.client = client
        self.customers = CustomerRepository(client)
        self.orders = OrderRepository(client)

    @classmethod
    async def create(cls, settings: Optional[Settings] = None) -> "Database":
        return cls(await get_supabase(settings))
