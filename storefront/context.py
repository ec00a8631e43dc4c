"""
Storefront context - explicitly constructed collaborators.

Everything the cart engine, catalog and payment reconciler need is built
here once and handed to them, instead of being reached through module
globals. Several contexts can coexist (one per test, one per tenant).
"""
from dataclasses import dataclass
from typing import Optional

import httpx

from storefront.cache import ProductCache
from storefront.cart.remote import MedusaCartClient
from storefront.cart.service import CartManager
from storefront.cart.storage import FileStorage, LocalCartStore, LocalStorage, MemoryStorage
from storefront.catalog import ProductCatalog
from storefront.config import Settings, StoreType
from storefront.db import Database
from storefront.domains.wishlist import WishlistService
from storefront.logging import get_logger
from storefront.payments.providers import PaymentService
from storefront.payments.reconciliation import PaymentReconciler

logger = get_logger(__name__)


@dataclass
class StorefrontContext:
    settings: Settings
    cache: ProductCache
    storage: LocalStorage
    local_store: LocalCartStore
    remote: MedusaCartClient
    cart: CartManager
    catalog: ProductCatalog
    payments: PaymentService
    reconciler: PaymentReconciler
    database: Optional[Database] = None
    wishlist: Optional[WishlistService] = None

    @classmethod
    def create(
        cls,
        settings: Settings,
        storage: Optional[LocalStorage] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        database: Optional[Database] = None,
        store_type: StoreType = StoreType.ELECTRONICS,
    ) -> "StorefrontContext":
        """
        Wire a context from settings.

        Storage defaults to a file at LOCAL_STORAGE_PATH, else memory.
        Without a database, paid orders are recorded locally only.
        """
        if storage is None:
            if settings.local_storage_path:
                storage = FileStorage(settings.local_storage_path)
            else:
                storage = MemoryStorage()

        cache = ProductCache(max_size=settings.product_cache_size, default_ttl=settings.product_cache_ttl)
        local_store = LocalCartStore(storage)
        remote = MedusaCartClient(settings, local_store, http_client=http_client)
        cart = CartManager(local_store, remote, settings, store_type=store_type)
        payments = PaymentService(settings, storage)
        reconciler = PaymentReconciler(
            payments,
            cart,
            storage,
            orders=database.orders if database else None,
        )

        logger.info(
            "Storefront context ready (store=%s, storage=%s, database=%s)",
            store_type.value,
            type(storage).__name__,
            "yes" if database else "no",
        )
        return cls(
            settings=settings,
            cache=cache,
            storage=storage,
            local_store=local_store,
            remote=remote,
            cart=cart,
            catalog=ProductCatalog(remote, cache, settings),
            payments=payments,
            reconciler=reconciler,
            database=database,
            wishlist=WishlistService(database.client) if database else None,
        )

    async def aclose(self) -> None:
        """Release the HTTP client."""
        await self.remote.aclose()
