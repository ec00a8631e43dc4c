"""
Product catalog reads through the product cache.

Product lists, details and search results are cached with their own TTLs
(see `TTL`). Search scores every product of both stores in memory; there
is no server-side search.
"""
import asyncio
from typing import List, Optional

from storefront.cache import TTL, CacheKeys, ProductCache
from storefront.cart.models import Product
from storefront.cart.remote import MedusaCartClient
from storefront.config import Settings, StoreType
from storefront.errors import CartServiceError
from storefront.logging import get_logger, sanitize_string_for_logging

logger = get_logger(__name__)

# Search relevance weights
SCORE_EXACT_NAME = 100
SCORE_NAME = 50
SCORE_CATEGORY = 30
SCORE_DESCRIPTION = 20
SCORE_WORD_NAME = 10
SCORE_WORD_CATEGORY = 5
SCORE_WORD_DESCRIPTION = 3
SCORE_FUZZY_NAME = 15
SIMILARITY_THRESHOLD = 0.6


def is_similar(a: str, b: str) -> bool:
    """Share of characters of `a` found in `b`, against the longer length."""
    if len(a) < 3 or len(b) < 3:
        return False
    common = sum(1 for ch in a if ch in b)
    return common / max(len(a), len(b)) > SIMILARITY_THRESHOLD


def score_product(product: Product, term: str) -> int:
    """Relevance of `product` for a lower-cased, stripped search term."""
    name = product.name.lower()
    category = product.category.lower()
    description = (product.description or "").lower()

    score = 0
    if name == term:
        score += SCORE_EXACT_NAME
    if term in name:
        score += SCORE_NAME
    if term in category:
        score += SCORE_CATEGORY
    if term in description:
        score += SCORE_DESCRIPTION

    words = term.split(" ")
    for word in words:
        if len(word) > 2:
            if word in name:
                score += SCORE_WORD_NAME
            if word in category:
                score += SCORE_WORD_CATEGORY
            if word in description:
                score += SCORE_WORD_DESCRIPTION

    name_words = name.split(" ")
    for word in words:
        if len(word) > 3:
            score += SCORE_FUZZY_NAME * sum(1 for name_word in name_words if is_similar(word, name_word))

    return score


class ProductCatalog:
    """Catalog reads for both store channels."""

    def __init__(self, remote: MedusaCartClient, cache: ProductCache, settings: Settings):
        self.remote = remote
        self.cache = cache
        self.settings = settings

    async def _region_id(self, store: StoreType) -> str:
        try:
            regions = await self.remote.list_regions(store)
        except CartServiceError:
            logger.warning("Could not fetch regions, using default")
            return self.settings.default_region_id
        if regions and regions[0].get("id"):
            return regions[0]["id"]
        return self.settings.default_region_id

    async def _load_store(self, store: StoreType) -> List[Product]:
        region_id = await self._region_id(store)
        raw_products = await self.remote.list_products(store, region_id)
        if not raw_products:
            logger.warning("No products found for %s store", store.value)
        products = [Product.from_medusa(raw, store) for raw in raw_products]
        logger.info("Loaded %s products for %s store", len(products), store.value)
        return products

    async def fetch_products_by_store(self, store: StoreType) -> List[Product]:
        """
        All products of a store channel (first region, else the default).

        Raises:
            CartServiceError: the product list could not be fetched
        """
        return await self.cache.with_cache(
            CacheKeys.store_products(store.value),
            lambda: self._load_store(store),
            self.settings.product_cache_ttl,
        )

    async def fetch_product(self, product_id: str, store: StoreType) -> Optional[Product]:
        """Single product, or None if missing or unreachable."""
        key = CacheKeys.product_detail(product_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            raw = await self.remote.get_product(product_id, store)
        except CartServiceError:
            logger.error("Error fetching product %s", sanitize_string_for_logging(product_id), exc_info=True)
            return None
        if not raw:
            logger.warning("Product %s not found", sanitize_string_for_logging(product_id))
            return None

        product = Product.from_medusa(raw, store)
        self.cache.set(key, product, TTL.PRODUCT_DETAIL)
        return product

    async def fetch_products_by_category(self, category: str, store: StoreType) -> List[Product]:
        try:
            products = await self.fetch_products_by_store(store)
        except CartServiceError:
            logger.error("Error fetching products by category %s", sanitize_string_for_logging(category))
            return []
        return [p for p in products if p.category == category]

    async def search(self, query: str) -> List[Product]:
        """Products of both stores ranked by relevance; no match scores zero."""
        term = (query or "").strip().lower()
        if not term:
            return []

        async def run_search() -> List[Product]:
            electronics, health = await asyncio.gather(
                self.fetch_products_by_store(StoreType.ELECTRONICS),
                self.fetch_products_by_store(StoreType.HEALTH),
            )
            scored = [(score_product(p, term), p) for p in [*electronics, *health]]
            # sorted() is stable, so equal scores keep catalog order
            ranked = sorted((item for item in scored if item[0] > 0), key=lambda item: -item[0])
            return [p for _, p in ranked]

        try:
            return await self.cache.with_cache(CacheKeys.search_results(term), run_search, TTL.SEARCH)
        except CartServiceError:
            logger.error("Error searching products for '%s'", sanitize_string_for_logging(term), exc_info=True)
            return []

    def preload_store(self, store: StoreType) -> None:
        """Warm a store's product list in the background."""
        self.cache.preload(
            CacheKeys.store_products(store.value),
            lambda: self._load_store(store),
            self.settings.product_cache_ttl,
        )

    def invalidate_store(self, store: StoreType) -> None:
        """Drop a store's list and all cached search results."""
        self.cache.invalidate(CacheKeys.store_products(store.value))
        self.cache.invalidate_pattern(r"^search:")
