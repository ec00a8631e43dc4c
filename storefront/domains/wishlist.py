"""Wishlist Domain Service.

Per-customer saved products. Each row carries a snapshot of the product
(title, price, thumbnail) taken when it was added, so the list renders
without a catalog round-trip.
"""

from typing import Any

from storefront.cart.models import Product
from storefront.logging import get_logger, sanitize_id_for_logging
from storefront.models import WishlistItem

logger = get_logger(__name__)

# Postgres unique_violation
UNIQUE_VIOLATION = "23505"


def _is_duplicate(error: Exception) -> bool:
    code = getattr(error, "code", None)
    text = str(error).lower()
    return code == UNIQUE_VIOLATION or "duplicate" in text or "unique" in text


class WishlistService:
    """Wishlist domain service.

    Failures are logged and reported as result dicts or empty values.
    """

    def __init__(self, client) -> None:
        self.client = client

    async def get_items(self, customer_id: str) -> list[WishlistItem]:
        """Customer's wishlist, newest first."""
        try:
            result = (
                await self.client.table("wishlist")
                .select("*")
                .eq("customer_id", customer_id)
                .order("created_at", desc=True)
                .execute()
            )
            return [WishlistItem(**row) for row in result.data or []]
        except Exception as e:
            logger.error("Failed to get wishlist: %s", type(e).__name__, exc_info=True)
            return []

    async def add_item(self, customer_id: str, product: Product) -> dict[str, Any]:
        """Add product to wishlist.

        Args:
            customer_id: Customer database ID
            product: Product to snapshot

        Returns:
            Success/failure result
        """
        existing = await self.is_in_wishlist(customer_id, product.id)
        if existing:
            return {"success": False, "reason": "Already in wishlist"}

        try:
            result = (
                await self.client.table("wishlist")
                .insert(
                    {
                        "customer_id": customer_id,
                        "product_id": product.id,
                        "product_handle": product.handle,
                        "product_title": product.name,
                        "product_price": product.price,
                        "product_thumbnail": product.image,
                    }
                )
                .execute()
            )

            if result.data:
                return {"success": True, "product_name": product.name, "message": "Added to wishlist"}
            return {"success": False, "reason": "Failed to add to wishlist"}
        except Exception as e:
            if _is_duplicate(e):
                return {"success": False, "reason": "Already in wishlist"}
            logger.error("Failed to add to wishlist: %s", type(e).__name__, exc_info=True)
            return {"success": False, "reason": "Database error"}

    async def remove_item(self, customer_id: str, product_id: str) -> dict[str, Any]:
        try:
            await (
                self.client.table("wishlist")
                .delete()
                .eq("customer_id", customer_id)
                .eq("product_id", product_id)
                .execute()
            )
            return {"success": True, "message": "Removed from wishlist"}
        except Exception as e:
            logger.error(
                "Failed to remove %s from wishlist: %s",
                sanitize_id_for_logging(product_id),
                type(e).__name__,
                exc_info=True,
            )
            return {"success": False, "reason": "Failed to remove"}

    async def is_in_wishlist(self, customer_id: str, product_id: str) -> bool:
        try:
            result = (
                await self.client.table("wishlist")
                .select("id")
                .eq("customer_id", customer_id)
                .eq("product_id", product_id)
                .execute()
            )
            return bool(result.data)
        except Exception:
            logger.warning("Wishlist lookup failed", exc_info=True)
            return False

    async def toggle(self, customer_id: str, product: Product) -> dict[str, Any]:
        """Remove the product if saved, otherwise add it."""
        if await self.is_in_wishlist(customer_id, product.id):
            result = await self.remove_item(customer_id, product.id)
            result["in_wishlist"] = not result["success"]
            return result
        result = await self.add_item(customer_id, product)
        result["in_wishlist"] = result["success"] or result.get("reason") == "Already in wishlist"
        return result
