"""Order Repository - paid order records."""
from datetime import datetime, timezone
from typing import Optional

from storefront.errors import OrderPersistenceError
from storefront.logging import get_logger, sanitize_id_for_logging
from storefront.models import PaidOrder

from .base import BaseRepository

logger = get_logger(__name__)

PAID_ORDERS_TABLE = "paid_orders"


class OrderRepository(BaseRepository):
    """Paid order database operations."""

    async def get_by_order_id(self, order_id: str) -> Optional[PaidOrder]:
        result = await self.client.table(PAID_ORDERS_TABLE).select("*").eq("order_id", order_id).limit(1).execute()
        return PaidOrder(**result.data[0]) if result.data else None

    async def record_paid_order(self, verification, customer_id: Optional[str] = None) -> PaidOrder:
        """
        Persist a verified payment as an order. Idempotent per order_id.

        An existing row is returned unchanged; otherwise the row is upserted
        on `order_id`, so a concurrent duplicate from another process lands
        on the same row.

        Raises:
            OrderPersistenceError: the write failed
        """
        try:
            existing = await self.get_by_order_id(verification.order_id)
        except Exception as e:
            logger.error("Failed to look up order %s", sanitize_id_for_logging(verification.order_id), exc_info=True)
            raise OrderPersistenceError(str(e)) from e
        if existing:
            logger.info("Order %s already recorded", sanitize_id_for_logging(verification.order_id))
            return existing

        order = PaidOrder(
            order_id=verification.order_id,
            payment_id=verification.payment_id,
            transaction_id=verification.transaction_id,
            amount=verification.amount,
            provider=verification.provider.value,
            customer_id=customer_id,
            created_at=datetime.now(timezone.utc),
        )
        try:
            result = (
                await self.client.table(PAID_ORDERS_TABLE)
                .upsert(order.model_dump(mode="json"), on_conflict="order_id")
                .execute()
            )
        except Exception as e:
            logger.error("Failed to record order %s", sanitize_id_for_logging(order.order_id), exc_info=True)
            raise OrderPersistenceError(str(e)) from e

        if result.data:
            return PaidOrder(**result.data[0])
        return order
