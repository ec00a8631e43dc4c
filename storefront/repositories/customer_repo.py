"""Customer Repository - profile and order history reads."""
from typing import List, Optional

from storefront.models import Customer

from .base import BaseRepository


class CustomerRepository(BaseRepository):
    """Customer database operations."""

    async def get_by_id(self, customer_id: str) -> Optional[Customer]:
        result = await self.client.table("customer").select("*").eq("id", customer_id).limit(1).execute()
        return Customer(**result.data[0]) if result.data else None

    async def get_by_email(self, email: str) -> Optional[Customer]:
        """Get customer by email (auth users map to customers by email)."""
        result = await self.client.table("customer").select("*").eq("email", email).limit(1).execute()
        return Customer(**result.data[0]) if result.data else None

    async def get_orders(self, customer_id: str, limit: int = 50) -> List[dict]:
        """Customer's orders, newest first."""
        result = (
            await self.client.table("order")
            .select("*")
            .eq("customer_id", customer_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return result.data or []
