"""Database row models (pydantic)."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class Customer(BaseModel):
    """Customer profile row."""
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    has_account: bool = False
    created_at: Optional[datetime] = None
    metadata: Optional[dict] = None

    class Config:
        extra = "ignore"

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


class PaidOrder(BaseModel):
    """Order recorded after a verified payment. One row per order_id."""
    order_id: str
    payment_id: str
    transaction_id: Optional[str] = None
    amount: int  # minor units
    provider: str
    status: str = "PAID"
    customer_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        extra = "ignore"


class WishlistItem(BaseModel):
    """Wishlist row with a product snapshot taken at insert time."""
    id: str
    customer_id: str
    product_id: str
    product_handle: Optional[str] = None
    product_title: str = ""
    product_price: int = 0  # minor units
    product_thumbnail: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        extra = "ignore"
