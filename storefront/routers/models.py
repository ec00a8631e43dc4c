"""
Pydantic models for API request/response schemas.
"""
from typing import List, Optional

from pydantic import BaseModel, Field

from storefront.cart.service import CartResult
from storefront.config import StoreType
from storefront.money import CartTotals


class AddItemRequest(BaseModel):
    """Add a catalog product to the cart."""
    product_id: str
    quantity: int = Field(default=1, ge=1)
    store: StoreType = StoreType.ELECTRONICS


class UpdateItemRequest(BaseModel):
    """Set a line's quantity; 0 removes the line."""
    product_id: str
    quantity: int = Field(ge=0)
    store: Optional[StoreType] = None  # defaults to the channel the line was added on


class CartLineResponse(BaseModel):
    product_id: str
    quantity: int
    unit_price: int
    total_price: int
    name: Optional[str] = None
    image_url: Optional[str] = None
    category: Optional[str] = None


class CartResponse(BaseModel):
    items: List[CartLineResponse]
    totals: dict
    error: Optional[str] = None
    fallback: bool = False

    @classmethod
    def build(cls, result: CartResult, totals: CartTotals) -> "CartResponse":
        return cls(
            items=[
                CartLineResponse(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    total_price=line.total_price,
                    name=line.product.name or None,
                    image_url=line.product.image_url or None,
                    category=line.product.category or None,
                )
                for line in result.items
            ],
            totals=totals.to_dict(),
            error=result.error,
            fallback=result.fallback,
        )
