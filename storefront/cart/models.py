"""Cart models with integer minor-unit pricing."""
from dataclasses import dataclass, field, replace
from typing import Any, List, Optional

from pydantic import BaseModel, field_validator

from storefront.config import StoreType, normalize_store
from storefront.money import to_minor_units

PLACEHOLDER_IMAGE = "/placeholder.png"


@dataclass(frozen=True)
class ProductSnapshot:
    """Display fields captured when a line is added."""
    name: str
    image_url: str = ""
    category: str = ""

    def to_dict(self) -> dict:
        return {"name": self.name, "image_url": self.image_url, "category": self.category}

    @classmethod
    def from_dict(cls, data: dict) -> "ProductSnapshot":
        return cls(
            name=str(data.get("name", "")),
            image_url=str(data.get("image_url", "") or ""),
            category=str(data.get("category", "") or ""),
        )


@dataclass(frozen=True)
class CartLine:
    """
    One product-and-quantity entry within a cart.

    `product_id` is the variant id used by the commerce API. A line with
    quantity <= 0 never exists; callers remove the line instead.
    `store` is the channel whose publishable key the line is written with.
    """
    product_id: str
    quantity: int
    unit_price: int  # minor units, tax-inclusive
    product: ProductSnapshot = field(default_factory=lambda: ProductSnapshot(name=""))
    store: StoreType = StoreType.ELECTRONICS

    def __post_init__(self):
        if not self.product_id:
            raise ValueError("product_id must be a non-empty string")
        if not isinstance(self.quantity, int) or self.quantity < 1:
            raise ValueError("quantity must be a positive integer")
        if not isinstance(self.unit_price, int) or self.unit_price < 0:
            raise ValueError("unit_price must be a non-negative integer")

    @property
    def total_price(self) -> int:
        return self.unit_price * self.quantity

    def with_quantity(self, quantity: int) -> "CartLine":
        return replace(self, quantity=quantity)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "product": self.product.to_dict(),
            "store": self.store.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CartLine":
        return cls(
            product_id=str(data["product_id"]),
            quantity=int(data["quantity"]),
            unit_price=int(data.get("unit_price", 0)),
            product=ProductSnapshot.from_dict(data.get("product") or {}),
            store=normalize_store(data.get("store")),
        )

    @classmethod
    def from_medusa_item(cls, item: dict) -> "CartLine":
        """Build a line from a commerce-API cart line item (prices already in cents)."""
        return cls(
            product_id=str(item["variant_id"]),
            quantity=int(item["quantity"]),
            unit_price=int(item.get("unit_price") or 0),
            product=ProductSnapshot(
                name=item.get("product_title") or item.get("title") or "",
                image_url=item.get("thumbnail") or "",
                category="",
            ),
            store=normalize_store((item.get("metadata") or {}).get("store")),
        )


class Product(BaseModel):
    """Catalog product as shown to shoppers."""
    id: str
    name: str
    price: int = 0  # minor units
    image: str = PLACEHOLDER_IMAGE
    category: str = "Uncategorized"
    store: StoreType = StoreType.ELECTRONICS
    description: Optional[str] = None
    handle: Optional[str] = None
    variants: list[dict[str, Any]] = []
    inventory: int = 0

    class Config:
        extra = "ignore"

    @field_validator("price", mode="before")
    @classmethod
    def convert_price(cls, v):
        if isinstance(v, int):
            return v
        return to_minor_units(v)

    @property
    def variant_id(self) -> str:
        """Reference used for remote line items: first variant, else product id."""
        if self.variants and self.variants[0].get("id"):
            return str(self.variants[0]["id"])
        return self.id

    def snapshot(self) -> ProductSnapshot:
        return ProductSnapshot(name=self.name, image_url=self.image, category=self.category)

    def to_line(self, quantity: int) -> CartLine:
        return CartLine(
            product_id=self.variant_id,
            quantity=quantity,
            unit_price=self.price,
            product=self.snapshot(),
            store=self.store,
        )

    @classmethod
    def from_medusa(cls, raw: dict, store: StoreType) -> "Product":
        """
        Convert a commerce-API product.

        Price comes from the first variant: ZAR price first, then any
        price, then the calculated price. Amounts are major units.
        """
        variants = raw.get("variants") or []
        default_variant = variants[0] if variants else {}

        amount: Any = 0
        prices = default_variant.get("prices") or []
        price_data = next(
            (p for p in prices if str(p.get("currency_code", "")).lower() == "zar"),
            prices[0] if prices else None,
        )
        if price_data:
            amount = price_data.get("amount") or 0
        if not amount and default_variant.get("calculated_price"):
            amount = default_variant["calculated_price"].get("calculated_amount") or 0

        categories = raw.get("categories") or []
        images = raw.get("images") or []

        return cls(
            id=raw["id"],
            name=raw.get("title") or "",
            price=to_minor_units(amount),
            image=raw.get("thumbnail") or (images[0].get("url") if images else None) or PLACEHOLDER_IMAGE,
            category=(categories[0].get("name") if categories else None) or "Uncategorized",
            store=store,
            description=raw.get("description") or None,
            handle=raw.get("handle"),
            variants=variants,
            inventory=int(default_variant.get("inventory_quantity") or 0),
        )


# ==================== LINE LIST OPERATIONS ====================
# Pure helpers used by the local (guest / fallback) path. They keep the
# invariant of one line per product_id and no non-positive quantities.

def upsert_line(lines: List[CartLine], line: CartLine) -> List[CartLine]:
    """Merge quantities if the product is present, else append."""
    result = []
    merged = False
    for existing in lines:
        if existing.product_id == line.product_id and not merged:
            result.append(existing.with_quantity(existing.quantity + line.quantity))
            merged = True
        elif existing.product_id != line.product_id:
            result.append(existing)
    if not merged:
        result.append(line)
    return result


def set_line_quantity(lines: List[CartLine], product_id: str, quantity: int) -> List[CartLine]:
    """Set quantity for a product; quantity <= 0 removes the line."""
    if quantity <= 0:
        return remove_line(lines, product_id)
    return [
        line.with_quantity(quantity) if line.product_id == product_id else line
        for line in lines
    ]


def remove_line(lines: List[CartLine], product_id: str) -> List[CartLine]:
    return [line for line in lines if line.product_id != product_id]


def normalize_lines(lines: List[CartLine]) -> List[CartLine]:
    """Collapse duplicate product ids (first position wins, quantities summed)."""
    result: List[CartLine] = []
    for line in lines:
        result = upsert_line(result, line)
    return result
