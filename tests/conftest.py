"""Pytest configuration and fixtures"""
import json
import os
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx
import pytest

# Set test environment variables
os.environ.setdefault("MEDUSA_BACKEND_URL", "http://medusa.test")
os.environ.setdefault("MEDUSA_ELECTRONICS_KEY", "pk_electronics")
os.environ.setdefault("MEDUSA_HEALTH_KEY", "pk_health")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from storefront.cart.models import Product
from storefront.cart.remote import MedusaCartClient
from storefront.cart.service import CartManager
from storefront.cart.storage import LocalCartStore, MemoryStorage
from storefront.config import Settings, StoreType

BACKEND_URL = "http://medusa.test"

# publishable key -> store channel name kept in line item metadata
CHANNEL_STORES = {"pk_electronics": "electronics", "pk_health": "health"}


class FakeMedusa:
    """
    In-memory commerce API served through httpx.MockTransport.

    Carts, line items and products live in dicts. `failures` maps a
    "METHOD /path" prefix to a list of status codes returned (and
    consumed) before the real handler runs. Every variant belongs to one
    sales channel; line item writes sent with another channel's
    publishable key are rejected.
    """

    def __init__(self):
        self.carts: Dict[str, dict] = {}
        self.created: List[str] = []
        self.requests: List[str] = []
        self.keys: List[tuple] = []  # (METHOD /path, publishable key)
        self.prices: Dict[str, int] = {}
        self.titles: Dict[str, str] = {}
        self.channels: Dict[str, str] = {}
        self.unpriced: set = set()
        self.failures: Dict[str, List[Any]] = {}
        self.products: Dict[str, List[dict]] = {"pk_electronics": [], "pk_health": []}
        self.orders: List[str] = []
        self._line_seq = 0

    # ---------- helpers ----------

    def add_variant(self, variant_id: str, price: int, title: str = "", channel: str = "pk_electronics") -> None:
        self.prices[variant_id] = price
        self.titles[variant_id] = title or variant_id
        self.channels[variant_id] = channel

    def fail(self, key: str, *statuses: Any) -> None:
        """Queue failures for requests starting with `key`; an Exception instance is raised."""
        self.failures.setdefault(key, []).extend(statuses)

    def seed_cart(self, cart_id: str, customer_id: Optional[str] = None, items: Optional[dict] = None) -> None:
        self.carts[cart_id] = {"id": cart_id, "customer_id": customer_id, "items": [], "completed_at": None}
        for variant_id, quantity in (items or {}).items():
            self._add(self.carts[cart_id], variant_id, quantity)

    def lines(self, cart_id: str) -> List[tuple]:
        return [(item["variant_id"], item["quantity"]) for item in self.carts[cart_id]["items"]]

    def _add(self, cart: dict, variant_id: str, quantity: int, metadata: Optional[dict] = None) -> None:
        for item in cart["items"]:
            if item["variant_id"] == variant_id:
                item["quantity"] += quantity
                return
        self._line_seq += 1
        cart["items"].append(
            {
                "id": f"li_{self._line_seq}",
                "variant_id": variant_id,
                "quantity": quantity,
                "unit_price": self.prices.get(variant_id, 0),
                "product_title": self.titles.get(variant_id, variant_id),
                "thumbnail": None,
                "metadata": metadata
                or {"store": CHANNEL_STORES[self.channels.get(variant_id, "pk_electronics")]},
            }
        )

    def _channel_error(self, request: httpx.Request, variant_id: str) -> Optional[httpx.Response]:
        expected = self.channels.get(variant_id)
        sent = request.headers.get("x-publishable-api-key", "")
        if expected and sent != expected:
            return self._json(400, {"message": f"Variant {variant_id} is not available in this sales channel"})
        return None

    @staticmethod
    def _json(status: int, body: dict) -> httpx.Response:
        return httpx.Response(status, json=body)

    # ---------- transport ----------

    def handler(self, request: httpx.Request) -> httpx.Response:
        key = f"{request.method} {request.url.path}"
        self.requests.append(key)
        self.keys.append((key, request.headers.get("x-publishable-api-key", "")))

        for prefix, queued in self.failures.items():
            if key.startswith(prefix) and queued:
                failure = queued.pop(0)
                if isinstance(failure, Exception):
                    raise failure
                return self._json(failure, {"message": f"HTTP {failure}"})

        parts = request.url.path.strip("/").split("/")
        body = json.loads(request.content) if request.content else {}

        if parts[:2] == ["store", "regions"]:
            return self._json(200, {"regions": [{"id": "reg_test", "currency_code": "zar"}]})

        if parts[:2] == ["store", "products"]:
            key_header = request.headers.get("x-publishable-api-key", "")
            products = self.products.get(key_header, [])
            if len(parts) == 3:
                found = next((p for p in products if p["id"] == parts[2]), None)
                if found is None:
                    return self._json(404, {"message": "Product not found"})
                return self._json(200, {"product": found})
            return self._json(200, {"products": products})

        if parts[:2] == ["store", "payment-collections"]:
            return self._json(200, {"payment_collection": {"id": "pay_col_1", "cart_id": body.get("cart_id")}})

        if parts[:2] != ["store", "carts"]:
            return self._json(404, {"message": "Not found"})

        if len(parts) == 2 and request.method == "POST":
            cart_id = f"cart_{len(self.created) + 1}"
            self.seed_cart(cart_id, customer_id=body.get("customer_id"))
            self.created.append(cart_id)
            return self._json(200, {"cart": self.carts[cart_id]})

        cart = self.carts.get(parts[2])
        if cart is None:
            return self._json(404, {"message": f"Cart with id: {parts[2]} was not found"})

        if len(parts) == 3:
            if request.method == "GET":
                return self._json(200, {"cart": cart})
            cart.update({k: v for k, v in body.items()})
            return self._json(200, {"cart": cart})

        if parts[3] == "complete":
            if cart["completed_at"]:
                return self._json(400, {"message": "Cart is already completed"})
            cart["completed_at"] = "2026-01-01T00:00:00Z"
            order_id = f"order_{len(self.orders) + 1}"
            self.orders.append(order_id)
            return self._json(200, {"type": "order", "order": {"id": order_id}})

        if cart["completed_at"]:
            return self._json(400, {"message": "Cart is already completed"})

        if parts[3] == "line-items" and len(parts) == 4:
            variant_id = body["variant_id"]
            wrong_channel = self._channel_error(request, variant_id)
            if wrong_channel is not None:
                return wrong_channel
            if variant_id in self.unpriced:
                return self._json(400, {"message": f"Items {variant_id} do not have a price"})
            self._add(cart, variant_id, int(body["quantity"]), body.get("metadata"))
            return self._json(200, {"cart": cart})

        line_id = parts[4]
        item = next((i for i in cart["items"] if i["id"] == line_id), None)
        if item is None:
            return self._json(404, {"message": "Line item not found"})
        wrong_channel = self._channel_error(request, item["variant_id"])
        if wrong_channel is not None:
            return wrong_channel
        if request.method == "DELETE":
            cart["items"].remove(item)
            return self._json(200, {"id": line_id, "object": "line-item", "deleted": True, "parent": cart})
        item["quantity"] = int(body["quantity"])
        return self._json(200, {"cart": cart})


def medusa_product(product_id: str, title: str, amount: Any, variant_id: Optional[str] = None, **extra) -> dict:
    """Commerce-API product payload (prices in major units)."""
    raw = {
        "id": product_id,
        "title": title,
        "handle": title.lower().replace(" ", "-"),
        "description": extra.pop("description", None),
        "thumbnail": extra.pop("thumbnail", None),
        "categories": [{"id": "cat_1", "name": extra.pop("category", "Uncategorized")}],
        "variants": [
            {
                "id": variant_id or f"variant_{product_id}",
                "prices": [{"amount": amount, "currency_code": "zar"}],
                "inventory_quantity": 10,
            }
        ],
    }
    raw.update(extra)
    return raw


@pytest.fixture
def settings():
    """Settings with every provider configured"""
    return Settings(
        medusa_backend_url=BACKEND_URL,
        electronics_key="pk_electronics",
        health_key="pk_health",
        payfast_merchant_id="10000100",
        payfast_merchant_key="46f0cd694581a",
        payfast_passphrase="jt7NOE43FZPn",
        payfast_sandbox=True,
        ozow_site_code="TSTSTE0001",
        ozow_private_key="215114531AFF7134A94C88CEEA48E",
        ozow_api_key="ozow-api-key",
        storefront_url="https://shop.test",
        tax_rate=Decimal("0.15"),
        free_shipping_threshold=100000,
        flat_shipping_fee=10000,
    )


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def local_store(storage):
    return LocalCartStore(storage)


@pytest.fixture
def fake_medusa():
    medusa = FakeMedusa()
    medusa.add_variant("variant_a", 25000, "Wireless Mouse")
    medusa.add_variant("variant_b", 4999, "Vitamin C", channel="pk_health")
    medusa.add_variant("variant_c", 120000, "Laptop Stand")
    return medusa


@pytest.fixture
def http_client(fake_medusa):
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_medusa.handler), base_url=BACKEND_URL)


@pytest.fixture
def remote(settings, local_store, http_client):
    return MedusaCartClient(settings, local_store, http_client=http_client)


@pytest.fixture
def cart_manager(local_store, remote, settings):
    return CartManager(local_store, remote, settings, store_type=StoreType.ELECTRONICS)


@pytest.fixture
def product_a():
    return Product(
        id="prod_a",
        name="Wireless Mouse",
        price=25000,
        category="Accessories",
        variants=[{"id": "variant_a"}],
    )


@pytest.fixture
def product_b():
    return Product(
        id="prod_b",
        name="Vitamin C",
        price=4999,
        category="Supplements",
        store=StoreType.HEALTH,
        variants=[{"id": "variant_b"}],
    )


# ==================== FAKE SUPABASE ====================


class _Result:
    def __init__(self, data):
        self.data = data


class FakeTable:
    """Chainable query builder over a list of rows."""

    def __init__(self, db: "FakeSupabase", name: str):
        self.db = db
        self.name = name
        self._mode = "select"
        self._filters: List[tuple] = []
        self._payload: Any = None
        self._on_conflict: Optional[str] = None
        self._order: Optional[tuple] = None
        self._limit: Optional[int] = None

    @property
    def rows(self) -> List[dict]:
        return self.db.tables.setdefault(self.name, [])

    def select(self, *_):
        self._mode = "select"
        return self

    def insert(self, data):
        self._mode, self._payload = "insert", data
        return self

    def upsert(self, data, on_conflict: Optional[str] = None):
        self._mode, self._payload, self._on_conflict = "upsert", data, on_conflict
        return self

    def delete(self):
        self._mode = "delete"
        return self

    def eq(self, field: str, value):
        self._filters.append((field, value))
        return self

    def order(self, field: str, desc: bool = False):
        self._order = (field, desc)
        return self

    def limit(self, n: int):
        self._limit = n
        return self

    def _matches(self, row: dict) -> bool:
        return all(row.get(f) == v for f, v in self._filters)

    async def execute(self):
        self.db.calls.append((self.name, self._mode))
        if self.name in self.db.fail_tables:
            raise RuntimeError(f"{self.name} unavailable")

        if self._mode == "select":
            found = [dict(r) for r in self.rows if self._matches(r)]
            if self._order:
                field, desc = self._order
                found.sort(key=lambda r: r.get(field) or "", reverse=desc)
            if self._limit is not None:
                found = found[: self._limit]
            return _Result(found)

        if self._mode == "insert":
            for unique in self.db.unique.get(self.name, []):
                if any(all(r.get(k) == self._payload.get(k) for k in unique) for r in self.rows):
                    raise RuntimeError('duplicate key value violates unique constraint "wishlist_pkey"')
            row = {"id": f"{self.name}_{len(self.rows) + 1}", **self._payload}
            self.rows.append(row)
            return _Result([dict(row)])

        if self._mode == "upsert":
            key = self._on_conflict
            for row in self.rows:
                if key and row.get(key) == self._payload.get(key):
                    row.update(self._payload)
                    return _Result([dict(row)])
            self.rows.append(dict(self._payload))
            return _Result([dict(self._payload)])

        if self._mode == "delete":
            kept = [r for r in self.rows if not self._matches(r)]
            removed = len(self.rows) - len(kept)
            self.db.tables[self.name] = kept
            return _Result([{}] * removed)

        return _Result([])


class FakeSupabase:
    """Async Supabase client stand-in: `client.table(name)...execute()`."""

    def __init__(self):
        self.tables: Dict[str, List[dict]] = {}
        self.calls: List[tuple] = []
        self.fail_tables: set = set()
        self.unique: Dict[str, List[tuple]] = {"wishlist": [("customer_id", "product_id")]}

    def table(self, name: str) -> FakeTable:
        return FakeTable(self, name)


@pytest.fixture
def fake_supabase():
    return FakeSupabase()
