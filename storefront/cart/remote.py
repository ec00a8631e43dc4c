"""Commerce API client for remote carts, orders and catalog reads.

Talks to the store API over httpx. Every request carries the store
channel's publishable key and, when a token is cached locally, a bearer
token. HTTP failures are translated into the cart error taxonomy:

- 404 (or a completed cart)  -> CartNotFoundError
- 400 / 409 / 422            -> CartConflictError
- 401 / 403                  -> UnauthenticatedError
- 429 / 5xx / network errors -> TransientCartError
"""

from typing import Any, List, Optional

import httpx

from storefront.config import Settings, StoreType, normalize_store
from storefront.errors import (
    ERROR_ORDER_NOT_CREATED,
    ERROR_PRODUCT_UNAVAILABLE,
    PRICE_MISSING_HINT,
    CartConflictError,
    CartNotFoundError,
    CartServiceError,
    TransientCartError,
    UnauthenticatedError,
)
from storefront.logging import get_logger, sanitize_id_for_logging
from .models import CartLine, normalize_lines
from .storage import LocalCartStore

logger = get_logger(__name__)

CARTS_PATH = "/store/carts"


class MedusaCartClient:
    """Remote cart client for the commerce backend."""

    def __init__(
        self,
        settings: Settings,
        local_store: LocalCartStore,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self.local_store = local_store
        self._http_client = http_client

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Lazy creation of shared httpx client with timeouts."""
        if self._http_client is None:
            timeout = self.settings.http_timeout
            self._http_client = httpx.AsyncClient(
                base_url=self.settings.medusa_backend_url,
                timeout=httpx.Timeout(timeout, connect=min(5.0, timeout)),
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
            )
        return self._http_client

    def _headers(self, store: StoreType) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        publishable_key = self.settings.publishable_key(store)
        if publishable_key:
            headers["x-publishable-api-key"] = publishable_key
        token = self.local_store.get_auth_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text[:200] or f"HTTP {response.status_code}"
        if isinstance(data, dict):
            return str(data.get("message") or data.get("error") or data)[:200]
        return str(data)[:200]

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return

        message = self._error_message(response)

        if status == 404:
            raise CartNotFoundError(message, status)
        if status in (401, 403):
            raise UnauthenticatedError(message, status)
        if status in (400, 409, 422):
            if "completed" in message.lower():
                raise CartNotFoundError(message, status)
            if PRICE_MISSING_HINT in message:
                raise CartConflictError(ERROR_PRODUCT_UNAVAILABLE, status)
            raise CartConflictError(message, status)
        if status == 429 or status >= 500:
            raise TransientCartError(message, status)
        raise CartServiceError(message, status)

    async def _request(
        self,
        method: str,
        path: str,
        store: StoreType,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> dict[str, Any]:
        client = await self._get_http_client()
        try:
            response = await client.request(
                method, path, headers=self._headers(store), json=json, params=params
            )
        except httpx.TimeoutException as e:
            raise TransientCartError(f"Commerce API timeout: {type(e).__name__}") from e
        except httpx.RequestError as e:
            raise TransientCartError(f"Failed to connect to commerce API: {e!s}") from e

        self._raise_for_status(response)

        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise TransientCartError("Commerce API returned invalid JSON") from e
        return data if isinstance(data, dict) else {}

    # ==================== CARTS ====================

    async def get_raw_cart(self, cart_id: str, store: StoreType = StoreType.ELECTRONICS) -> dict:
        """Fetch the remote cart payload. Raises on failure."""
        data = await self._request("GET", f"{CARTS_PATH}/{cart_id}", store)
        cart = data.get("cart")
        if not isinstance(cart, dict):
            raise CartNotFoundError(f"Cart {cart_id} not returned")
        return cart

    async def create_cart(
        self,
        store: StoreType = StoreType.ELECTRONICS,
        customer_id: Optional[str] = None,
    ) -> str:
        """Create a remote cart and remember its id locally."""
        body: dict[str, Any] = {"region_id": self.settings.default_region_id}
        if customer_id:
            body["customer_id"] = customer_id

        logger.info(
            "Creating remote cart: store=%s customer=%s",
            store.value,
            sanitize_id_for_logging(customer_id),
        )
        data = await self._request("POST", CARTS_PATH, store, json=body)
        cart_id = (data.get("cart") or {}).get("id")
        if not cart_id:
            raise CartServiceError("Cart ID not returned from commerce API")

        self.local_store.set_cart_id(cart_id)
        logger.info("Remote cart created: %s", sanitize_id_for_logging(cart_id))
        return cart_id

    async def get_or_create_cart(
        self,
        store: StoreType = StoreType.ELECTRONICS,
        customer_id: Optional[str] = None,
    ) -> str:
        """
        Return the remembered CartId if it is still open and owned by
        `customer_id`; otherwise create (and remember) a new cart.

        A remembered cart owned by another identity, or by no identity
        while a customer is signed in, is never reused.
        """
        existing_id = self.local_store.get_cart_id()
        if existing_id:
            try:
                cart = await self.get_raw_cart(existing_id, store)
            except CartNotFoundError:
                logger.info("Remembered cart %s is gone", sanitize_id_for_logging(existing_id))
                self.local_store.clear_cart_id()
            else:
                owner = cart.get("customer_id")
                if cart.get("completed_at"):
                    logger.info("Remembered cart %s is completed", sanitize_id_for_logging(existing_id))
                    self.local_store.clear_cart_id()
                elif customer_id and owner != customer_id:
                    logger.warning(
                        "Remembered cart %s belongs to another identity, discarding",
                        sanitize_id_for_logging(existing_id),
                    )
                    self.local_store.clear_cart_id()
                else:
                    return existing_id

        return await self.create_cart(store, customer_id)

    async def fetch_cart(self, cart_id: str, store: StoreType = StoreType.ELECTRONICS) -> List[CartLine]:
        """Remote cart lines; empty list if the cart cannot be fetched."""
        try:
            cart = await self.get_raw_cart(cart_id, store)
        except CartServiceError as e:
            logger.warning(
                "Could not fetch cart %s: %s", sanitize_id_for_logging(cart_id), type(e).__name__
            )
            return []
        return self.lines_from_cart(cart)

    @staticmethod
    def lines_from_cart(cart: dict) -> List[CartLine]:
        lines: List[CartLine] = []
        for item in cart.get("items") or []:
            try:
                if int(item.get("quantity") or 0) <= 0:
                    continue
                lines.append(CartLine.from_medusa_item(item))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed line item %s", item.get("id"))
        # Separate line items for one variant collapse into a single line
        return normalize_lines(lines)

    @staticmethod
    def _find_line_item(cart: dict, product_ref: str) -> Optional[dict]:
        return next(
            (item for item in cart.get("items") or [] if item.get("variant_id") == product_ref),
            None,
        )

    @staticmethod
    def _item_store(item: dict, default: StoreType) -> StoreType:
        """Channel recorded on an existing line item."""
        return normalize_store((item.get("metadata") or {}).get("store"), default)

    async def _settle(self, cart_id: str, store: StoreType, data: dict) -> List[CartLine]:
        """Authoritative lines after a mutation, written through to local storage."""
        cart = data.get("cart")
        if isinstance(cart, dict) and "items" in cart:
            lines = self.lines_from_cart(cart)
        else:
            lines = await self.fetch_cart(cart_id, store)
        self.local_store.save_local_cart(lines)
        return lines

    async def add_line(
        self,
        cart_id: str,
        product_ref: str,
        quantity: int,
        store: StoreType = StoreType.ELECTRONICS,
    ) -> List[CartLine]:
        """
        Add `quantity` of a variant to the remote cart.

        The store channel is kept in the line item metadata so later updates
        and removals use the same publishable key.
        """
        logger.info(
            "Adding line: cart=%s variant=%s qty=%s",
            sanitize_id_for_logging(cart_id),
            sanitize_id_for_logging(product_ref),
            quantity,
        )
        data = await self._request(
            "POST",
            f"{CARTS_PATH}/{cart_id}/line-items",
            store,
            json={"variant_id": product_ref, "quantity": quantity, "metadata": {"store": store.value}},
        )
        return await self._settle(cart_id, store, data)

    async def update_line_quantity(
        self,
        cart_id: str,
        product_ref: str,
        quantity: int,
        store: StoreType = StoreType.ELECTRONICS,
    ) -> List[CartLine]:
        """Set a line's quantity; quantity <= 0 removes the line."""
        if quantity <= 0:
            return await self.remove_line(cart_id, product_ref, store)

        cart = await self.get_raw_cart(cart_id, store)
        line_item = self._find_line_item(cart, product_ref)
        if line_item is None:
            logger.warning("Line item %s not in cart", sanitize_id_for_logging(product_ref))
            lines = self.lines_from_cart(cart)
            self.local_store.save_local_cart(lines)
            return lines

        store = self._item_store(line_item, store)
        data = await self._request(
            "POST",
            f"{CARTS_PATH}/{cart_id}/line-items/{line_item['id']}",
            store,
            json={"quantity": quantity},
        )
        return await self._settle(cart_id, store, data)

    async def remove_line(
        self,
        cart_id: str,
        product_ref: str,
        store: StoreType = StoreType.ELECTRONICS,
    ) -> List[CartLine]:
        """Delete a line from the remote cart (no-op if absent)."""
        cart = await self.get_raw_cart(cart_id, store)
        line_item = self._find_line_item(cart, product_ref)
        if line_item is None:
            lines = self.lines_from_cart(cart)
            self.local_store.save_local_cart(lines)
            return lines

        store = self._item_store(line_item, store)
        data = await self._request(
            "DELETE", f"{CARTS_PATH}/{cart_id}/line-items/{line_item['id']}", store
        )
        # DELETE answers with {"id", "deleted", "parent": cart}
        if isinstance(data.get("parent"), dict):
            data = {"cart": data["parent"]}
        return await self._settle(cart_id, store, data)

    # ==================== CHECKOUT ====================

    async def update_cart(
        self,
        cart_id: str,
        email: str,
        shipping_address: Optional[dict] = None,
        store: StoreType = StoreType.ELECTRONICS,
    ) -> dict:
        """Attach customer email and addresses (billing mirrors shipping)."""
        body: dict[str, Any] = {"email": email}
        if shipping_address:
            address = dict(shipping_address)
            address.setdefault("country_code", "za")
            address["country_code"] = (address.get("country_code") or "za").lower()
            body["shipping_address"] = address
            body["billing_address"] = dict(address)
        data = await self._request("POST", f"{CARTS_PATH}/{cart_id}", store, json=body)
        return data.get("cart") or {}

    async def create_payment_collection(
        self, cart_id: str, store: StoreType = StoreType.ELECTRONICS
    ) -> bool:
        """Initialise a payment collection (best-effort)."""
        try:
            await self._request("POST", "/store/payment-collections", store, json={"cart_id": cart_id})
            return True
        except CartServiceError as e:
            logger.warning("Could not create payment collection, continuing: %s", e)
            return False

    async def complete_cart(self, cart_id: str, store: StoreType = StoreType.ELECTRONICS) -> str:
        """Complete the cart into an order. Returns the order id."""
        data = await self._request("POST", f"{CARTS_PATH}/{cart_id}/complete", store)

        if data.get("type") == "cart":
            error = data.get("error") or {}
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise CartConflictError(message or "Failed to complete order")

        order_id = (data.get("order") or {}).get("id")
        if not order_id:
            raise CartServiceError(ERROR_ORDER_NOT_CREATED)
        logger.info("Order created: %s", sanitize_id_for_logging(order_id))
        return order_id

    async def get_order(self, order_id: str, store: StoreType = StoreType.ELECTRONICS) -> Optional[dict]:
        try:
            data = await self._request("GET", f"/store/orders/{order_id}", store)
        except CartServiceError:
            logger.error("Error fetching order %s", sanitize_id_for_logging(order_id), exc_info=True)
            return None
        return data.get("order")

    # ==================== CATALOG ====================

    async def list_regions(self, store: StoreType = StoreType.ELECTRONICS) -> list[dict]:
        data = await self._request("GET", "/store/regions", store)
        return data.get("regions") or []

    async def list_products(self, store: StoreType, region_id: str, limit: int = 100) -> list[dict]:
        data = await self._request(
            "GET",
            "/store/products",
            store,
            params={
                "limit": limit,
                "region_id": region_id,
                "fields": "*variants,*variants.prices,*variants.calculated_price,*images,*categories",
            },
        )
        return data.get("products") or []

    async def get_product(self, product_id: str, store: StoreType) -> Optional[dict]:
        data = await self._request(
            "GET",
            f"/store/products/{product_id}",
            store,
            params={"fields": "+variants,+variants.prices,+images,+categories"},
        )
        return data.get("product")

    async def aclose(self) -> None:
        """Close http client if created."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
