"""Cart synchronization engine.

Decides whether a cart operation targets the device-local store (guest)
or the remote cart (signed-in customer), merges a guest cart into a
remote cart at login, and falls back to local state when the remote side
fails. Failures never escape as exceptions; every operation returns a
CartResult carrying the resulting lines and an optional user-facing
error.

A local fallback marks the mirror as unsynced. The next remote operation
(or reload) pushes the mirror into a fresh remote cart before doing
anything else, so a change saved on the device is never overwritten by
an older remote cart.

Operations on the same cart are expected to be issued sequentially by
the caller. Two concurrent remote adds of the same product race at the
commerce API and the last response wins the local mirror.
"""
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Union

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_none

from storefront.config import Settings, StoreType
from storefront.errors import (
    ERROR_CART_SYNC_FAILED,
    ERROR_INVALID_QUANTITY,
    ERROR_LINES_NOT_SYNCED,
    ERROR_NO_ACTIVE_CART,
    ERROR_SESSION_EXPIRED,
    CartConflictError,
    CartNotFoundError,
    CartServiceError,
    TransientCartError,
    UnauthenticatedError,
)
from storefront.logging import get_logger, sanitize_id_for_logging
from storefront.money import CartTotals, calculate_totals
from .models import CartLine, Product, remove_line, set_line_quantity, upsert_line
from .remote import MedusaCartClient
from .storage import LocalCartStore

logger = get_logger(__name__)

# One initial attempt plus exactly one retry
REMOTE_ATTEMPTS = 2


@dataclass(frozen=True)
class Guest:
    """No signed-in customer; the local store owns the cart."""


@dataclass(frozen=True)
class Authenticated:
    """Signed-in customer; the remote cart owns the cart."""
    customer_id: str


Identity = Union[Guest, Authenticated]
GUEST = Guest()


def identity_for(customer_id: Optional[str]) -> Identity:
    return Authenticated(customer_id) if customer_id else GUEST


@dataclass
class CartResult:
    """Outcome of a cart operation."""
    items: List[CartLine] = field(default_factory=list)
    error: Optional[str] = None
    fallback: bool = False  # applied to local storage after a remote failure

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class MergeOutcome:
    """Result of pushing the local mirror into a new remote cart."""
    lines: List[CartLine]
    merged: bool
    skipped: List[str] = field(default_factory=list)  # product ids the remote rejected


@dataclass
class CheckoutRequest:
    email: str
    shipping_address: Optional[dict] = None
    payment_method: str = "manual"  # payfast | ozow | manual


@dataclass
class CheckoutResult:
    success: bool
    order_id: Optional[str] = None
    error: Optional[str] = None


LocalMutation = Callable[[List[CartLine]], List[CartLine]]
RemoteMutation = Callable[[str], Awaitable[List[CartLine]]]


def _is_quantity(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class CartManager:
    """
    Keeps the cart consistent between local storage and the remote cart.

    Features:
    - Guest operations are local only and never touch the network
    - Each line is written on its own store channel
    - Stale CartIds are invalidated and recreated once per operation
    - Transient failures are retried once, then applied locally
    - Lines saved locally after a failure are pushed before the next remote write
    - Login merges the guest cart into a fresh customer cart
    """

    def __init__(
        self,
        local_store: LocalCartStore,
        remote: MedusaCartClient,
        settings: Settings,
        store_type: StoreType = StoreType.ELECTRONICS,
    ):
        self.local_store = local_store
        self.remote = remote
        self.settings = settings
        # Channel for cart-level calls (create, fetch, complete)
        self.store_type = store_type

    # ==================== READS ====================

    def get_cart(self) -> List[CartLine]:
        """Current mirrored lines (for instant rendering)."""
        return self.local_store.get_local_cart()

    def get_cart_id(self) -> Optional[str]:
        return self.local_store.get_cart_id()

    def totals(self, lines: Optional[List[CartLine]] = None) -> CartTotals:
        return calculate_totals(
            self.get_cart() if lines is None else lines,
            self.settings.tax_rate,
            self.settings.free_shipping_threshold,
            self.settings.flat_shipping_fee,
        )

    def _line_store(self, product_id: str) -> StoreType:
        """Channel a mirrored line was written with; the manager's default otherwise."""
        for line in self.local_store.get_local_cart():
            if line.product_id == product_id:
                return line.store
        return self.store_type

    # ==================== MUTATIONS ====================

    async def add_item(self, product: Product, quantity: int, identity: Identity) -> CartResult:
        """Add `quantity` of `product`, merging with an existing line."""
        if not _is_quantity(quantity) or quantity < 1:
            return CartResult(items=self.get_cart(), error=ERROR_INVALID_QUANTITY)

        line = product.to_line(quantity)

        def local(lines: List[CartLine]) -> List[CartLine]:
            return upsert_line(lines, line)

        if isinstance(identity, Guest):
            return self._apply_local(local)

        return await self._apply_remote(
            identity,
            "add_item",
            lambda cart_id: self.remote.add_line(cart_id, line.product_id, quantity, line.store),
            local,
        )

    async def update_quantity(
        self,
        product_id: str,
        quantity: int,
        identity: Identity,
        store: Optional[StoreType] = None,
    ) -> CartResult:
        """Set a line's quantity; quantity <= 0 is a removal."""
        if not _is_quantity(quantity):
            return CartResult(items=self.get_cart(), error=ERROR_INVALID_QUANTITY)
        if quantity <= 0:
            return await self.remove_item(product_id, identity, store)

        def local(lines: List[CartLine]) -> List[CartLine]:
            return set_line_quantity(lines, product_id, quantity)

        if isinstance(identity, Guest):
            return self._apply_local(local)

        channel = store or self._line_store(product_id)

        async def remote(cart_id: str) -> List[CartLine]:
            lines = await self.remote.update_line_quantity(cart_id, product_id, quantity, channel)
            if any(line.product_id == product_id for line in lines):
                return lines
            # Not on the remote cart (e.g. freshly recreated): setting q means adding q
            return await self.remote.add_line(cart_id, product_id, quantity, channel)

        return await self._apply_remote(identity, "update_quantity", remote, local)

    async def remove_item(
        self,
        product_id: str,
        identity: Identity,
        store: Optional[StoreType] = None,
    ) -> CartResult:
        def local(lines: List[CartLine]) -> List[CartLine]:
            return remove_line(lines, product_id)

        if isinstance(identity, Guest):
            return self._apply_local(local)

        channel = store or self._line_store(product_id)
        return await self._apply_remote(
            identity,
            "remove_item",
            lambda cart_id: self.remote.remove_line(cart_id, product_id, channel),
            local,
        )

    def clear(self) -> None:
        """Forget the cart lines and CartId on this device."""
        self.local_store.clear_cart()

    def on_logout(self) -> None:
        """Drop everything tied to the signed-in identity."""
        self.local_store.clear_cart()
        self.local_store.clear_auth_token()

    def _apply_local(self, mutate: LocalMutation) -> CartResult:
        lines = mutate(self.local_store.get_local_cart())
        self.local_store.save_local_cart(lines)
        return CartResult(items=lines)

    def _fallback(self, mutate: LocalMutation, error: str) -> CartResult:
        result = self._apply_local(mutate)
        self.local_store.mark_unsynced()
        result.error = error
        result.fallback = True
        return result

    def _needs_push(self) -> bool:
        if self.local_store.has_unsynced_changes():
            return True
        return self.local_store.get_cart_id() is None and bool(self.local_store.get_local_cart())

    async def _apply_remote(
        self,
        identity: Authenticated,
        operation: str,
        remote_mutation: RemoteMutation,
        local_mutation: LocalMutation,
    ) -> CartResult:
        skipped: List[str] = []
        try:
            if self._needs_push():
                # Lines exist only on this device (earlier fallback); push them first
                outcome = await self._merge_local_cart(identity.customer_id)
                if not outcome.merged:
                    raise CartServiceError("Local cart could not be merged")
                skipped = outcome.skipped
            lines = await self._run_remote(identity, operation, remote_mutation)
            return CartResult(items=lines, error=ERROR_LINES_NOT_SYNCED if skipped else None)
        except CartConflictError as e:
            logger.warning("%s rejected by commerce API: %s", operation, e.message)
            return CartResult(items=self.local_store.get_local_cart(), error=e.message)
        except UnauthenticatedError:
            logger.warning("%s: session rejected, applying locally", operation)
            return self._fallback(local_mutation, ERROR_SESSION_EXPIRED)
        except Exception:
            logger.error("%s failed remotely, applying locally", operation, exc_info=True)
            return self._fallback(local_mutation, ERROR_CART_SYNC_FAILED)

    async def _run_remote(
        self,
        identity: Authenticated,
        operation: str,
        remote_mutation: RemoteMutation,
    ) -> List[CartLine]:
        """get-or-create + mutate, retried once on a stale cart or transient failure."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(REMOTE_ATTEMPTS),
            wait=wait_none(),
            retry=retry_if_exception_type((CartNotFoundError, TransientCartError)),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                cart_id = await self.remote.get_or_create_cart(self.store_type, identity.customer_id)
                try:
                    return await remote_mutation(cart_id)
                except CartNotFoundError:
                    logger.info(
                        "%s: cart %s is stale, recreating",
                        operation,
                        sanitize_id_for_logging(cart_id),
                    )
                    self.local_store.clear_cart_id()
                    raise
        raise CartServiceError(f"{operation} exhausted retries")

    # ==================== SESSION TRANSITIONS ====================

    async def sync_local_cart_to_medusa(self, customer_id: str) -> List[CartLine]:
        """
        Merge the device-local cart into a fresh remote cart at login.

        Any remembered CartId is discarded first: it cannot be trusted to
        belong to this identity. Lines are replayed in order, each on its
        own store channel; a failed line is logged and skipped. The remote
        result then replaces the local mirror. If the remote cart cannot be
        created, or no line could be replayed, the local lines are returned
        untouched.
        """
        outcome = await self._merge_local_cart(customer_id)
        return outcome.lines

    async def _merge_local_cart(self, customer_id: str) -> MergeOutcome:
        local_lines = self.local_store.get_local_cart()
        self.local_store.clear_cart_id()
        if not local_lines:
            self.local_store.clear_unsynced()
            return MergeOutcome(lines=[], merged=True)

        logger.info(
            "Syncing %s local lines for customer %s",
            len(local_lines),
            sanitize_id_for_logging(customer_id),
        )
        try:
            cart_id = await self.remote.create_cart(self.store_type, customer_id)
        except Exception:
            logger.error("Error syncing cart: remote cart creation failed", exc_info=True)
            return MergeOutcome(lines=local_lines, merged=False)

        synced: Optional[List[CartLine]] = None
        skipped: List[str] = []
        for line in local_lines:
            try:
                synced = await self.remote.add_line(cart_id, line.product_id, line.quantity, line.store)
            except Exception as e:
                skipped.append(line.product_id)
                logger.warning(
                    "Could not sync line %s: %s",
                    sanitize_id_for_logging(line.product_id),
                    type(e).__name__,
                )

        if synced is None:
            logger.error("No lines could be synced; keeping local cart")
            # Local storage stays authoritative until a merge succeeds
            self.local_store.clear_cart_id()
            self.local_store.save_local_cart(local_lines)
            return MergeOutcome(lines=local_lines, merged=False, skipped=skipped)

        try:
            cart = await self.remote.get_raw_cart(cart_id, self.store_type)
            synced = self.remote.lines_from_cart(cart)
        except CartServiceError:
            logger.warning("Final cart fetch failed, using last mutation result")

        self.local_store.save_local_cart(synced)
        self.local_store.clear_unsynced()
        return MergeOutcome(lines=synced, merged=True, skipped=skipped)

    async def load_cart_from_database(self, customer_id: str) -> List[CartLine]:
        """
        Restore the remote cart on reload. Never creates a cart: with no
        remembered CartId the customer is assumed to have none yet.

        An unsynced mirror is pushed first instead of being overwritten.
        """
        if self.local_store.has_unsynced_changes():
            logger.info("Pushing unsynced lines for customer %s", sanitize_id_for_logging(customer_id))
            outcome = await self._merge_local_cart(customer_id)
            return outcome.lines

        cart_id = self.local_store.get_cart_id()
        if not cart_id:
            logger.info("No remembered cart for customer %s", sanitize_id_for_logging(customer_id))
            return []

        lines = await self.remote.fetch_cart(cart_id, self.store_type)
        self.local_store.save_local_cart(lines)
        return lines

    # ==================== CHECKOUT ====================

    async def complete_checkout(self, request: CheckoutRequest) -> CheckoutResult:
        """
        Complete the remote cart into an order.

        On success the CartId is terminal and the local cart is cleared.
        On failure the cart is preserved so the customer can retry. A
        mirror with unsynced changes is refused: completing the remote cart
        would charge for a cart the customer no longer sees.
        """
        cart_id = self.local_store.get_cart_id()
        if not cart_id:
            return CheckoutResult(success=False, error=ERROR_NO_ACTIVE_CART)
        if self.local_store.has_unsynced_changes():
            logger.warning("Checkout refused: cart %s has unsynced changes", sanitize_id_for_logging(cart_id))
            return CheckoutResult(success=False, error=ERROR_CART_SYNC_FAILED)

        logger.info("Completing cart %s", sanitize_id_for_logging(cart_id))
        try:
            await self.remote.update_cart(cart_id, request.email, request.shipping_address, self.store_type)
            await self.remote.create_payment_collection(cart_id, self.store_type)
            order_id = await self.remote.complete_cart(cart_id, self.store_type)
        except CartServiceError as e:
            logger.error("Cart completion failed: %s", e.message)
            return CheckoutResult(success=False, error=e.message)

        self.local_store.clear_cart()
        return CheckoutResult(success=True, order_id=order_id)
