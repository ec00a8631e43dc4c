"""
Cart API Router

Identity comes from the optional X-Customer-Id header: without it the
request operates on the guest cart in local storage.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from storefront.cart.service import Authenticated, CartResult, Identity
from storefront.config import StoreType
from storefront.context import StorefrontContext
from storefront.logging import get_logger

from .deps import get_context, get_identity
from .models import AddItemRequest, CartResponse, UpdateItemRequest

logger = get_logger(__name__)

router = APIRouter(prefix="/api/cart", tags=["cart"])


def _respond(ctx: StorefrontContext, result: CartResult) -> CartResponse:
    return CartResponse.build(result, ctx.cart.totals(result.items))


@router.get("")
async def get_cart(
    ctx: StorefrontContext = Depends(get_context),
    identity: Identity = Depends(get_identity),
) -> CartResponse:
    """Current cart; signed-in customers get the remote cart restored."""
    restore = ctx.cart.get_cart_id() or ctx.cart.local_store.has_unsynced_changes()
    if isinstance(identity, Authenticated) and restore:
        lines = await ctx.cart.load_cart_from_database(identity.customer_id)
        return _respond(ctx, CartResult(items=lines))
    return _respond(ctx, CartResult(items=ctx.cart.get_cart()))


@router.post("/items")
async def add_item(
    request: AddItemRequest,
    ctx: StorefrontContext = Depends(get_context),
    identity: Identity = Depends(get_identity),
) -> CartResponse:
    product = await ctx.catalog.fetch_product(request.product_id, request.store)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    result = await ctx.cart.add_item(product, request.quantity, identity)
    return _respond(ctx, result)


@router.patch("/items")
async def update_item(
    request: UpdateItemRequest,
    ctx: StorefrontContext = Depends(get_context),
    identity: Identity = Depends(get_identity),
) -> CartResponse:
    result = await ctx.cart.update_quantity(request.product_id, request.quantity, identity, request.store)
    return _respond(ctx, result)


@router.delete("/items/{product_id}")
async def remove_item(
    product_id: str,
    store: Optional[StoreType] = None,
    ctx: StorefrontContext = Depends(get_context),
    identity: Identity = Depends(get_identity),
) -> CartResponse:
    result = await ctx.cart.remove_item(product_id, identity, store)
    return _respond(ctx, result)


@router.post("/sync")
async def sync_cart(
    ctx: StorefrontContext = Depends(get_context),
    identity: Identity = Depends(get_identity),
) -> CartResponse:
    """Merge the guest cart into the customer's remote cart (after login)."""
    if not isinstance(identity, Authenticated):
        raise HTTPException(status_code=401, detail="X-Customer-Id header required")
    lines = await ctx.cart.sync_local_cart_to_medusa(identity.customer_id)
    return _respond(ctx, CartResult(items=lines))


@router.get("/totals")
async def get_totals(ctx: StorefrontContext = Depends(get_context)) -> dict:
    return ctx.cart.totals().to_dict()
