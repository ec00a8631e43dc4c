"""
Payment API Router

Landing endpoints for provider redirects. Every query parameter of the
success redirect is forwarded to reconciliation unchanged.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from storefront.cart.service import Authenticated, Identity
from storefront.context import StorefrontContext

from .deps import get_context, get_identity

router = APIRouter(prefix="/api/payment", tags=["payments"])


@router.get("/success")
async def payment_success(
    request: Request,
    ctx: StorefrontContext = Depends(get_context),
    identity: Identity = Depends(get_identity),
) -> dict:
    customer_id = identity.customer_id if isinstance(identity, Authenticated) else None
    result = await ctx.reconciler.reconcile(dict(request.query_params), customer_id=customer_id)
    return result.to_dict()


@router.get("/cancelled")
async def payment_cancelled(
    order_id: Optional[str] = None,
    ctx: StorefrontContext = Depends(get_context),
) -> dict:
    return ctx.reconciler.cancel(order_id).to_dict()
