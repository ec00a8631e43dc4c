"""
Storefront API - FastAPI application.

Thin HTTP surface over the cart engine and payment reconciliation.
"""
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI

from storefront.config import Settings, get_settings
from storefront.logging import get_logger
from storefront.routers import cart_router, payments_router
from storefront.routers.deps import shutdown_context

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if not settings.is_configured():
        logger.warning("Commerce backend keys not fully configured")
    yield
    await shutdown_context()


app = FastAPI(title="Storefront API", lifespan=lifespan)
app.include_router(cart_router)
app.include_router(payments_router)


@app.get("/api/health")
async def health_check(settings: Settings = Depends(get_settings)):
    return {"status": "ok", "config": settings.config_status()}
