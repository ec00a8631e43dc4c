"""API routers."""
from .cart import router as cart_router
from .payments import router as payments_router

__all__ = ["cart_router", "payments_router"]
