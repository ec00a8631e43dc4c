"""
Shared Dependencies for Routers

The process-wide StorefrontContext is built lazily on first use. Tests
override `get_context` through `app.dependency_overrides`.
"""

from typing import Optional

from fastapi import Header

from storefront.cart.service import Identity, identity_for
from storefront.config import get_settings
from storefront.context import StorefrontContext

# ==================== LAZY SINGLETONS ====================

_context: Optional[StorefrontContext] = None


def get_context() -> StorefrontContext:
    """Get or create the StorefrontContext singleton"""
    global _context
    if _context is None:
        _context = StorefrontContext.create(get_settings())
    return _context


def get_identity(x_customer_id: Optional[str] = Header(default=None)) -> Identity:
    """Guest unless the caller sends X-Customer-Id."""
    return identity_for((x_customer_id or "").strip() or None)


# ==================== SHUTDOWN HELPERS ====================

async def shutdown_context() -> None:
    """Close the singleton's HTTP client."""
    global _context
    if _context is not None:
        await _context.aclose()
        _context = None
