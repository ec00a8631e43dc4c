"""Domain services."""
from .wishlist import WishlistService

__all__ = ["WishlistService"]
