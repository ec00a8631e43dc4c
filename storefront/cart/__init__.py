"""Cart package: models, local storage, remote client and sync engine."""
from .models import CartLine, Product, ProductSnapshot
from .remote import MedusaCartClient
from .service import (
    GUEST,
    Authenticated,
    CartManager,
    CartResult,
    CheckoutRequest,
    CheckoutResult,
    Guest,
    Identity,
    identity_for,
)
from .storage import FileStorage, LocalCartStore, LocalStorage, MemoryStorage, StorageKeys

__all__ = [
    "CartLine",
    "Product",
    "ProductSnapshot",
    "MedusaCartClient",
    "CartManager",
    "CartResult",
    "CheckoutRequest",
    "CheckoutResult",
    "Guest",
    "Authenticated",
    "Identity",
    "GUEST",
    "identity_for",
    "LocalStorage",
    "MemoryStorage",
    "FileStorage",
    "LocalCartStore",
    "StorageKeys",
]
