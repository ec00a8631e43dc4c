"""
Repository Pattern for Database Operations

- CustomerRepository: customer profile, order history
- OrderRepository: paid order records
"""
from .customer_repo import CustomerRepository
from .order_repo import OrderRepository

__all__ = [
    "CustomerRepository",
    "OrderRepository",
]
