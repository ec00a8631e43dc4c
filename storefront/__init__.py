"""Storefront data layer: product cache, cart sync and payment reconciliation."""

__version__ = "0.1.0"
