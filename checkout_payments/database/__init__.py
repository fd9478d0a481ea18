"""Database package for the checkout payment service."""
from .connection import Database
from .errors import translate_storage_error
from .models import Base, Payment, Product

__all__ = [
    "Base",
    "Database",
    "Payment",
    "Product",
    "translate_storage_error",
]
