# Models package - Consolidated imports only
from .category import Category
from .product import Product
from .promotion import Promotion

__all__ = [
    "Category",
    "Product",
    "Promotion",
]
