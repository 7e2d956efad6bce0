# Consolidated route imports
from .categories import router as categories_router
from .products import router as products_router
from .promotions import router as promotions_router

__all__ = [
    "categories_router",
    "products_router",
    "promotions_router",
]
