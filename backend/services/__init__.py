# Services package - Consolidated imports only
from .categories import CategoryService
from .products import ProductService
from .promotions import PromotionEngine, PromotionService, CouponValidationResult

__all__ = [
    "CategoryService",
    "ProductService",
    "PromotionEngine",
    "PromotionService",
    "CouponValidationResult",
]
