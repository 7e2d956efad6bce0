from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import NotFoundException, ValidationException
from core.logging_config import get_logger
from core.store import SQLAlchemyStore
from core.utils.ids import to_uuid
from models.product import Product
from schemas.product import ProductCreate
from services.categories import CategoryService

logger = get_logger(__name__)


class ProductService:
    """Minimal product bookkeeping; keeps category product counts in step."""

    def __init__(self, db: AsyncSession, categories: CategoryService):
        self.db = db
        self.store = SQLAlchemyStore(db, Product)
        self.categories = categories

    async def create_product(self, data: ProductCreate) -> Product:
        category = await self.categories.store.get(data.category_id)
        if category is None:
            raise ValidationException("Category not found", errors={"category_id": "not found"})

        product = await self.store.insert(data.model_dump())
        if product.is_active:
            await self.categories.recompute_product_count(category.id)

        logger.info(f"Created product {product.id} in category {category.id}")
        return product

    async def get_product(self, product_id: Any) -> Product:
        product = await self.store.get(to_uuid(product_id, "product_id"))
        if product is None:
            raise NotFoundException("Product not found", resource="Product")
        return product

    async def set_product_active(self, product_id: Any, is_active: bool) -> Product:
        product = await self.get_product(product_id)
        if product.is_active == is_active:
            return product

        category_id = product.category_id
        product = await self.store.update(product.id, {"is_active": is_active})
        await self.categories.recompute_product_count(category_id)
        return product
