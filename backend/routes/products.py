from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_db
from core.utils.response import Response
from routes.categories import get_category_service
from schemas.product import ProductCreate, ProductResponse, ProductStatusUpdate
from services.categories import CategoryService
from services.products import ProductService

router = APIRouter(prefix="/api/v1/products", tags=["Products"])


def get_product_service(
    db: AsyncSession = Depends(get_db),
    categories: CategoryService = Depends(get_category_service),
) -> ProductService:
    return ProductService(db, categories)


@router.post("")
async def create_product(payload: ProductCreate, service: ProductService = Depends(get_product_service)):
    product = await service.create_product(payload)
    return Response(
        success=True,
        data=ProductResponse.model_validate(product),
        message="Product created successfully",
        status_code=status.HTTP_201_CREATED,
    )


@router.get("/{product_id}")
async def get_product(product_id: UUID, service: ProductService = Depends(get_product_service)):
    product = await service.get_product(product_id)
    return Response(success=True, data=ProductResponse.model_validate(product))


@router.patch("/{product_id}/status")
async def set_product_status(
    product_id: UUID,
    payload: ProductStatusUpdate,
    service: ProductService = Depends(get_product_service),
):
    product = await service.set_product_active(product_id, payload.is_active)
    return Response(success=True, data=ProductResponse.model_validate(product))
