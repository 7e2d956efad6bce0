from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.database import get_db
from core.utils.response import Response
from schemas.category import CategoryCreate, CategoryResponse, CategoryUpdate
from services.categories import CategoryService

router = APIRouter(prefix="/api/v1/categories", tags=["Categories"])


def get_category_service(db: AsyncSession = Depends(get_db)) -> CategoryService:
    return CategoryService(
        db,
        name_max_length=settings.CATEGORY_NAME_MAX_LENGTH,
        description_max_length=settings.CATEGORY_DESCRIPTION_MAX_LENGTH,
        max_depth=settings.CATEGORY_TREE_MAX_DEPTH,
        slug_max_attempts=settings.SLUG_MAX_ATTEMPTS,
    )


def _out(category) -> CategoryResponse:
    return CategoryResponse.model_validate(category)


@router.get("")
async def list_categories(
    active_only: bool = Query(True),
    parent_id: Optional[UUID] = Query(None),
    service: CategoryService = Depends(get_category_service),
):
    categories = await service.list_categories(active_only=active_only, parent_id=parent_id)
    return Response(success=True, data=[_out(c) for c in categories])


@router.get("/tree")
async def get_category_tree(
    root_id: Optional[UUID] = Query(None),
    include_inactive: bool = Query(False),
    service: CategoryService = Depends(get_category_service),
):
    tree = await service.get_tree(root_id=root_id, include_inactive=include_inactive)
    return Response(success=True, data=tree)


@router.get("/featured")
async def get_featured_categories(service: CategoryService = Depends(get_category_service)):
    categories = await service.get_featured_categories()
    return Response(success=True, data=[_out(c) for c in categories])


@router.get("/slug/{slug}")
async def get_category_by_slug(slug: str, service: CategoryService = Depends(get_category_service)):
    category = await service.get_category_by_slug(slug)
    return Response(success=True, data=_out(category))


@router.get("/{category_id}")
async def get_category(category_id: UUID, service: CategoryService = Depends(get_category_service)):
    category = await service.get_category(category_id)
    return Response(success=True, data=_out(category))


@router.get("/{category_id}/ancestors")
async def get_category_ancestors(category_id: UUID, service: CategoryService = Depends(get_category_service)):
    """Breadcrumb chain, root first."""
    ancestors = await service.get_ancestors(category_id)
    return Response(success=True, data=[_out(c) for c in ancestors])


@router.get("/{category_id}/descendants")
async def get_category_descendants(category_id: UUID, service: CategoryService = Depends(get_category_service)):
    descendants = await service.get_descendants(category_id)
    return Response(success=True, data=[_out(c) for c in descendants])


@router.post("")
async def create_category(payload: CategoryCreate, service: CategoryService = Depends(get_category_service)):
    attrs = payload.model_dump(exclude={"name", "parent_id"})
    category = await service.create_category(payload.name, parent_id=payload.parent_id, **attrs)
    return Response(
        success=True,
        data=_out(category),
        message="Category created successfully",
        status_code=status.HTTP_201_CREATED,
    )


@router.put("/{category_id}")
async def update_category(
    category_id: UUID,
    payload: CategoryUpdate,
    service: CategoryService = Depends(get_category_service),
):
    category = await service.update_category(category_id, payload.model_dump(exclude_unset=True))
    return Response(success=True, data=_out(category), message="Category updated successfully")


@router.delete("/{category_id}")
async def delete_category(category_id: UUID, service: CategoryService = Depends(get_category_service)):
    category = await service.delete_category(category_id)
    return Response(success=True, data=_out(category), message="Category deleted successfully")


@router.patch("/{category_id}/toggle")
async def toggle_category(category_id: UUID, service: CategoryService = Depends(get_category_service)):
    category = await service.toggle_active(category_id)
    state = "activated" if category.is_active else "deactivated"
    return Response(success=True, data=_out(category), message=f"Category {state}")


@router.post("/{category_id}/product-count")
async def recompute_product_count(category_id: UUID, service: CategoryService = Depends(get_category_service)):
    count = await service.recompute_product_count(category_id)
    return Response(success=True, data={"category_id": category_id, "product_count": count})
