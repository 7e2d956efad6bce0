from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.database import get_db
from core.utils.response import Response, paginate
from schemas.promotion import (
    Cart,
    CouponValidationRequest,
    PromotionCreate,
    PromotionResponse,
    PromotionType,
    PromotionUpdate,
)
from services.promotions import PromotionEngine, PromotionService

router = APIRouter(prefix="/api/v1/promotions", tags=["Promotions"])


def get_promotion_service(db: AsyncSession = Depends(get_db)) -> PromotionService:
    return PromotionService(db)


def get_promotion_engine(db: AsyncSession = Depends(get_db)) -> PromotionEngine:
    return PromotionEngine(
        db,
        reference_order_value=settings.PROMOTION_REFERENCE_ORDER_VALUE,
        shipping_fee=settings.DEFAULT_SHIPPING_FEE,
    )


def _out(promotion) -> PromotionResponse:
    return PromotionResponse.model_validate(promotion)


@router.get("")
async def list_promotions(
    is_active: Optional[bool] = Query(None),
    promotion_type: Optional[PromotionType] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: PromotionService = Depends(get_promotion_service),
):
    promotions, total = await service.list_promotions(
        is_active=is_active,
        promotion_type=promotion_type,
        search=search,
        page=page,
        limit=limit,
    )
    return Response(
        success=True,
        data=[_out(p) for p in promotions],
        pagination=paginate(total, page, limit),
    )


@router.post("")
async def create_promotion(payload: PromotionCreate, service: PromotionService = Depends(get_promotion_service)):
    promotion = await service.create_promotion(payload)
    return Response(
        success=True,
        data=_out(promotion),
        message="Promotion created successfully",
        status_code=status.HTTP_201_CREATED,
    )


@router.get("/available")
async def list_available_promotions(engine: PromotionEngine = Depends(get_promotion_engine)):
    promotions = await engine.list_available()
    return Response(success=True, data=[_out(p) for p in promotions])


@router.get("/coupons/active")
async def list_active_coupons(engine: PromotionEngine = Depends(get_promotion_engine)):
    grouped = await engine.active_coupons()
    return Response(
        success=True,
        data={group: [_out(p) for p in promotions] for group, promotions in grouped.items()},
    )


@router.post("/validate-coupon")
async def validate_coupon(
    payload: CouponValidationRequest,
    engine: PromotionEngine = Depends(get_promotion_engine),
):
    """Check a coupon against a cart. Nothing is redeemed."""
    validation = await engine.validate_coupon(payload.code, payload.cart)
    return Response(success=True, data=validation.to_dict(), message="Coupon is valid")


@router.post("/best-for-cart")
async def best_promotion_for_cart(cart: Cart, engine: PromotionEngine = Depends(get_promotion_engine)):
    best = await engine.select_optimal(cart)
    if best is None:
        return Response(success=True, data=None, message="No promotion applies to this cart")

    promotion, result = best
    return Response(success=True, data={"promotion": _out(promotion), **result.to_dict()})


@router.get("/product/{product_id}")
async def promotions_for_product(product_id: UUID, engine: PromotionEngine = Depends(get_promotion_engine)):
    promotions = await engine.promotions_for_product(product_id)
    return Response(success=True, data=[_out(p) for p in promotions])


@router.get("/product/{product_id}/best")
async def best_promotion_for_product(product_id: UUID, engine: PromotionEngine = Depends(get_promotion_engine)):
    promotion = await engine.best_promotion_for(product_id)
    return Response(success=True, data=_out(promotion) if promotion else None)


@router.get("/{promotion_id}")
async def get_promotion(promotion_id: UUID, service: PromotionService = Depends(get_promotion_service)):
    promotion = await service.get_promotion(promotion_id)
    return Response(success=True, data=_out(promotion))


@router.put("/{promotion_id}")
async def update_promotion(
    promotion_id: UUID,
    payload: PromotionUpdate,
    service: PromotionService = Depends(get_promotion_service),
):
    promotion = await service.update_promotion(promotion_id, payload)
    return Response(success=True, data=_out(promotion), message="Promotion updated successfully")


@router.delete("/{promotion_id}")
async def delete_promotion(promotion_id: UUID, service: PromotionService = Depends(get_promotion_service)):
    await service.delete_promotion(promotion_id)
    return Response(success=True, message="Promotion deleted successfully")


@router.patch("/{promotion_id}/toggle")
async def toggle_promotion(promotion_id: UUID, service: PromotionService = Depends(get_promotion_service)):
    promotion = await service.toggle_status(promotion_id)
    state = "activated" if promotion.is_active else "deactivated"
    return Response(success=True, data=_out(promotion), message=f"Promotion {state}")
