"""
Promotion administration and evaluation.

PromotionService owns the CRUD lifecycle of promotion rows. PromotionEngine
answers read-only questions against them: which promotions are usable now,
which apply to a product, whether a coupon fits a cart and what it is worth.
The engine never records usage; that belongs to order placement.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import (
    ConditionNotMetException,
    ConflictException,
    ExpiredException,
    NotFoundException,
    ValidationException,
)
from core.logging_config import get_logger
from core.store import SQLAlchemyStore
from core.utils.ids import to_uuid
from models.product import Product
from models.promotion import Promotion
from schemas.promotion import (
    Cart,
    DiscountType,
    PromotionCreate,
    PromotionResponse,
    PromotionType,
    PromotionUpdate,
    normalize_code,
)
from services import discounts
from services.discounts import (
    DiscountCalculationResult,
    LINE_SCOPED_TYPES,
    ZERO,
    as_utc,
    availability_problem,
    cart_quantity,
    cart_subtotal,
    conditions_of,
    is_available,
    normalized_discount_value,
    to_decimal,
)

logger = get_logger(__name__)

LISTING_ORDER = ["-priority", "-created_at"]

_EXPIRY_MESSAGES = {
    "not_started": "Coupon is not valid yet",
    "expired": "Coupon has expired",
    "exhausted": "Coupon usage limit has been reached",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _validation_errors(error: ValidationError) -> Dict[str, str]:
    return {
        ".".join(str(part) for part in err["loc"]) or "promotion": err["msg"]
        for err in error.errors(include_url=False)
    }


def _to_row(data: PromotionCreate) -> Dict[str, Any]:
    row = data.model_dump()
    row["promotion_type"] = data.promotion_type.value
    row["discount_type"] = data.discount_type.value
    row["conditions"] = data.conditions.model_dump(mode="json")
    return row


class CouponValidationResult:
    """A coupon that passed validation, with what it takes off the cart"""

    def __init__(self, promotion: Promotion, result: DiscountCalculationResult, shipping_fee: Decimal):
        self.promotion = promotion
        self.result = result
        self.shipping_discount = shipping_fee if result.free_shipping else ZERO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "promotion": PromotionResponse.model_validate(self.promotion).model_dump(mode="json"),
            **self.result.to_dict(),
            "shipping_discount": float(self.shipping_discount),
        }


class PromotionService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.store = SQLAlchemyStore(db, Promotion)

    async def _ensure_code_free(self, code: Optional[str], exclude_id=None) -> None:
        if not code:
            return
        filt: Dict[str, Any] = {"code": code}
        if exclude_id is not None:
            filt["id"] = {"$ne": exclude_id}
        if await self.store.find_one(filt):
            raise ConflictException(f"Promotion code '{code}' already exists")

    async def create_promotion(self, data: PromotionCreate) -> Promotion:
        await self._ensure_code_free(data.code)
        promotion = await self.store.insert(_to_row(data))
        logger.info(f"Created promotion {promotion.id} ({promotion.promotion_type}/{promotion.discount_type})")
        return promotion

    async def get_promotion(self, promotion_id: Any) -> Promotion:
        promotion = await self.store.get(to_uuid(promotion_id, "promotion_id"))
        if promotion is None:
            raise NotFoundException("Promotion not found", resource="Promotion")
        return promotion

    async def list_promotions(
        self,
        is_active: Optional[bool] = None,
        promotion_type: Optional[Union[PromotionType, str]] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Promotion], int]:
        """Return one page of promotions and the total matching count."""
        filt: Dict[str, Any] = {}
        if is_active is not None:
            filt["is_active"] = is_active
        if promotion_type is not None:
            filt["promotion_type"] = PromotionType(promotion_type).value
        if search:
            filt["$or"] = [
                {"name": {"$contains": search}},
                {"code": {"$contains": search}},
                {"description": {"$contains": search}},
            ]

        page = max(page, 1)
        total = await self.store.count(filt)
        items = await self.store.find(filt, order_by=LISTING_ORDER, skip=(page - 1) * limit, limit=limit)
        return items, total

    async def update_promotion(self, promotion_id: Any, patch: PromotionUpdate) -> Promotion:
        promotion = await self.get_promotion(promotion_id)

        current = PromotionResponse.model_validate(promotion).model_dump(
            include=set(PromotionCreate.model_fields)
        )
        changes = patch.model_dump(exclude_unset=True)
        try:
            merged = PromotionCreate.model_validate({**current, **changes})
        except ValidationError as e:
            raise ValidationException("Invalid promotion update", errors=_validation_errors(e))

        if merged.code != promotion.code:
            await self._ensure_code_free(merged.code, exclude_id=promotion.id)

        updated = await self.store.update(promotion.id, _to_row(merged))
        logger.info(f"Updated promotion {updated.id}: {sorted(changes)}")
        return updated

    async def delete_promotion(self, promotion_id: Any) -> None:
        promotion = await self.get_promotion(promotion_id)
        if promotion.used_count:
            raise ConflictException(
                "Promotion has already been used and cannot be deleted; deactivate it instead"
            )
        await self.store.delete(promotion.id)
        logger.info(f"Deleted promotion {promotion_id}")

    async def toggle_status(self, promotion_id: Any) -> Promotion:
        promotion = await self.get_promotion(promotion_id)
        return await self.store.update(promotion.id, {"is_active": not promotion.is_active})

    async def deactivate_expired(self, now: Optional[datetime] = None) -> int:
        now = now or _utcnow()
        active = await self.store.find({"is_active": True})
        expired_ids = [p.id for p in active if as_utc(p.end_date) < now]
        for promotion_id in expired_ids:
            await self.store.update(promotion_id, {"is_active": False})
        if expired_ids:
            logger.info(f"Deactivated {len(expired_ids)} expired promotions")
        return len(expired_ids)


class PromotionEngine:
    def __init__(
        self,
        db: AsyncSession,
        reference_order_value: Union[Decimal, float, int] = 1000000,
        shipping_fee: Union[Decimal, float, int] = 30000,
    ):
        self.db = db
        self.store = SQLAlchemyStore(db, Promotion)
        self.products = SQLAlchemyStore(db, Product)
        self.reference_order_value = to_decimal(reference_order_value)
        self.shipping_fee = to_decimal(shipping_fee)

    def normalized_value(self, promotion: Promotion) -> Decimal:
        return normalized_discount_value(promotion, self.reference_order_value, self.shipping_fee)

    def _rank(self, promotion: Promotion):
        created = as_utc(promotion.created_at)
        return (
            -self.normalized_value(promotion),
            -(promotion.priority or 0),
            -to_decimal(promotion.discount_value),
            -(created.timestamp() if created else 0),
        )

    async def _available(self, now: datetime) -> List[Promotion]:
        active = await self.store.find({"is_active": True})
        return [p for p in active if is_available(p, now)]

    async def list_available(self, now: Optional[datetime] = None) -> List[Promotion]:
        """Promotions usable at ``now``, most valuable first."""
        return sorted(await self._available(now or _utcnow()), key=self._rank)

    async def promotions_for_product(self, product_id: Any, now: Optional[datetime] = None) -> List[Promotion]:
        product = await self.products.get(to_uuid(product_id, "product_id"))
        if product is None:
            raise NotFoundException("Product not found", resource="Product")

        product_key = str(product.id)
        category_key = str(product.category_id) if product.category_id else None

        matching = []
        for promotion in await self.list_available(now):
            if PromotionType(promotion.promotion_type) not in LINE_SCOPED_TYPES:
                continue
            conditions = conditions_of(promotion)
            if product_key in conditions.excluded_products:
                continue
            if product_key in conditions.applicable_products or category_key in conditions.applicable_categories:
                matching.append(promotion)
        return matching

    async def best_promotion_for(self, product_id: Any, now: Optional[datetime] = None) -> Optional[Promotion]:
        promotions = await self.promotions_for_product(product_id, now)
        return promotions[0] if promotions else None

    def compute_discount(self, promotion: Promotion, cart: Cart) -> DiscountCalculationResult:
        return discounts.compute_discount(promotion, cart)

    def _unmet_condition(self, promotion: Promotion, cart: Cart) -> Optional[Tuple[str, str]]:
        conditions = conditions_of(promotion)
        if cart_subtotal(cart) < to_decimal(conditions.min_order_value):
            return "min_order_value", f"Order total must be at least {conditions.min_order_value:,.0f}"
        if cart_quantity(cart) < conditions.min_quantity:
            return "min_quantity", f"Cart must contain at least {conditions.min_quantity} items"
        return None

    async def validate_coupon(
        self, code: str, cart: Cart, now: Optional[datetime] = None
    ) -> CouponValidationResult:
        now = now or _utcnow()
        normalized = normalize_code(code)
        if not normalized:
            raise ValidationException("Coupon code is required", errors={"code": "required"})

        promotion = await self.store.find_one({"code": normalized})
        if promotion is None:
            raise NotFoundException("Coupon not found", resource="Promotion")

        # Window and usage come first: deactivate_expired switches ended coupons off
        problem = availability_problem(promotion, now, check_active=False)
        if problem is not None:
            logger.info(f"Coupon {normalized} rejected: {problem}")
            raise ExpiredException(_EXPIRY_MESSAGES[problem])
        if not promotion.is_active:
            raise NotFoundException("Coupon not found", resource="Promotion")

        unmet = self._unmet_condition(promotion, cart)
        if unmet is not None:
            condition, message = unmet
            raise ConditionNotMetException(message, condition=condition)

        result = self.compute_discount(promotion, cart)
        shipping_fee = cart.shipping_fee if cart.shipping_fee is not None else self.shipping_fee
        return CouponValidationResult(promotion, result, to_decimal(shipping_fee))

    def _benefit(self, result: DiscountCalculationResult, cart: Cart) -> Decimal:
        shipping_fee = cart.shipping_fee if cart.shipping_fee is not None else self.shipping_fee
        return result.discount_amount + (to_decimal(shipping_fee) if result.free_shipping else ZERO)

    async def applicable_promotions(
        self, cart: Cart, now: Optional[datetime] = None
    ) -> List[Tuple[Promotion, DiscountCalculationResult]]:
        """Automatic (non-coupon) promotions that benefit ``cart``, best first."""
        candidates = []
        for promotion in await self.list_available(now):
            if promotion.promotion_type == PromotionType.COUPON.value:
                continue
            if self._unmet_condition(promotion, cart) is not None:
                continue
            result = self.compute_discount(promotion, cart)
            if result.is_beneficial:
                candidates.append((promotion, result))

        # list_available order breaks ties
        candidates.sort(key=lambda pair: self._benefit(pair[1], cart), reverse=True)
        return candidates

    async def select_optimal(
        self, cart: Cart, now: Optional[datetime] = None
    ) -> Optional[Tuple[Promotion, DiscountCalculationResult]]:
        candidates = await self.applicable_promotions(cart, now)
        return candidates[0] if candidates else None

    async def active_coupons(self, now: Optional[datetime] = None) -> Dict[str, List[Promotion]]:
        grouped: Dict[str, List[Promotion]] = {"free_shipping": [], "discount": []}
        for promotion in await self.list_available(now):
            if promotion.promotion_type != PromotionType.COUPON.value:
                continue
            if promotion.discount_type == DiscountType.FREE_SHIPPING.value:
                grouped["free_shipping"].append(promotion)
            else:
                grouped["discount"].append(promotion)
        return grouped
