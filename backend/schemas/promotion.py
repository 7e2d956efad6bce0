import re
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

COUPON_CODE_PATTERN = re.compile(r"^[A-Z0-9]{4,20}$")


class PromotionType(str, Enum):
    PRODUCT_DISCOUNT = "PRODUCT_DISCOUNT"
    ORDER_DISCOUNT = "ORDER_DISCOUNT"
    CONDITIONAL_DISCOUNT = "CONDITIONAL_DISCOUNT"
    COUPON = "COUPON"


class DiscountType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"
    FREE_SHIPPING = "FREE_SHIPPING"
    BUY_X_GET_Y = "BUY_X_GET_Y"


def normalize_code(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip().upper()
    return value or None


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class PromotionConditions(BaseModel):
    """Eligibility rules of a promotion, stored as JSON on the promotion row."""
    min_order_value: float = Field(0, ge=0)
    min_quantity: int = Field(0, ge=0)
    max_discount: Optional[float] = Field(None, ge=0)
    applicable_products: List[str] = Field(default_factory=list)
    applicable_categories: List[str] = Field(default_factory=list)
    excluded_products: List[str] = Field(default_factory=list)
    buy_quantity: Optional[int] = Field(None, gt=0)
    get_quantity: Optional[int] = Field(None, gt=0)

    model_config = ConfigDict(extra="forbid")

    @field_validator("applicable_products", "applicable_categories", "excluded_products", mode="before")
    @classmethod
    def _ids_as_strings(cls, value):
        if value is None:
            return []
        return [str(v) for v in value]

    @property
    def has_target(self) -> bool:
        return bool(self.applicable_products or self.applicable_categories)


class PromotionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    code: Optional[str] = None
    promotion_type: PromotionType
    discount_type: DiscountType
    discount_value: float = Field(0, ge=0)
    conditions: PromotionConditions = Field(default_factory=PromotionConditions)
    start_date: datetime
    end_date: datetime
    is_active: bool = True
    priority: int = 0
    usage_limit: Optional[int] = Field(None, ge=0)

    @field_validator("code", mode="before")
    @classmethod
    def _normalize_code(cls, value):
        return normalize_code(value)

    @field_validator("code")
    @classmethod
    def _check_code(cls, value):
        if value is not None and not COUPON_CODE_PATTERN.match(value):
            raise ValueError("Code must be 4-20 upper-case letters or digits")
        return value

    @field_validator("start_date", "end_date")
    @classmethod
    def _utc_dates(cls, value: datetime) -> datetime:
        return _ensure_utc(value)

    @model_validator(mode="after")
    def _check_rules(self):
        if self.promotion_type == PromotionType.COUPON and not self.code:
            raise ValueError("Coupon promotions require a code")
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")

        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError("Percentage discount cannot exceed 100")

        if self.discount_type == DiscountType.BUY_X_GET_Y:
            if not self.conditions.buy_quantity or not self.conditions.get_quantity:
                raise ValueError("Buy X get Y requires positive buy_quantity and get_quantity")
            # discount_value is the percent taken off each free unit
            if self.discount_value == 0:
                self.discount_value = 100.0
            elif self.discount_value > 100:
                raise ValueError("Buy X get Y discount cannot exceed 100 percent")
        return self


class PromotionUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    code: Optional[str] = None
    promotion_type: Optional[PromotionType] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[float] = Field(None, ge=0)
    conditions: Optional[PromotionConditions] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: Optional[bool] = None
    priority: Optional[int] = None
    usage_limit: Optional[int] = Field(None, ge=0)


class PromotionResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    code: Optional[str] = None
    promotion_type: PromotionType
    discount_type: DiscountType
    discount_value: float
    conditions: PromotionConditions
    start_date: datetime
    end_date: datetime
    is_active: bool
    priority: int = 0
    usage_limit: Optional[int] = None
    used_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("conditions", mode="before")
    @classmethod
    def _conditions_from_json(cls, value):
        return value or {}


class CartItem(BaseModel):
    product_id: UUID
    category_id: Optional[UUID] = None
    unit_price: Decimal = Field(..., ge=0)
    quantity: int = Field(..., ge=1)


class Cart(BaseModel):
    """Cart snapshot supplied by the caller; never persisted here."""
    items: List[CartItem] = Field(default_factory=list)
    shipping_fee: Optional[Decimal] = Field(None, ge=0)


class CouponValidationRequest(BaseModel):
    code: str = Field(..., min_length=1)
    cart: Cart
