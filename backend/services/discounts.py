"""
Discount calculation for promotions.

Everything here is pure: functions take a promotion (ORM row or any object with
the same attributes) and a cart snapshot and never touch storage, so the
engine can evaluate the same input repeatedly with the same result.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from core.logging_config import get_logger
from schemas.promotion import (
    Cart,
    CartItem,
    DiscountType,
    PromotionConditions,
    PromotionType,
)

logger = get_logger(__name__)

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0")

# Promotions whose subtotal is restricted to the matching lines
LINE_SCOPED_TYPES = (PromotionType.PRODUCT_DISCOUNT, PromotionType.CONDITIONAL_DISCOUNT)


def to_decimal(value: Any) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def conditions_of(promotion) -> PromotionConditions:
    conditions = promotion.conditions
    if isinstance(conditions, PromotionConditions):
        return conditions
    return PromotionConditions.model_validate(conditions or {})


@dataclass(frozen=True)
class FreeUnit:
    product_id: str
    unit_price: Decimal
    quantity: int


class DiscountCalculationResult:
    """Result of evaluating one promotion against one cart"""

    def __init__(
        self,
        discount_amount: Decimal,
        eligible_subtotal: Decimal,
        discount_type: str,
        promotion_type: str,
        free_shipping: bool = False,
        free_units: Optional[List[FreeUnit]] = None,
    ):
        self.discount_amount = discount_amount
        self.eligible_subtotal = eligible_subtotal
        self.discount_type = discount_type
        self.promotion_type = promotion_type
        self.free_shipping = free_shipping
        self.free_units = free_units or []

    @property
    def is_beneficial(self) -> bool:
        return self.discount_amount > ZERO or self.free_shipping

    def to_dict(self) -> Dict[str, Any]:
        return {
            "discount_amount": float(self.discount_amount),
            "eligible_subtotal": float(self.eligible_subtotal),
            "discount_type": self.discount_type,
            "promotion_type": self.promotion_type,
            "free_shipping": self.free_shipping,
            "free_units": [
                {
                    "product_id": unit.product_id,
                    "unit_price": float(unit.unit_price),
                    "quantity": unit.quantity,
                }
                for unit in self.free_units
            ],
        }


def line_total(line: CartItem) -> Decimal:
    return to_decimal(line.unit_price) * line.quantity


def cart_subtotal(cart: Cart) -> Decimal:
    return sum((line_total(line) for line in cart.items), ZERO)


def cart_quantity(cart: Cart) -> int:
    return sum(line.quantity for line in cart.items)


def line_matches(conditions: PromotionConditions, line: CartItem) -> bool:
    """Whether a cart line falls inside a promotion's product/category target set."""
    product_id = str(line.product_id)
    if product_id in conditions.excluded_products:
        return False
    if not conditions.has_target:
        return True
    if product_id in conditions.applicable_products:
        return True
    return line.category_id is not None and str(line.category_id) in conditions.applicable_categories


def eligible_lines(promotion, cart: Cart) -> List[CartItem]:
    if PromotionType(promotion.promotion_type) in LINE_SCOPED_TYPES:
        conditions = conditions_of(promotion)
        return [line for line in cart.items if line_matches(conditions, line)]
    return list(cart.items)


def select_free_units(lines: List[CartItem], buy_quantity: int, get_quantity: int) -> List[FreeUnit]:
    """
    Pick the units given away by a buy-X-get-Y offer.

    Every complete group of ``buy_quantity + get_quantity`` units earns
    ``get_quantity`` free units. Free units are taken cheapest first; equal
    prices keep cart order, so the same cart always yields the same units.
    """
    group_size = buy_quantity + get_quantity
    total_units = sum(line.quantity for line in lines)
    remaining = (total_units // group_size) * get_quantity

    free_units = []
    ordered = sorted(enumerate(lines), key=lambda pair: (to_decimal(pair[1].unit_price), pair[0]))
    for _, line in ordered:
        if remaining <= 0:
            break
        taken = min(line.quantity, remaining)
        free_units.append(FreeUnit(str(line.product_id), to_decimal(line.unit_price), taken))
        remaining -= taken
    return free_units


def compute_discount(promotion, cart: Cart) -> DiscountCalculationResult:
    """
    Compute what a promotion takes off a cart.

    PERCENTAGE and FIXED_AMOUNT are capped at the eligible subtotal (and at
    ``conditions.max_discount`` when set). FREE_SHIPPING yields no currency
    amount, only the ``free_shipping`` flag. BUY_X_GET_Y discounts the free
    units by ``discount_value`` percent.
    """
    conditions = conditions_of(promotion)
    discount_type = DiscountType(promotion.discount_type)
    lines = eligible_lines(promotion, cart)
    subtotal = sum((line_total(line) for line in lines), ZERO)
    value = to_decimal(promotion.discount_value)

    free_shipping = False
    free_units: List[FreeUnit] = []

    if discount_type == DiscountType.PERCENTAGE:
        amount = subtotal * value / HUNDRED
    elif discount_type == DiscountType.FIXED_AMOUNT:
        amount = min(value, subtotal)
    elif discount_type == DiscountType.FREE_SHIPPING:
        amount = ZERO
        free_shipping = bool(lines)
    else:
        free_units = select_free_units(
            lines, conditions.buy_quantity or 1, conditions.get_quantity or 1
        )
        free_value = sum((unit.unit_price * unit.quantity for unit in free_units), ZERO)
        amount = free_value * (value or HUNDRED) / HUNDRED

    if conditions.max_discount is not None:
        amount = min(amount, to_decimal(conditions.max_discount))

    amount = quantize(max(ZERO, min(amount, subtotal)))

    return DiscountCalculationResult(
        discount_amount=amount,
        eligible_subtotal=quantize(subtotal),
        discount_type=discount_type.value,
        promotion_type=PromotionType(promotion.promotion_type).value,
        free_shipping=free_shipping,
        free_units=free_units,
    )


def availability_problem(promotion, now: datetime, check_active: bool = True) -> Optional[str]:
    """Return why a promotion cannot be used at ``now``, or None when it can."""
    if check_active and not promotion.is_active:
        return "inactive"
    if as_utc(promotion.start_date) > now:
        return "not_started"
    if as_utc(promotion.end_date) < now:
        return "expired"
    if promotion.usage_limit is not None and (promotion.used_count or 0) >= promotion.usage_limit:
        return "exhausted"
    return None


def is_available(promotion, now: datetime) -> bool:
    return availability_problem(promotion, now) is None


def normalized_discount_value(
    promotion,
    reference_order_value: Decimal,
    shipping_fee: Decimal,
) -> Decimal:
    """
    Express a promotion as an approximate percentage so different discount
    types can be ranked against each other.

    This is a display heuristic. Fixed amounts and free shipping are divided
    by a configured reference order value; the real benefit depends on the
    actual cart.
    """
    discount_type = DiscountType(promotion.discount_type)
    value = to_decimal(promotion.discount_value)
    reference = to_decimal(reference_order_value)

    if discount_type == DiscountType.PERCENTAGE:
        return value
    if discount_type == DiscountType.BUY_X_GET_Y:
        conditions = conditions_of(promotion)
        buy = conditions.buy_quantity or 1
        get = conditions.get_quantity or 1
        return (value or HUNDRED) * get / (buy + get)

    if reference <= ZERO:
        return ZERO
    if discount_type == DiscountType.FIXED_AMOUNT:
        return value / reference * HUNDRED
    return to_decimal(shipping_fee) / reference * HUNDRED
