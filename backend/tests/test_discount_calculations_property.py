"""
Property-based tests for discount calculations
Property: a discount is never negative and never exceeds the eligible subtotal.
Property: the same promotion and cart always give the same result.
"""
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest
from hypothesis import given, settings, strategies as st
from hypothesis.strategies import composite

from conftest import cart_of
from schemas.promotion import Cart, CartItem, DiscountType, PromotionType
from services.discounts import (
    compute_discount,
    eligible_lines,
    normalized_discount_value,
    select_free_units,
)


def promotion(discount_type="PERCENTAGE", discount_value=10, promotion_type="ORDER_DISCOUNT", **conditions):
    """Promotion-shaped object; the calculator only reads attributes."""
    return SimpleNamespace(
        promotion_type=promotion_type,
        discount_type=discount_type,
        discount_value=discount_value,
        conditions=conditions,
    )


@composite
def carts(draw, max_lines=6):
    lines = draw(st.lists(
        st.tuples(
            st.decimals(min_value=0, max_value=5000000, places=2, allow_nan=False, allow_infinity=False),
            st.integers(min_value=1, max_value=10),
        ),
        min_size=0,
        max_size=max_lines,
    ))
    return Cart(items=[
        CartItem(product_id=uuid4(), unit_price=price, quantity=quantity) for price, quantity in lines
    ])


@composite
def promotions(draw):
    discount_type = draw(st.sampled_from(list(DiscountType)))
    conditions = {}
    if discount_type == DiscountType.PERCENTAGE:
        value = draw(st.floats(min_value=0, max_value=100))
    elif discount_type == DiscountType.FIXED_AMOUNT:
        value = draw(st.floats(min_value=0, max_value=10000000))
    elif discount_type == DiscountType.BUY_X_GET_Y:
        value = draw(st.floats(min_value=1, max_value=100))
        conditions["buy_quantity"] = draw(st.integers(min_value=1, max_value=4))
        conditions["get_quantity"] = draw(st.integers(min_value=1, max_value=3))
    else:
        value = 0
    if draw(st.booleans()):
        conditions["max_discount"] = draw(st.floats(min_value=0, max_value=1000000))
    return promotion(discount_type.value, value, draw(st.sampled_from(list(PromotionType))).value, **conditions)


class TestDiscountCalculationsProperty:
    @given(promotions(), carts())
    @settings(max_examples=200, deadline=None)
    def test_discount_bounded_by_subtotal(self, promo, cart):
        result = compute_discount(promo, cart)

        assert result.discount_amount >= Decimal("0")
        assert result.discount_amount <= result.eligible_subtotal
        assert result.discount_amount == result.discount_amount.quantize(Decimal("0.01"))
        max_discount = promo.conditions.get("max_discount")
        if max_discount is not None:
            assert result.discount_amount <= Decimal(str(max_discount)).quantize(Decimal("0.01"))

    @given(promotions(), carts())
    @settings(max_examples=100, deadline=None)
    def test_deterministic(self, promo, cart):
        assert compute_discount(promo, cart).to_dict() == compute_discount(promo, cart).to_dict()

    @given(carts(), st.integers(min_value=1, max_value=4), st.integers(min_value=1, max_value=3))
    @settings(max_examples=200, deadline=None)
    def test_free_units_are_the_cheapest(self, cart, buy, get):
        free_units = select_free_units(cart.items, buy, get)
        total_units = sum(line.quantity for line in cart.items)

        assert sum(unit.quantity for unit in free_units) == (total_units // (buy + get)) * get

        prices = sorted(line.unit_price for line in cart.items for _ in range(line.quantity))
        free_value = sum((unit.unit_price * unit.quantity for unit in free_units), Decimal("0"))
        cheapest = sum(prices[:sum(unit.quantity for unit in free_units)], Decimal("0"))
        assert free_value == cheapest


class TestDiscountExamples:
    def test_percentage(self):
        result = compute_discount(promotion("PERCENTAGE", 20), cart_of((10, 1)))
        assert result.discount_amount == Decimal("2.00")

    def test_percentage_respects_max_discount(self):
        result = compute_discount(promotion("PERCENTAGE", 50, max_discount=100000), cart_of((500000, 1)))
        assert result.discount_amount == Decimal("100000.00")

    def test_fixed_amount_capped_at_subtotal(self):
        result = compute_discount(promotion("FIXED_AMOUNT", 50000), cart_of((30000, 1)))
        assert result.discount_amount == Decimal("30000.00")

    def test_fixed_amount(self):
        result = compute_discount(promotion("FIXED_AMOUNT", 50000), cart_of((120000, 2)))
        assert result.discount_amount == Decimal("50000.00")

    def test_free_shipping(self):
        result = compute_discount(promotion("FREE_SHIPPING", 0), cart_of((120000, 1)))
        assert result.discount_amount == Decimal("0.00")
        assert result.free_shipping is True
        assert result.is_beneficial

    def test_free_shipping_on_empty_cart(self):
        result = compute_discount(promotion("FREE_SHIPPING", 0), cart_of())
        assert result.free_shipping is False
        assert not result.is_beneficial

    def test_buy_two_get_one(self):
        cart = cart_of((100000, 2), (60000, 1), (80000, 3))
        result = compute_discount(promotion("BUY_X_GET_Y", 100, buy_quantity=2, get_quantity=1), cart)

        # 6 units -> 2 free units: the 60000 one and one 80000
        assert result.discount_amount == Decimal("140000.00")
        assert [(u.unit_price, u.quantity) for u in result.free_units] == [
            (Decimal("60000"), 1), (Decimal("80000"), 1)
        ]

    def test_buy_one_get_one_half_price(self):
        result = compute_discount(
            promotion("BUY_X_GET_Y", 50, buy_quantity=1, get_quantity=1), cart_of((40000, 2))
        )
        assert result.discount_amount == Decimal("20000.00")

    def test_buy_x_get_y_tie_keeps_cart_order(self):
        first, second = uuid4(), uuid4()
        cart = cart_of((first, None, 50000, 1), (second, None, 50000, 1))
        result = compute_discount(promotion("BUY_X_GET_Y", 100, buy_quantity=1, get_quantity=1), cart)
        assert [u.product_id for u in result.free_units] == [str(first)]

    def test_rounding(self):
        result = compute_discount(promotion("PERCENTAGE", 33.333), cart_of((10, 1)))
        assert result.discount_amount == Decimal("3.33")


class TestEligibleLines:
    def test_product_discount_only_counts_targeted_lines(self):
        koi, filter_ = uuid4(), uuid4()
        cart = cart_of((koi, None, 1000000, 1), (filter_, None, 500000, 1))
        promo = promotion("PERCENTAGE", 10, "PRODUCT_DISCOUNT", applicable_products=[str(koi)])

        assert [line.product_id for line in eligible_lines(promo, cart)] == [koi]
        assert compute_discount(promo, cart).discount_amount == Decimal("100000.00")

    def test_category_target(self):
        fish_category = uuid4()
        koi, filter_ = uuid4(), uuid4()
        cart = cart_of((koi, fish_category, 1000000, 1), (filter_, uuid4(), 500000, 1))
        promo = promotion("PERCENTAGE", 10, "CONDITIONAL_DISCOUNT", applicable_categories=[str(fish_category)])

        assert [line.product_id for line in eligible_lines(promo, cart)] == [koi]

    def test_excluded_products_never_count(self):
        koi, filter_ = uuid4(), uuid4()
        cart = cart_of((koi, None, 1000000, 1), (filter_, None, 500000, 1))
        promo = promotion("PERCENTAGE", 10, "PRODUCT_DISCOUNT", excluded_products=[str(koi)])

        assert [line.product_id for line in eligible_lines(promo, cart)] == [filter_]

    def test_order_discount_uses_whole_cart(self):
        koi = uuid4()
        cart = cart_of((koi, None, 1000000, 1), (500000, 1))
        promo = promotion("PERCENTAGE", 10, "ORDER_DISCOUNT", applicable_products=[str(koi)])

        assert len(eligible_lines(promo, cart)) == 2


class TestNormalizedValue:
    @pytest.mark.parametrize("discount_type,value,conditions,expected", [
        ("PERCENTAGE", 15, {}, Decimal("15")),
        ("FIXED_AMOUNT", 50000, {}, Decimal("5")),
        ("FREE_SHIPPING", 0, {}, Decimal("3")),
        ("BUY_X_GET_Y", 100, {"buy_quantity": 1, "get_quantity": 1}, Decimal("50")),
        ("BUY_X_GET_Y", 100, {"buy_quantity": 3, "get_quantity": 1}, Decimal("25")),
    ])
    def test_values(self, discount_type, value, conditions, expected):
        promo = promotion(discount_type, value, **conditions)
        assert normalized_discount_value(promo, Decimal("1000000"), Decimal("30000")) == expected

    def test_zero_reference(self):
        promo = promotion("FIXED_AMOUNT", 50000)
        assert normalized_discount_value(promo, Decimal("0"), Decimal("30000")) == Decimal("0")
