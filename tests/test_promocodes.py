import pytest

from promocodes import PromoRejected, check_promo, discount_amount, eligible_items, normalize_code
from schemas import CartItem


def promo(**kwargs):
    p = {"code": "SALE10", "seller_id": "s1", "is_active": True, "discount_type": "PERCENTAGE",
         "discount_value": 10, "scope": "ENTIRE_ORDER", "uses": 0}
    p.update(kwargs)
    return p


def cart():
    return [
        CartItem(product_id="p1", seller_id="s1", quantity=2, price_at_time_of_addition=50, category="Винтаж"),
        CartItem(product_id="p2", seller_id="s1", quantity=1, price_at_time_of_addition=20, category="Дом и быт"),
        CartItem(product_id="p3", seller_id="s2", quantity=1, price_at_time_of_addition=500),
    ]


def test_normalize_code():
    assert normalize_code(" sale10 ") == "SALE10"


def test_percentage_discount_on_seller_items_only():
    assert check_promo(promo(), "s1", cart(), now=0) == 12.0


def test_fixed_discount_is_capped_by_subtotal():
    assert discount_amount({"discount_type": "FIXED_AMOUNT", "discount_value": 30}, 20) == 20
    assert check_promo(promo(discount_type="FIXED_AMOUNT", discount_value=15), "s1", cart(), now=0) == 15


def test_scopes():
    by_category = promo(scope="CATEGORY", applicable_category="Винтаж")
    assert [i.product_id for i in eligible_items(by_category, cart())] == ["p1"]
    assert check_promo(by_category, "s1", cart(), now=0) == 10.0

    by_product = promo(scope="SPECIFIC_PRODUCTS", applicable_product_ids=["p2"])
    assert check_promo(by_product, "s1", cart(), now=0) == 2.0


@pytest.mark.parametrize("overrides, seller", [
    ({"is_active": False}, "s1"),
    ({}, "s2"),
    ({"valid_from": 1000}, "s1"),
    ({"valid_until": 10}, "s1"),
    ({"max_uses": 3, "uses": 3}, "s1"),
    ({"min_purchase_amount": 500}, "s1"),
    ({"scope": "SPECIFIC_PRODUCTS", "applicable_product_ids": ["p9"]}, "s1"),
])
def test_rejections(overrides, seller):
    with pytest.raises(PromoRejected):
        check_promo(promo(**overrides), seller, cart(), now=100)
