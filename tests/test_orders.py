import pytest

from conftest import SHIPPING_ADDRESS

from order_status import OrderStatus
from orders import build_orders, calculate_shipping_cost, generate_tracking_number
from promocodes import PromoRejected
from schemas import CartItem, CreateOrdersPayload


def payload(**kwargs):
    data = {
        "cart_items": [
            {"product_id": "p1", "seller_id": "s1", "title": "Ring", "quantity": 2, "price_at_time_of_addition": 10.0},
            {"product_id": "p2", "seller_id": "s2", "title": "Lamp", "quantity": 1, "price_at_time_of_addition": 30.0},
            {"product_id": "p3", "seller_id": "s1", "title": "Chain", "quantity": 1, "price_at_time_of_addition": 5.5},
        ],
        "payment_method": "ESCROW",
        "shipping_method": "NOVA_POSHTA",
        "shipping_address": SHIPPING_ADDRESS,
        "transaction_hash": "0xabc",
    }
    data.update(kwargs)
    return CreateOrdersPayload(**data)


def test_build_orders_groups_by_seller():
    orders = build_orders(payload(), "buyer", now=123)

    assert [o.seller_id for o in orders] == ["s1", "s2"]
    assert orders[0].total == 25.5
    assert [i.product_id for i in orders[0].items] == ["p1", "p3"]
    assert orders[1].total == 30.0
    assert all(o.status == OrderStatus.PAID for o in orders)
    assert all(o.order_date == 123 for o in orders)


def test_orders_without_transaction_start_pending():
    orders = build_orders(payload(transaction_hash=None), "buyer")
    assert all(o.status == OrderStatus.PENDING for o in orders)
    assert orders[0].status_history[0].status == OrderStatus.PENDING


def test_shipping_cost():
    items = [
        CartItem(product_id="p1", seller_id="s1", quantity=3, price_at_time_of_addition=1, weight=400),
        CartItem(product_id="p2", seller_id="s1", quantity=1, price_at_time_of_addition=1),
    ]
    # 1400 g rounds up to 2 kg
    assert calculate_shipping_cost(items, "NOVA_POSHTA") == 4.0
    assert calculate_shipping_cost(items[1:], "UKRPOSHTA") == 2.5


def test_tracking_number_format():
    number = generate_tracking_number()
    assert number.startswith("59000")
    assert len(number) == 15
    assert number.isdigit()


def test_promo_discount_applies_to_its_seller():
    promo = {"code": "RING5", "seller_id": "s1", "discount_type": "FIXED_AMOUNT", "discount_value": 5}
    orders = build_orders(payload(), "buyer", now=123, promos={"s1": promo})

    assert orders[0].promo_code == "RING5"
    assert orders[0].discount_amount == 5
    assert orders[0].total == 20.5
    assert orders[1].promo_code is None
    assert orders[1].total == 30.0


def test_rejected_promo_stops_checkout():
    promo = {"code": "OLD", "seller_id": "s1", "discount_type": "PERCENTAGE", "discount_value": 10, "valid_until": 1}
    with pytest.raises(PromoRejected):
        build_orders(payload(), "buyer", now=123, promos={"s1": promo})
