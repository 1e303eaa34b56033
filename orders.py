"""
Escrow order creation and shipping helpers
"""

import math
import random
import time
from typing import Any, Dict, List, Optional

import structlog

from order_status import OrderStatus
from promocodes import check_promo
from schemas import CartItem, CreateOrdersPayload, Order, OrderItem

logger = structlog.get_logger(__name__)

BASE_SHIPPING_COST = {"NOVA_POSHTA": 3.0, "UKRPOSHTA": 2.0}
DEFAULT_ITEM_WEIGHT = 200  # grams
COST_PER_KG = 0.5


def group_by_seller(cart_items: List[CartItem]) -> Dict[str, List[CartItem]]:
    groups: Dict[str, List[CartItem]] = {}
    for item in cart_items:
        groups.setdefault(item.seller_id, []).append(item)
    return groups


def build_orders(
    payload: CreateOrdersPayload,
    buyer_id: str,
    now: Optional[int] = None,
    promos: Optional[Dict[str, Dict[str, Any]]] = None,
) -> List[Order]:
    """One order per seller in the cart.

    promos maps seller_id to that seller's promo code document; its discount
    comes off the seller's subtotal. Raises PromoRejected when a code does
    not apply.
    """
    promos = promos or {}
    order_date = now if now is not None else int(time.time() * 1000)
    status = OrderStatus.PAID if payload.transaction_hash else OrderStatus.PENDING

    orders = []
    for seller_id, items in group_by_seller(payload.cart_items).items():
        order_items = [
            OrderItem(
                product_id=item.product_id,
                title=item.title,
                price=item.price_at_time_of_addition,
                quantity=item.quantity,
                purchase_type=item.purchase_type,
                variant=item.variant,
            )
            for item in items
        ]
        subtotal = sum(i.price * i.quantity for i in order_items)
        promo = promos.get(seller_id)
        discount = check_promo(promo, seller_id, items, order_date) if promo else 0
        total = round(max(0, subtotal - discount), 2)
        orders.append(Order(
            buyer_id=buyer_id,
            seller_id=seller_id,
            items=order_items,
            total=total,
            status=status,
            order_date=order_date,
            shipping_address=payload.shipping_address,
            shipping_method=payload.shipping_method,
            payment_method=payload.payment_method,
            transaction_hash=payload.transaction_hash,
            authentication_requested=payload.authentication_requested,
            status_history=[{"status": status, "timestamp": order_date}],
            promo_code=promo["code"] if promo else None,
            discount_amount=discount,
        ))
    logger.info("orders_built", buyer_id=buyer_id, count=len(orders), status=status.value)
    return orders


def calculate_shipping_cost(items: List[CartItem], method: str) -> float:
    weight = sum((item.weight or DEFAULT_ITEM_WEIGHT) * item.quantity for item in items)
    return BASE_SHIPPING_COST[method] + math.ceil(weight / 1000) * COST_PER_KG


def generate_tracking_number() -> str:
    return f"59000{random.randint(1000000000, 9999999999)}"
