"""
Seller promo codes

A code belongs to one seller and only discounts that seller's part of the
cart. Scope narrows which of those items count towards the discount.
"""

import time
from typing import Any, Dict, List, Optional, Sequence

import structlog

from schemas import CartItem

logger = structlog.get_logger(__name__)


class PromoRejected(ValueError):
    pass


def normalize_code(code: str) -> str:
    return code.strip().upper()


def _subtotal(items: Sequence[CartItem]) -> float:
    return sum(item.price_at_time_of_addition * item.quantity for item in items)


def eligible_items(promo: Dict[str, Any], items: Sequence[CartItem]) -> List[CartItem]:
    scope = promo.get("scope") or "ENTIRE_ORDER"
    if scope == "CATEGORY":
        return [i for i in items if i.category and i.category == promo.get("applicable_category")]
    if scope == "SPECIFIC_PRODUCTS":
        allowed = set(promo.get("applicable_product_ids") or [])
        return [i for i in items if i.product_id in allowed]
    return list(items)


def discount_amount(promo: Dict[str, Any], subtotal: float) -> float:
    if promo["discount_type"] == "PERCENTAGE":
        amount = subtotal * promo["discount_value"] / 100
    else:
        amount = promo["discount_value"]
    return round(min(amount, subtotal), 2)


def check_promo(
    promo: Dict[str, Any],
    seller_id: str,
    items: Sequence[CartItem],
    now: Optional[int] = None,
) -> float:
    """Validate promo for the seller's items in a cart and return the discount."""
    now = now if now is not None else int(time.time() * 1000)
    if not promo.get("is_active", True):
        raise PromoRejected("Promo code is not active")
    if promo["seller_id"] != seller_id:
        raise PromoRejected("Promo code belongs to another seller")
    if promo.get("valid_from") and now < promo["valid_from"]:
        raise PromoRejected("Promo code is not valid yet")
    if promo.get("valid_until") and now > promo["valid_until"]:
        raise PromoRejected("Promo code has expired")
    if promo.get("max_uses") is not None and promo.get("uses", 0) >= promo["max_uses"]:
        raise PromoRejected("Promo code usage limit reached")

    seller_items = [i for i in items if i.seller_id == seller_id]
    minimum = promo.get("min_purchase_amount")
    if minimum and _subtotal(seller_items) < minimum:
        raise PromoRejected(f"Minimum purchase for this code is {minimum:.2f} USDT")

    eligible = _subtotal(eligible_items(promo, seller_items))
    if eligible <= 0:
        raise PromoRejected("Promo code does not apply to these items")

    amount = discount_amount(promo, eligible)
    logger.info("promo_applied", code=promo["code"], seller_id=seller_id, discount=amount)
    return amount
