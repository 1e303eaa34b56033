"""
Product reviews

Buyers review products from their own delivered orders. A seller's rating
is the mean of the ratings left on their products.
"""

import time
from typing import Any, Dict, Optional, Sequence

import structlog

from order_status import OrderStatus
from schemas import CreateReviewPayload, Review

logger = structlog.get_logger(__name__)

REVIEWABLE = frozenset({OrderStatus.DELIVERED, OrderStatus.COMPLETED})


class ReviewRejected(ValueError):
    pass


def build_review(
    order: Dict[str, Any],
    author: Dict[str, Any],
    payload: CreateReviewPayload,
    now: Optional[int] = None,
) -> Review:
    if order["buyer_id"] != author["id"]:
        raise ReviewRejected("Only the buyer can review this order")
    if OrderStatus(order["status"]) not in REVIEWABLE:
        raise ReviewRejected("Order has not been delivered yet")
    if payload.product_id not in {item["product_id"] for item in order.get("items") or []}:
        raise ReviewRejected("Product is not part of this order")

    review = Review(
        product_id=payload.product_id,
        order_id=payload.order_id,
        seller_id=order["seller_id"],
        author_id=author["id"],
        author_name=author.get("name", ""),
        author_avatar=author.get("avatar_url"),
        rating=payload.rating,
        text=payload.text,
        attachments=payload.attachments,
        timestamp=now if now is not None else int(time.time() * 1000),
    )
    logger.info("review_built", order_id=payload.order_id, product_id=payload.product_id, rating=payload.rating)
    return review


def average_rating(ratings: Sequence[int]) -> float:
    if not ratings:
        return 0
    return round(sum(ratings) / len(ratings), 1)
