"""
Auction bidding rules
"""

import math
import time
from typing import Any, Dict, List, Optional

import structlog

logger = structlog.get_logger(__name__)

MIN_BID_FACTOR = 1.05


class BidRejected(ValueError):
    pass


def current_price(product: Dict[str, Any]) -> float:
    return float(product.get("current_bid") or product.get("starting_bid") or 0)


def round_half_up(value: float) -> float:
    # Math.round: halves go up
    return float(math.floor(value + 0.5))


def min_next_bid(product: Dict[str, Any]) -> float:
    return round_half_up(current_price(product) * MIN_BID_FACTOR * 100) / 100


def suggested_bids(product: Dict[str, Any]) -> List[float]:
    minimum = min_next_bid(product)
    bids = [minimum, round_half_up(minimum * 1.1), round_half_up(minimum * 1.2)]
    unique: List[float] = []
    for bid in bids:
        if bid not in unique:
            unique.append(bid)
    return unique


def is_ended(product: Dict[str, Any], now: Optional[int] = None) -> bool:
    ends = product.get("auction_ends")
    if ends is None:
        return False
    now = now if now is not None else int(time.time() * 1000)
    return now >= ends


def place_bid(product: Dict[str, Any], amount: float, user_id: str, now: Optional[int] = None) -> Dict[str, Any]:
    """Validate a bid and return the product updates it causes."""
    if not product.get("is_auction"):
        raise BidRejected("Product is not an auction")
    if is_ended(product, now):
        raise BidRejected("Auction has ended")
    if product.get("seller_id") == user_id:
        raise BidRejected("Sellers cannot bid on their own lots")

    minimum = min_next_bid(product)
    if amount <= current_price(product) or amount < minimum:
        logger.warning("bid_rejected", product_id=product.get("id"), user_id=user_id, amount=amount, minimum=minimum)
        raise BidRejected(f"Minimum bid is {minimum:.2f} USDT")

    bidders = list(product.get("bidders") or [])
    if user_id not in bidders:
        bidders.append(user_id)

    logger.info("bid_placed", product_id=product.get("id"), user_id=user_id, amount=amount)
    return {"current_bid": amount, "bidders": bidders}
