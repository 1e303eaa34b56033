"""
Order disputes

A dispute shares its id with the order it belongs to. Opening one moves
the order to DISPUTED; resolving it settles the order in favour of the
buyer (refund, CANCELLED) or the seller (COMPLETED).
"""

import time
import uuid
from typing import Any, Dict, Optional, Tuple

import structlog

from order_status import OrderAction, apply_action
from schemas import Dispute, DisputeMessage

logger = structlog.get_logger(__name__)

RESOLVED = frozenset({"RESOLVED_BUYER", "RESOLVED_SELLER"})


class DisputeClosed(ValueError):
    pass


def _message(sender: Dict[str, Any], text: Optional[str], image_url: Optional[str], now: int) -> DisputeMessage:
    if not text and not image_url:
        raise ValueError("Message needs text or an image")
    return DisputeMessage(
        id=uuid.uuid4().hex,
        sender_id=sender["id"],
        sender_name=sender.get("name", ""),
        sender_avatar=sender.get("avatar_url"),
        timestamp=now,
        text=text,
        image_url=image_url,
    )


def open_dispute(
    order: Dict[str, Any],
    opener: Dict[str, Any],
    reason: str,
    image_url: Optional[str] = None,
    now: Optional[int] = None,
) -> Tuple[Dict[str, Any], Dispute]:
    now = now if now is not None else int(time.time() * 1000)
    order_updates = apply_action(order, OrderAction.OPEN_DISPUTE, comment=reason, now=now)
    order_updates["dispute_id"] = order["id"]

    dispute = Dispute(
        order_id=order["id"],
        buyer_id=order["buyer_id"],
        seller_id=order["seller_id"],
        messages=[_message(opener, reason, image_url, now)],
    )
    logger.info("dispute_opened", order_id=order["id"], opener_id=opener["id"])
    return order_updates, dispute


def add_message(
    dispute: Dict[str, Any],
    sender: Dict[str, Any],
    text: Optional[str] = None,
    image_url: Optional[str] = None,
    now: Optional[int] = None,
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Return (dispute updates, the new message)."""
    if dispute["status"] in RESOLVED:
        raise DisputeClosed("Dispute is already resolved")
    now = now if now is not None else int(time.time() * 1000)
    message = _message(sender, text, image_url, now).model_dump()

    updates: Dict[str, Any] = {"messages": list(dispute.get("messages") or []) + [message]}
    if sender.get("role") == "admin" and dispute["status"] == "OPEN":
        updates["status"] = "UNDER_REVIEW"
    return updates, message


def resolve_dispute(
    dispute: Dict[str, Any],
    order: Dict[str, Any],
    in_favor_of: str,
    resolution: str,
    now: Optional[int] = None,
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Return (dispute updates, order updates)."""
    if dispute["status"] in RESOLVED:
        raise DisputeClosed("Dispute is already resolved")
    if in_favor_of == "buyer":
        action, status = OrderAction.RESOLVE_FOR_BUYER, "RESOLVED_BUYER"
    elif in_favor_of == "seller":
        action, status = OrderAction.RESOLVE_FOR_SELLER, "RESOLVED_SELLER"
    else:
        raise ValueError(f"Unknown party: {in_favor_of}")

    order_updates = apply_action(order, action, comment=resolution, now=now)
    logger.info("dispute_resolved", order_id=order["id"], status=status)
    return {"status": status, "resolution": resolution}, order_updates
