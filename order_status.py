"""
Order status lifecycle

Every status change goes through the transition table below. Callers ask
for an action ("ship", "open_dispute", ...) and get back the document
updates to persist, or InvalidTransition when the action is not allowed
from the order's current status.
"""

import time
from enum import Enum
from typing import Any, Dict, List, Optional

import structlog

logger = structlog.get_logger(__name__)


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    DISPUTED = "DISPUTED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    SHIPPED_TO_EXPERT = "SHIPPED_TO_EXPERT"
    PENDING_AUTHENTICATION = "PENDING_AUTHENTICATION"
    AUTHENTICATION_PASSED = "AUTHENTICATION_PASSED"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    NFT_ISSUED = "NFT_ISSUED"


class OrderAction(str, Enum):
    PAY = "pay"
    CANCEL = "cancel"
    SHIP = "ship"
    SEND_TO_EXPERT = "send_to_expert"
    RECEIVE_FOR_AUTHENTICATION = "receive_for_authentication"
    PASS_AUTHENTICATION = "pass_authentication"
    FAIL_AUTHENTICATION = "fail_authentication"
    ISSUE_NFT = "issue_nft"
    CONFIRM_DELIVERY = "confirm_delivery"
    OPEN_DISPUTE = "open_dispute"
    COMPLETE = "complete"
    RESOLVE_FOR_BUYER = "resolve_for_buyer"
    RESOLVE_FOR_SELLER = "resolve_for_seller"


class InvalidTransition(ValueError):
    def __init__(self, status, action):
        self.status = OrderStatus(status)
        self.action = OrderAction(action)
        super().__init__(f"Cannot {self.action.value} an order in status {self.status.value}")


class UnknownAction(ValueError):
    pass


S = OrderStatus
A = OrderAction

TRANSITIONS: Dict[tuple, OrderStatus] = {
    (S.PENDING, A.PAY): S.PAID,
    (S.PENDING, A.CANCEL): S.CANCELLED,
    (S.PAID, A.SHIP): S.SHIPPED,
    (S.PAID, A.CANCEL): S.CANCELLED,
    (S.PAID, A.SEND_TO_EXPERT): S.SHIPPED_TO_EXPERT,
    (S.SHIPPED_TO_EXPERT, A.RECEIVE_FOR_AUTHENTICATION): S.PENDING_AUTHENTICATION,
    (S.PENDING_AUTHENTICATION, A.PASS_AUTHENTICATION): S.AUTHENTICATION_PASSED,
    (S.PENDING_AUTHENTICATION, A.FAIL_AUTHENTICATION): S.AUTHENTICATION_FAILED,
    (S.AUTHENTICATION_PASSED, A.ISSUE_NFT): S.NFT_ISSUED,
    (S.AUTHENTICATION_FAILED, A.CANCEL): S.CANCELLED,
    (S.NFT_ISSUED, A.SHIP): S.SHIPPED,
    (S.SHIPPED, A.CONFIRM_DELIVERY): S.DELIVERED,
    (S.SHIPPED, A.OPEN_DISPUTE): S.DISPUTED,
    (S.DELIVERED, A.OPEN_DISPUTE): S.DISPUTED,
    (S.DELIVERED, A.COMPLETE): S.COMPLETED,
    (S.DISPUTED, A.RESOLVE_FOR_SELLER): S.COMPLETED,
    (S.DISPUTED, A.RESOLVE_FOR_BUYER): S.CANCELLED,
}

# Who may trigger an action besides admins, who may trigger anything.
ACTION_ACTORS: Dict[OrderAction, frozenset] = {
    A.PAY: frozenset({"buyer"}),
    A.CANCEL: frozenset({"buyer", "seller"}),
    A.SHIP: frozenset({"seller"}),
    A.SEND_TO_EXPERT: frozenset({"seller"}),
    A.RECEIVE_FOR_AUTHENTICATION: frozenset(),
    A.PASS_AUTHENTICATION: frozenset(),
    A.FAIL_AUTHENTICATION: frozenset(),
    A.ISSUE_NFT: frozenset(),
    A.CONFIRM_DELIVERY: frozenset({"buyer"}),
    A.OPEN_DISPUTE: frozenset({"buyer"}),
    A.COMPLETE: frozenset({"buyer"}),
    A.RESOLVE_FOR_BUYER: frozenset(),
    A.RESOLVE_FOR_SELLER: frozenset(),
}

# A buyer may only cancel before payment is confirmed.
_BUYER_CANCELLABLE = frozenset({S.PENDING})

AUTHENTICATION_PATH = frozenset({
    S.SHIPPED_TO_EXPERT,
    S.PENDING_AUTHENTICATION,
    S.AUTHENTICATION_PASSED,
    S.AUTHENTICATION_FAILED,
    S.NFT_ISSUED,
})

TERMINAL_STATUSES = frozenset({S.COMPLETED, S.CANCELLED})


def _as_action(action) -> OrderAction:
    try:
        return OrderAction(action)
    except ValueError:
        raise UnknownAction(f"Unknown order action: {action!r}") from None


def next_status(current, action) -> OrderStatus:
    action = _as_action(action)
    current = OrderStatus(current)
    try:
        return TRANSITIONS[(current, action)]
    except KeyError:
        raise InvalidTransition(current, action) from None


def allowed_actions(current) -> List[OrderAction]:
    current = OrderStatus(current)
    return [action for (status, action) in TRANSITIONS if status == current]


def is_terminal(status) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES


def can_perform(action, role: Optional[str], current=None) -> bool:
    """Check whether an actor role ("buyer", "seller", "admin") may trigger action."""
    action = _as_action(action)
    if role == "admin":
        return True
    if role not in ACTION_ACTORS[action]:
        return False
    if action is A.CANCEL and role == "buyer" and current is not None:
        return OrderStatus(current) in _BUYER_CANCELLABLE
    return True


def apply_action(
    order: Dict[str, Any],
    action,
    comment: Optional[str] = None,
    now: Optional[int] = None,
) -> Dict[str, Any]:
    """Return the updates that move order through action.

    The order dict is left untouched. The result always carries the new
    status and an extended status_history; steps on the authentication
    path are also recorded in authentication_events.
    """
    action = _as_action(action)
    current = OrderStatus(order["status"])
    target = next_status(current, action)
    timestamp = now if now is not None else int(time.time() * 1000)

    event = {"status": target.value, "timestamp": timestamp, "comment": comment}
    updates: Dict[str, Any] = {
        "status": target.value,
        "status_history": list(order.get("status_history") or []) + [{**event, "action": action.value}],
    }
    if target in AUTHENTICATION_PATH:
        updates["authentication_events"] = list(order.get("authentication_events") or []) + [event]

    logger.info(
        "order_transition",
        order_id=order.get("id"),
        action=action.value,
        from_status=current.value,
        to_status=target.value,
    )
    return updates
