import pytest

from order_status import (
    InvalidTransition,
    OrderAction,
    OrderStatus,
    UnknownAction,
    allowed_actions,
    apply_action,
    can_perform,
    is_terminal,
    next_status,
)


def test_happy_path():
    status = OrderStatus.PENDING
    for action in ("pay", "ship", "confirm_delivery", "complete"):
        status = next_status(status, action)
    assert status == OrderStatus.COMPLETED


def test_authentication_path():
    status = OrderStatus.PAID
    for action in ("send_to_expert", "receive_for_authentication", "pass_authentication", "issue_nft", "ship"):
        status = next_status(status, action)
    assert status == OrderStatus.SHIPPED


def test_dispute_branches():
    assert next_status("SHIPPED", "open_dispute") == OrderStatus.DISPUTED
    assert next_status("DELIVERED", "open_dispute") == OrderStatus.DISPUTED
    assert next_status("DISPUTED", "resolve_for_buyer") == OrderStatus.CANCELLED
    assert next_status("DISPUTED", "resolve_for_seller") == OrderStatus.COMPLETED


def test_invalid_transition():
    with pytest.raises(InvalidTransition) as exc:
        next_status("PENDING", "ship")
    assert exc.value.status == OrderStatus.PENDING
    assert exc.value.action == OrderAction.SHIP

    with pytest.raises(InvalidTransition):
        next_status("COMPLETED", "open_dispute")


def test_unknown_action():
    with pytest.raises(UnknownAction):
        next_status("PAID", "teleport")


def test_allowed_actions():
    assert allowed_actions("PAID") == [OrderAction.SHIP, OrderAction.CANCEL, OrderAction.SEND_TO_EXPERT]
    assert allowed_actions("COMPLETED") == []


def test_terminal_statuses():
    assert is_terminal("COMPLETED")
    assert is_terminal("CANCELLED")
    assert not is_terminal("DISPUTED")


def test_can_perform():
    assert can_perform("ship", "seller")
    assert not can_perform("ship", "buyer")
    assert can_perform("issue_nft", "admin")
    assert not can_perform("issue_nft", "seller")
    assert can_perform("cancel", "buyer", "PENDING")
    assert not can_perform("cancel", "buyer", "PAID")
    assert not can_perform("pay", None)


def test_apply_action_records_history_without_mutating():
    order = {"id": "o1", "status": "PAID", "status_history": [{"status": "PAID", "timestamp": 1}]}

    updates = apply_action(order, "ship", comment="waybill", now=1000)

    assert updates["status"] == "SHIPPED"
    assert updates["status_history"][-1] == {"status": "SHIPPED", "action": "ship", "timestamp": 1000, "comment": "waybill"}
    assert len(updates["status_history"]) == 2
    assert "authentication_events" not in updates
    assert order["status"] == "PAID"
    assert len(order["status_history"]) == 1


def test_apply_action_records_authentication_events():
    order = {"status": "PENDING_AUTHENTICATION", "authentication_events": [{"status": "SHIPPED_TO_EXPERT", "timestamp": 1}]}
    updates = apply_action(order, OrderAction.PASS_AUTHENTICATION, now=5)
    assert updates["authentication_events"][-1] == {"status": "AUTHENTICATION_PASSED", "timestamp": 5, "comment": None}
