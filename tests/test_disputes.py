import pytest

from disputes import DisputeClosed, add_message, open_dispute, resolve_dispute
from order_status import InvalidTransition

BUYER = {"id": "b1", "name": "Buyer", "role": "user"}
ADMIN = {"id": "a1", "name": "Moderator", "role": "admin"}


def order(status="SHIPPED"):
    return {"id": "o1", "buyer_id": "b1", "seller_id": "s1", "status": status, "status_history": []}


def dispute(status="OPEN"):
    return {"id": "d1", "order_id": "o1", "buyer_id": "b1", "seller_id": "s1", "status": status, "messages": []}


def test_open_dispute():
    updates, created = open_dispute(order(), BUYER, "Parcel is empty", now=5)

    assert updates["status"] == "DISPUTED"
    assert updates["dispute_id"] == "o1"
    assert created.order_id == "o1"
    assert created.status == "OPEN"
    assert created.messages[0].text == "Parcel is empty"
    assert created.messages[0].sender_name == "Buyer"


def test_open_dispute_before_shipping():
    with pytest.raises(InvalidTransition):
        open_dispute(order("PAID"), BUYER, "Too slow")


def test_admin_message_starts_review():
    updates, message = add_message(dispute(), ADMIN, "Looking into it", now=7)
    assert updates["status"] == "UNDER_REVIEW"
    assert updates["messages"] == [message]


def test_party_message_keeps_status():
    updates, _ = add_message(dispute(), BUYER, image_url="/uploads/photo.jpg")
    assert "status" not in updates


def test_empty_message_rejected():
    with pytest.raises(ValueError):
        add_message(dispute(), BUYER)


def test_resolve_for_seller_completes_order():
    dispute_updates, order_updates = resolve_dispute(dispute("UNDER_REVIEW"), order("DISPUTED"), "seller", "Tracking shows delivery")
    assert dispute_updates == {"status": "RESOLVED_SELLER", "resolution": "Tracking shows delivery"}
    assert order_updates["status"] == "COMPLETED"


def test_resolved_dispute_is_closed():
    with pytest.raises(DisputeClosed):
        add_message(dispute("RESOLVED_BUYER"), BUYER, "Thanks")
    with pytest.raises(DisputeClosed):
        resolve_dispute(dispute("RESOLVED_BUYER"), order("CANCELLED"), "seller", "Again")
