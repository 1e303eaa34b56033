import pytest

from auctions import BidRejected, min_next_bid, place_bid, suggested_bids


def lot(**kwargs):
    product = {"id": "p1", "is_auction": True, "seller_id": "seller", "starting_bid": 100.0, "bidders": []}
    product.update(kwargs)
    return product


def test_min_next_bid_uses_current_bid_first():
    assert min_next_bid(lot()) == 105.0
    assert min_next_bid(lot(current_bid=200.0)) == 210.0
    assert min_next_bid(lot(starting_bid=None)) == 0


def test_suggested_bids():
    assert suggested_bids(lot()) == [105.0, 116.0, 126.0]


def test_min_next_bid_rounds_half_up():
    assert min_next_bid(lot(current_bid=1.9)) == 2.0
    assert min_next_bid(lot(current_bid=0.7)) == 0.74


def test_suggested_bids_round_half_up():
    assert suggested_bids(lot(current_bid=14.29)) == [15.0, 17.0, 18.0]


def test_bid_just_below_rounded_minimum_rejected():
    with pytest.raises(BidRejected):
        place_bid(lot(current_bid=1.9), 1.99, "u1", now=0)


def test_place_bid_updates_price_and_bidders():
    updates = place_bid(lot(), 105.0, "u1", now=0)
    assert updates == {"current_bid": 105.0, "bidders": ["u1"]}


def test_place_bid_adds_bidder_once():
    updates = place_bid(lot(current_bid=105.0, bidders=["u1"]), 120.0, "u1", now=0)
    assert updates["bidders"] == ["u1"]


@pytest.mark.parametrize("product, amount, user", [
    (lot(), 104.0, "u1"),
    (lot(is_auction=False), 500.0, "u1"),
    (lot(auction_ends=1000), 500.0, "u1"),
    (lot(), 500.0, "seller"),
])
def test_place_bid_rejections(product, amount, user):
    with pytest.raises(BidRejected):
        place_bid(product, amount, user, now=2000)
