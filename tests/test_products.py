from categories import DEFAULT_CATEGORIES
from products import clean_attributes, filter_products
from schemas import ProductFilters


def products():
    return [
        {"id": "1", "title": "Ring", "price": 50, "category": "Ювелирные изделия", "seller_id": "s1",
         "dynamic_attributes": {"metal": "Золото", "weight_grams": 3}, "created_at": 1},
        {"id": "2", "title": "Chain", "price": 20, "category": "Ювелирные изделия", "seller_id": None,
         "dynamic_attributes": {"metal": "Серебро"}, "created_at": 3},
        {"id": "3", "title": "Vase", "price": 35, "category": "Дом и быт", "seller_id": "s2",
         "dynamic_attributes": {}, "created_at": 2},
        {"id": "4", "title": "Lot", "price": None, "category": "Винтаж", "seller_id": "s2",
         "is_auction": True, "created_at": 4},
    ]


def titles(result):
    return [p["title"] for p in result]


def test_clean_attributes_by_category():
    raw = {"Металл": "Золото", "weight_grams": "3", "unknown": "x"}
    assert clean_attributes(DEFAULT_CATEGORIES, "Ювелирные изделия", raw) == {"metal": "Золото", "weight_grams": 3}


def test_default_sort_is_newest_and_skips_auctions():
    assert titles(filter_products(products(), ProductFilters())) == ["Chain", "Vase", "Ring"]


def test_all_categories_keyword():
    assert len(filter_products(products(), ProductFilters(category="Все"))) == 3


def test_category_and_price_sort():
    result = filter_products(products(), ProductFilters(category="Ювелирные изделия", sort_by="priceAsc"))
    assert titles(result) == ["Chain", "Ring"]


def test_verified_filter():
    assert titles(filter_products(products(), ProductFilters(special_filter="verified", sort_by="priceDesc"))) == ["Ring", "Vase"]


def test_sold_filter_is_empty():
    assert filter_products(products(), ProductFilters(special_filter="sold")) == []


def test_dynamic_filter_compares_strings():
    result = filter_products(products(), ProductFilters(dynamic={"weight_grams": ["3"]}))
    assert titles(result) == ["Ring"]
