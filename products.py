"""
Product listing helpers
"""

from typing import Any, Dict, List, Sequence

from categories import normalize_dynamic_attributes_for_category, resolve_fields_by_name
from schemas import CategorySchema, ProductFilters

ALL_CATEGORIES = "Все"


def clean_attributes(categories: Sequence[CategorySchema], category: str, raw: Dict[str, Any]) -> Dict[str, Any]:
    fields = resolve_fields_by_name(categories, category)
    return normalize_dynamic_attributes_for_category(raw, fields)


def _matches_dynamic(product: Dict[str, Any], dynamic: Dict[str, List[str]]) -> bool:
    attributes = product.get("dynamic_attributes") or {}
    for key, values in dynamic.items():
        value = attributes.get(key)
        if value is None:
            return False
        if str(value) not in values:
            return False
    return True


def filter_products(products: List[Dict[str, Any]], filters: ProductFilters) -> List[Dict[str, Any]]:
    if filters.special_filter == "sold":
        # sold listings are not tracked yet
        return []

    result = [p for p in products if not p.get("is_auction")]
    if filters.category and filters.category != ALL_CATEGORIES:
        result = [p for p in result if p.get("category") == filters.category]
    if filters.special_filter == "verified":
        result = [p for p in result if p.get("seller_id")]
    if filters.dynamic:
        result = [p for p in result if _matches_dynamic(p, filters.dynamic)]

    if filters.sort_by == "priceAsc":
        result.sort(key=lambda p: p.get("price") or 0)
    elif filters.sort_by == "priceDesc":
        result.sort(key=lambda p: p.get("price") or 0, reverse=True)
    else:
        result.sort(key=lambda p: (p.get("created_at") is not None, p.get("created_at")), reverse=True)
    return result
