"""
Saved products: the wishlist and named collections

Both keep an ordered list of product ids. Adding an id twice or removing
an absent one leaves the list unchanged, so client toggles can be retried.
"""

from typing import Any, Dict, List, Optional, Sequence


def with_product(product_ids: Optional[Sequence[str]], product_id: str) -> List[str]:
    ids = list(product_ids or [])
    if product_id not in ids:
        ids.append(product_id)
    return ids


def without_product(product_ids: Optional[Sequence[str]], product_id: str) -> List[str]:
    return [i for i in product_ids or [] if i != product_id]


def owned_by(collection: Dict[str, Any], user: Dict[str, Any]) -> bool:
    return collection.get("user_id") == user["id"]
