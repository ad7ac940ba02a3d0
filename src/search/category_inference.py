"""
Category inference from query keywords.

First a fixed keyword table maps keywords to a canonical category name
that is then looked up in the catalog. If nothing matches, each keyword
is tried directly as a substring of a category name.
"""

from typing import Dict, List

from core.logging import get_logger
from search.models import CategoryMatch

logger = get_logger(__name__)


CATEGORY_KEYWORDS: Dict[str, List[str]] = {
    "smartphones": ["phone", "mobile", "iphone", "samsung", "galaxy", "android", "smartphone"],
    "laptops": ["laptop", "macbook", "notebook", "chromebook", "ultrabook"],
    "electronics": ["tv", "television", "monitor", "speaker", "headphone", "earbuds", "camera"],
    "clothing": ["shirt", "tshirt", "jeans", "pants", "dress", "jacket", "sweater", "hoodie"],
    "footwear": ["shoes", "sneakers", "boots", "sandals", "heels", "loafers"],
    "accessories": ["watch", "bag", "wallet", "belt", "sunglasses", "jewelry"],
    "home": ["furniture", "decor", "kitchen", "appliance", "bedding", "curtain"],
    "beauty": ["makeup", "skincare", "perfume", "cosmetic", "lotion", "cream"],
}

TABLE_MAX_CONFIDENCE = 0.9
NAME_MATCH_CONFIDENCE = 0.5


def _keyword_matches(keyword: str, pattern: str) -> bool:
    return keyword in pattern or pattern in keyword


def table_candidates(keywords: List[str]) -> List[tuple]:
    """
    (category name, match count) for every table entry with a match, in
    table order.

    Example:
        >>> table_candidates(["iphone", "15", "pro"])
        [('smartphones', 1)]
    """
    candidates = []
    for category_name, patterns in CATEGORY_KEYWORDS.items():
        match_count = sum(
            1 for k in keywords if any(_keyword_matches(k, p) for p in patterns)
        )
        if match_count > 0:
            candidates.append((category_name, match_count))
    return candidates


def infer_category(keywords: List[str], catalog) -> CategoryMatch:
    """
    Map keywords to a catalog category.

    Table hits get confidence min(matches / keywords, 0.9); a direct
    category-name match gets 0.5. No match returns an empty CategoryMatch.
    """
    if not keywords:
        return CategoryMatch()

    for category_name, match_count in table_candidates(keywords):
        category = catalog.find_category_by_name(category_name)
        if category:
            return CategoryMatch(
                category_id=str(category["id"]),
                category_name=category["name"],
                confidence=min(match_count / len(keywords), TABLE_MAX_CONFIDENCE),
            )

    for keyword in keywords:
        category = catalog.find_category_by_name(keyword)
        if category:
            return CategoryMatch(
                category_id=str(category["id"]),
                category_name=category["name"],
                confidence=NAME_MATCH_CONFIDENCE,
            )

    return CategoryMatch()
