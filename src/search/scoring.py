"""
In-memory relevance scoring for the durable-store search path.

    score = 0.45 * text + 0.20 * popularity + 0.15 * price + 0.10 * availability

text:         100 title contains the query, 80 brand contains it,
              70 a tag equals it exactly, else 0 (max of the matches)
price:        discount percentage, capped at 100
availability: 100 when stock > 10, 50 when stock > 0, else 0
"""

from typing import List

from search.models import ScoredProduct

TEXT_WEIGHT = 0.45
POPULARITY_WEIGHT = 0.20
PRICE_WEIGHT = 0.15
AVAILABILITY_WEIGHT = 0.10

TITLE_MATCH = 100.0
BRAND_MATCH = 80.0
TAG_MATCH = 70.0


def text_match_score(product: ScoredProduct, normalized: str) -> float:
    if not normalized:
        return 0.0
    signals = [0.0]
    if normalized in product.title.lower():
        signals.append(TITLE_MATCH)
    if product.brand and normalized in product.brand.lower():
        signals.append(BRAND_MATCH)
    if any(tag.lower() == normalized for tag in product.tags):
        signals.append(TAG_MATCH)
    return max(signals)


def price_attractiveness(product: ScoredProduct) -> float:
    return min(product.discount_percent, 100.0)


def availability_score(product: ScoredProduct) -> float:
    if product.stock > 10:
        return 100.0
    if product.stock > 0:
        return 50.0
    return 0.0


def relevance_score(product: ScoredProduct, normalized: str) -> float:
    return (
        TEXT_WEIGHT * text_match_score(product, normalized)
        + POPULARITY_WEIGHT * product.popularity_score
        + PRICE_WEIGHT * price_attractiveness(product)
        + AVAILABILITY_WEIGHT * availability_score(product)
    )


def rank_by_relevance(products: List[ScoredProduct], normalized: str) -> List[ScoredProduct]:
    """
    Score every candidate and sort descending.

    Returns copies with relevance_score set; the sort is stable, so equal
    scores keep the store's order.
    """
    scored = [
        p.model_copy(update={"relevance_score": round(relevance_score(p, normalized), 4)})
        for p in products
    ]
    scored.sort(key=lambda p: p.relevance_score, reverse=True)
    return scored
