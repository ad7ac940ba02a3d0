"""
Unit tests for relevance scoring and source normalization.
"""

import pytest


class TestTextMatch:

    def test_title_match(self, product_factory):
        from search.scoring import text_match_score
        product = product_factory(title="Galaxy S24 Ultra", brand="Samsung")
        assert text_match_score(product, "galaxy") == 100.0

    def test_brand_match(self, product_factory):
        from search.scoring import text_match_score
        product = product_factory(title="S24 Ultra", brand="Samsung")
        assert text_match_score(product, "samsung") == 80.0

    def test_exact_tag_match_only(self, product_factory):
        from search.scoring import text_match_score
        product = product_factory(title="S24", brand="X", tags=["Smartphone", "android phones"])

        assert text_match_score(product, "smartphone") == 70.0
        assert text_match_score(product, "android") == 0.0

    def test_max_of_signals(self, product_factory):
        from search.scoring import text_match_score
        product = product_factory(title="Nike Air", brand="Nike", tags=["nike"])
        assert text_match_score(product, "nike") == 100.0

    def test_empty_query(self, product_factory):
        from search.scoring import text_match_score
        assert text_match_score(product_factory(), "") == 0.0


class TestRelevanceScore:

    def test_weights(self, product_factory):
        from search.scoring import relevance_score

        product = product_factory(
            title="Pixel 8",
            brand="Google",
            price=100.0,
            offer_price=80.0,
            stock=5,
            popularity_score=50.0,
        )

        # 0.45*100 + 0.20*50 + 0.15*20 + 0.10*50
        assert relevance_score(product, "pixel") == pytest.approx(63.0)

    def test_out_of_stock_no_discount(self, product_factory):
        from search.scoring import relevance_score

        product = product_factory(title="Pixel 8", stock=0, popularity_score=0.0)

        assert relevance_score(product, "pixel") == pytest.approx(45.0)

    def test_discount_capped_and_never_negative(self, product_factory):
        from search.scoring import price_attractiveness

        assert price_attractiveness(product_factory(price=100.0, offer_price=120.0)) == 0.0
        assert price_attractiveness(product_factory(price=0.0, offer_price=10.0)) == 0.0
        assert price_attractiveness(product_factory(price=100.0, offer_price=0.0)) == 100.0

    @pytest.mark.parametrize("stock, expected", [(11, 100.0), (10, 50.0), (1, 50.0), (0, 0.0)])
    def test_availability(self, product_factory, stock, expected):
        from search.scoring import availability_score
        assert availability_score(product_factory(stock=stock)) == expected


class TestRankByRelevance:

    def test_sorted_descending_with_scores(self, product_factory):
        from search.scoring import rank_by_relevance

        products = [
            product_factory("a", title="Case", brand="Other", popularity_score=0),
            product_factory("b", title="Pixel 8", popularity_score=10),
            product_factory("c", title="Pixel 8 Pro", popularity_score=90),
        ]

        ranked = rank_by_relevance(products, "pixel")

        assert [p.id for p in ranked] == ["c", "b", "a"]
        scores = [p.relevance_score for p in ranked]
        assert scores == sorted(scores, reverse=True)
        assert products[0].relevance_score is None

    def test_stable_for_equal_scores(self, product_factory):
        from search.scoring import rank_by_relevance

        products = [product_factory(str(i), title="Same") for i in range(5)]

        ranked = rank_by_relevance(products, "same")

        assert [p.id for p in ranked] == ["0", "1", "2", "3", "4"]


class TestSources:

    def test_store_row(self, sample_product_row):
        from search.sources import StoreRow

        product = StoreRow(sample_product_row).to_product()

        assert product.id == "prod-001"
        assert product.category_name == "Smartphones"
        assert product.source == "store"
        assert product.offer_price == 127900.0
        assert product.created_at.year == 2026

    def test_store_row_custom_source(self, sample_product_row):
        from search.sources import StoreRow
        assert StoreRow(sample_product_row).to_product(source="category").source == "category"

    def test_index_hit(self):
        from search.sources import IndexHit

        product = IndexHit({
            "objectID": "p9",
            "title": "Boat Airdopes",
            "price": "1299",
            "stock": 3,
            "tags": "earbuds",
            "created_at_timestamp": 0,
        }).to_product()

        assert product.id == "p9"
        assert product.price == 1299.0
        assert product.tags == ["earbuds"]
        assert product.created_at is None
        assert product.source == "index"

    def test_semantic_hit(self):
        from search.sources import SemanticHit

        product = SemanticHit({"id": 7, "title": "Kettle", "similarity": 0.82}).to_product()

        assert product.id == "7"
        assert product.source == "semantic"
        assert product.semantic_score == pytest.approx(0.82)
