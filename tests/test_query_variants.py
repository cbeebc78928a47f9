"""
Tests for the query_variants module (QueryVariantBuilder).
"""

import pytest

from core.query_variants import QueryVariantBuilder, build_cache_key
from core.schemas import SessionContext
from core.synonyms import SynonymExpander


@pytest.fixture
def expander(small_lexicon):
    return SynonymExpander(small_lexicon)


@pytest.fixture
def builder(expander):
    return QueryVariantBuilder(expander=expander, max_variants=4, decay=0.15)


class TestBuildVariants:
    """Test suite for variant generation order and weights."""

    def test_full_session_is_capped(self, builder, product_session):
        variants = builder.build("prix abonnement", product_session)

        assert [v.reason for v in variants] == ["base", "product", "rubrique", "synonym"]
        assert [v.query for v in variants] == [
            "prix abonnement",
            "PRD-42 prix abonnement",
            "compte client prix abonnement",
            "tarif abonnement",
        ]
        assert [v.weight for v in variants] == pytest.approx([1.0, 0.85, 0.85, 0.85])
        assert [v.allow_fallback for v in variants] == [True, True, False, True]

    def test_weights_never_increase(self, expander, product_session):
        builder = QueryVariantBuilder(expander=expander, max_variants=10, decay=0.15)

        variants = builder.build("prix abonnement", product_session)
        weights = [v.weight for v in variants]

        assert len(variants) == 5
        assert weights[0] == 1.0
        assert variants[0].reason == "base"
        assert all(a >= b for a, b in zip(weights, weights[1:]))
        assert variants[-1].weight == pytest.approx(0.7)
        assert variants[-1].allow_fallback is False

    def test_general_session_without_product(self, builder, general_session):
        variants = builder.build("prix abonnement", general_session)

        assert [v.reason for v in variants] == ["base", "synonym", "synonym"]
        assert [v.weight for v in variants] == pytest.approx([1.0, 0.85, 0.7])
        assert [v.allow_fallback for v in variants] == [True, True, False]

    def test_synonym_weight_floor(self, expander, general_session):
        builder = QueryVariantBuilder(expander=expander, max_variants=4, decay=0.5)

        variants = builder.build("prix abonnement", general_session)

        assert [v.weight for v in variants] == pytest.approx([1.0, 0.5, 0.3])

    def test_single_variant_cap(self, expander, product_session):
        builder = QueryVariantBuilder(expander=expander, max_variants=1)

        variants = builder.build("prix", product_session)

        assert len(variants) == 1
        assert variants[0].reason == "base"

    def test_rubrique_label_replaces_underscore(self, builder):
        session = SessionContext(rubrique="tunnel_vente")

        variants = builder.build("commande", session)

        assert variants[1].query == "tunnel vente commande"
        assert variants[1].filters["rubrique"] == "tunnel_vente"

    def test_variant_filters(self, builder, product_session):
        base, product, rubrique, _ = builder.build("prix abonnement", product_session)

        assert base.filters == {
            "language_code": "fr",
            "rubrique": "compte_client",
            "product_code": "PRD-42",
        }
        assert product.filters["product_code"] == "PRD-42"
        assert rubrique.filters["rubrique"] == "compte_client"

    def test_every_variant_has_a_cache_key(self, builder, product_session):
        variants = builder.build("prix abonnement", product_session)
        keys = [v.cache_key for v in variants]

        assert all(key.startswith("rag:") for key in keys)
        assert len(set(keys)) == len(keys)

    @pytest.mark.parametrize("kwargs", [{"max_variants": 0}, {"decay": 1.5}, {"decay": -0.1}])
    def test_invalid_configuration(self, expander, kwargs):
        with pytest.raises(ValueError):
            QueryVariantBuilder(expander=expander, **kwargs)


class TestBuildCacheKey:
    """Test suite for cache key derivation."""

    def test_is_deterministic(self):
        filters = {"language_code": "fr", "rubrique": "produit"}

        assert build_cache_key("prix", filters) == build_cache_key("prix", dict(filters))

    def test_ignores_filter_order_and_empty_values(self):
        a = build_cache_key("prix", {"language_code": "fr", "rubrique": "produit", "product_code": None})
        b = build_cache_key("prix", {"rubrique": "produit", "language_code": "fr", "product_code": ""})

        assert a == b

    def test_depends_on_query_and_filters(self):
        base = build_cache_key("prix", {"language_code": "fr"})

        assert base != build_cache_key("tarif", {"language_code": "fr"})
        assert base != build_cache_key("prix", {"language_code": "en"})

    def test_format(self):
        key = build_cache_key("prix", {})

        assert key.startswith("rag:")
        assert len(key) == len("rag:") + 16
