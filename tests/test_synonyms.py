"""
Tests for the synonyms module (SynonymExpander).
"""

import pytest

from core.lexicon import Lexicon
from core.synonyms import SynonymExpander


@pytest.fixture
def expander():
    return SynonymExpander()


class TestSynonymsOf:
    """Test suite for bidirectional synonym lookup."""

    def test_canonical_term(self, expander):
        assert expander.synonyms_of("support") == [
            "assistance",
            "aide",
            "contact",
            "service client",
            "soutien",
        ]

    def test_related_term_reaches_canonical_and_siblings(self, expander):
        related = expander.synonyms_of("aide")

        assert related[0] == "support"
        assert "assistance" in related
        assert "soutien" in related
        assert "aide" not in related

    def test_term_in_several_groups(self, expander):
        related = expander.synonyms_of("contact")

        assert "contacter" in related
        assert "joindre" in related
        assert "support" in related
        assert len(related) == len(set(related))

    def test_unknown_word(self, expander):
        assert expander.synonyms_of("bonjour") == []
        assert expander.synonyms_of("") == []

    def test_case_and_whitespace_insensitive(self, expander):
        assert expander.synonyms_of(" SUPPORT ") == expander.synonyms_of("support")

    def test_stemmed_forms(self, expander):
        # "tarifs" -> "tarif", a related term of "prix"
        assert expander.synonyms_of("tarifs")[0] == "prix"
        # "paiements" -> "paiement", the canonical term
        assert "reglement" in expander.synonyms_of("paiements")

    def test_returns_a_copy(self, expander):
        expander.synonyms_of("prix").append("gratuit")

        assert "gratuit" not in expander.synonyms_of("prix")

    def test_is_synonym(self, expander):
        assert expander.is_synonym("prix", "tarif")
        assert expander.is_synonym("tarif", "prix")
        assert not expander.is_synonym("prix", "horaire")


class TestExpand:
    """Test suite for query rewriting."""

    def test_one_rewrite_per_synonym_hit(self, expander):
        rewrites = expander.expand("horaire support")

        assert rewrites[:5] == [
            "heures support",
            "ouverture support",
            "fermeture support",
            "disponibilite support",
            "planning support",
        ]
        assert "horaire assistance" in rewrites
        assert "horaire service client" in rewrites
        assert len(rewrites) == 10

    def test_substitutes_in_place(self, expander):
        rewrites = expander.expand("le prix mensuel")

        assert rewrites == [
            "le tarif mensuel",
            "le cout mensuel",
            "le montant mensuel",
            "le frais mensuel",
            "le facture mensuel",
        ]

    def test_no_hit(self, expander):
        assert expander.expand("bonjour madame") == []
        assert expander.expand("") == []

    def test_deduplicates_and_excludes_query(self):
        lexicon = Lexicon(
            stop_words=frozenset(),
            question_stop_words=frozenset(),
            suffixes=(),
            synonyms={"prix": ("prix", "tarif", "tarif")},
        )
        expander = SynonymExpander(lexicon)

        assert expander.expand("prix") == ["tarif"]
        assert expander.expand("tarif") == ["prix"]
