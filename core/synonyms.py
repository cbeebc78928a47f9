"""
Synonym expansion over the domain vocabulary.

The lexicon maps a canonical term to its related terms. Lookups work in both
directions: a canonical term yields its related terms, and a related term
yields its canonical term followed by the other terms of the same group.
Stemmed forms are indexed too, so "contacter" and "contact" reach the same
group.
"""

from typing import Dict, List, Optional

from core.lexicon import Lexicon, get_lexicon
from core.text_processing import TextNormalizer
from utils.logger import get_logger

logger = get_logger(__name__)


def _append_unique(target: List[str], terms, exclude: str) -> None:
    for term in terms:
        if term != exclude and term not in target:
            target.append(term)


class SynonymExpander:
    """Bidirectional synonym lookup and query rewriting."""

    def __init__(
        self,
        lexicon: Optional[Lexicon] = None,
        normalizer: Optional[TextNormalizer] = None,
    ):
        self.lexicon = lexicon or get_lexicon()
        self.normalizer = normalizer or TextNormalizer(self.lexicon)
        self._index = self._build_index()
        logger.debug(
            f"SynonymExpander ready: {len(self.lexicon.synonyms)} groups, "
            f"{len(self._index)} indexed terms"
        )

    def _build_index(self) -> Dict[str, List[str]]:
        index: Dict[str, List[str]] = {}

        for canonical, related in self.lexicon.synonyms.items():
            _append_unique(index.setdefault(canonical, []), related, canonical)
            for term in related:
                siblings = [canonical] + [t for t in related if t != term]
                _append_unique(index.setdefault(term, []), siblings, term)

        # Stemmed aliases never override an exact entry
        for term in list(index):
            stemmed = self.normalizer.stem(term)
            if stemmed != term and stemmed not in index:
                index[stemmed] = list(index[term])

        return index

    def synonyms_of(self, word: str) -> List[str]:
        """
        Related terms for a word.

        Args:
            word: Word to look up (raw or stemmed form)

        Returns:
            Related terms, empty if the word is not in the vocabulary
        """
        key = (word or "").strip().lower()
        if not key:
            return []
        terms = self._index.get(key)
        if terms is None:
            terms = self._index.get(self.normalizer.stem(key), [])
        return list(terms)

    def is_synonym(self, word: str, other: str) -> bool:
        """True if other is a related term of word (raw or stemmed)."""
        return other in self.synonyms_of(word)

    def expand(self, query: str) -> List[str]:
        """
        Rewrite a query once per recognized synonym.

        Each rewrite replaces one word of the query by one of its related
        terms. Rewrites are de-duplicated, keep discovery order and never
        equal the query itself.

        Args:
            query: Normalized query

        Returns:
            List of rewritten queries
        """
        words = query.split()
        rewrites: List[str] = []

        for position, word in enumerate(words):
            for synonym in self.synonyms_of(word):
                candidate = " ".join(words[:position] + [synonym] + words[position + 1 :])
                if candidate != query and candidate not in rewrites:
                    rewrites.append(candidate)

        return rewrites
