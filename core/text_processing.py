"""
Text normalization and light French stemming.

Produces comparable word tokens for both the store queries and the answer
matcher:

- normalize: lowercase, punctuation -> spaces, collapsed whitespace
- extract_words: normalized tokens longer than 2 characters, minus stop
  words, each passed through the stemmer
- stem: strips the first suffix of the lexicon's ordered suffix table that
  matches, provided more than 2 characters remain. Only one suffix is ever
  removed, so stem("contacter") == "contact" and stem("contact") == "contact".

The stemmer is a heuristic, not a linguistic stemmer; its table and guard
are part of the observable scoring behaviour.
"""

import re
from typing import FrozenSet, List, Optional

from core.lexicon import Lexicon, get_lexicon

# \w keeps accented letters; the underscore is treated as punctuation
_PUNCTUATION_RE = re.compile(r"[^\w\s]|_")
_WHITESPACE_RE = re.compile(r"\s+")

MIN_WORD_LENGTH = 3


class TextNormalizer:
    """Normalizer/stemmer bound to one lexicon."""

    def __init__(self, lexicon: Optional[Lexicon] = None):
        self.lexicon = lexicon or get_lexicon()

    @staticmethod
    def normalize(text: Optional[str]) -> str:
        """Lowercase, strip punctuation to spaces and collapse whitespace."""
        if not text:
            return ""
        lowered = text.lower().strip()
        cleaned = _PUNCTUATION_RE.sub(" ", lowered)
        return _WHITESPACE_RE.sub(" ", cleaned).strip()

    @classmethod
    def tokenize(cls, text: Optional[str]) -> List[str]:
        """Split normalized text into tokens."""
        normalized = cls.normalize(text)
        return normalized.split(" ") if normalized else []

    def stem(self, word: str) -> str:
        for suffix in self.lexicon.suffixes:
            if word.endswith(suffix) and len(word) > len(suffix) + 2:
                return word[: -len(suffix)]
        return word

    def extract_words(
        self, text: Optional[str], stop_words: Optional[FrozenSet[str]] = None
    ) -> List[str]:
        """
        Extract stemmed significant words from text.

        Args:
            text: Raw or normalized text
            stop_words: Stop-word set to apply (default: the store-side set)

        Returns:
            Stemmed words in their original order (duplicates preserved)
        """
        stops = self.lexicon.stop_words if stop_words is None else stop_words
        return [
            self.stem(token)
            for token in self.tokenize(text)
            if len(token) >= MIN_WORD_LENGTH and token not in stops
        ]

    def question_words(self, text: Optional[str]) -> List[str]:
        """Words used when comparing a user query with an FAQ question."""
        return self.extract_words(text, stop_words=self.lexicon.question_stop_words)


_default_normalizer: Optional[TextNormalizer] = None


def _get_default_normalizer() -> TextNormalizer:
    global _default_normalizer
    if _default_normalizer is None:
        _default_normalizer = TextNormalizer()
    return _default_normalizer


def normalize(text: Optional[str]) -> str:
    return TextNormalizer.normalize(text)


def extract_words(text: Optional[str]) -> List[str]:
    return _get_default_normalizer().extract_words(text)


def stem(word: str) -> str:
    return _get_default_normalizer().stem(word)
