"""
Answer matching.

Scores every question/answer pair of the candidate rows against the user's
query and keeps the best one. Four sub-scores are computed per question:

- exact: 1.0 when the normalized query and question contain one another,
  0.9 when the query is a "contact support" key phrase and the question is
  about contacting
- semantic: share of query words found in the question words (1 each), or
  reached through a synonym (SYNONYM_CREDIT each)
- partial: share of query words of 4+ characters found as substrings of the
  question (PARTIAL_CREDIT each)
- order: share of adjacent query-word pairs appearing in the same order in
  the question

composite = 0.4 exact + 0.3 semantic + 0.2 partial + 0.1 order
            + 0.1 * row relevance
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional

from pydantic import ValidationError

from core.config import get_matcher_settings
from core.lexicon import Lexicon, get_lexicon
from core.schemas import MatchResult, QAPayloadError, RowLike, to_faq_row
from core.synonyms import SynonymExpander
from core.text_processing import TextNormalizer
from utils.logger import get_logger

logger = get_logger(__name__)

# Composite weights
EXACT_WEIGHT = 0.4
SEMANTIC_WEIGHT = 0.3
PARTIAL_WEIGHT = 0.2
ORDER_WEIGHT = 0.1
RELEVANCE_WEIGHT = 0.1

# Sub-score credits
CONTAINMENT_SCORE = 1.0
KEY_PHRASE_SCORE = 0.9
SYNONYM_CREDIT = 0.8
PARTIAL_CREDIT = 0.7
PARTIAL_MIN_LENGTH = 4

# Match-type cut-offs (strictly greater than)
EXACT_CUTOFF = 0.8
SEMANTIC_CUTOFF = 0.7
PARTIAL_CUTOFF = 0.6


@dataclass
class SubScores:
    exact: float
    semantic: float
    partial: float
    order: float

    @property
    def composite(self) -> float:
        return (
            EXACT_WEIGHT * self.exact
            + SEMANTIC_WEIGHT * self.semantic
            + PARTIAL_WEIGHT * self.partial
            + ORDER_WEIGHT * self.order
        )

    @property
    def match_type(self) -> str:
        if self.exact > EXACT_CUTOFF:
            return "exact"
        if self.semantic > SEMANTIC_CUTOFF:
            return "semantic"
        if self.partial > PARTIAL_CUTOFF:
            return "partial"
        return "weak"


class AnswerMatcher:
    """Picks the best question/answer pair among candidate FAQ rows."""

    def __init__(
        self,
        lexicon: Optional[Lexicon] = None,
        expander: Optional[SynonymExpander] = None,
        threshold: Optional[float] = None,
    ):
        """
        Args:
            lexicon: Language tables (default: the configured lexicon)
            expander: Synonym expander (default: one over the same lexicon)
            threshold: Default acceptance threshold (default: MATCH_THRESHOLD)

        Raises:
            ValueError: If the threshold is not a non-negative number
        """
        self.lexicon = lexicon or get_lexicon()
        self.normalizer = TextNormalizer(self.lexicon)
        self.expander = expander or SynonymExpander(self.lexicon, self.normalizer)
        self.threshold = get_matcher_settings().THRESHOLD if threshold is None else threshold
        self._check_threshold(self.threshold)
        self._key_phrases = [self.normalizer.normalize(p) for p in self.lexicon.contact_key_phrases]

    @staticmethod
    def _check_threshold(threshold) -> None:
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)) or threshold < 0:
            raise ValueError(f"threshold must be a non-negative number, got {threshold!r}")

    def is_contact_support_request(self, query: str) -> bool:
        """True if the query asks how to contact support."""
        tokens = self.normalizer.tokenize(query)
        return "contacter" in tokens and "support" in tokens

    # Sub-scores

    def exact_score(self, query: str, question: str) -> float:
        """Containment either way, else the contact key-phrase equivalence."""
        if not query or not question:
            return 0.0
        if query in question or question in query:
            return CONTAINMENT_SCORE

        about_contact = any(marker in question for marker in self.lexicon.contact_markers)
        if about_contact:
            for phrase in self._key_phrases:
                if phrase in query or query in phrase:
                    return KEY_PHRASE_SCORE
        return 0.0

    def semantic_score(self, query_words: List[str], question_words: List[str]) -> float:
        if not query_words:
            return 0.0

        targets = set(question_words)
        matches = 0.0
        for word in query_words:
            if word in targets:
                matches += 1
                continue
            for synonym in self.expander.synonyms_of(word):
                if synonym in targets or self.normalizer.stem(synonym) in targets:
                    matches += SYNONYM_CREDIT
                    break
        return matches / len(query_words)

    @staticmethod
    def partial_score(query_tokens: List[str], question: str) -> float:
        if not query_tokens:
            return 0.0
        hits = sum(
            1 for token in query_tokens if len(token) >= PARTIAL_MIN_LENGTH and token in question
        )
        return PARTIAL_CREDIT * hits / len(query_tokens)

    @staticmethod
    def order_score(query_words: List[str], question_words: List[str]) -> float:
        """Adjacent query-word pairs whose first occurrences keep their order."""
        if len(query_words) < 2:
            return 0.0

        in_order = 0
        for first, second in zip(query_words, query_words[1:]):
            if first in question_words and second in question_words:
                if question_words.index(first) < question_words.index(second):
                    in_order += 1
        return in_order / (len(query_words) - 1)

    def score_question(self, query: str, question: str) -> SubScores:
        """Sub-scores of a raw question against a raw query."""
        normalized_query = self.normalizer.normalize(query)
        normalized_question = self.normalizer.normalize(question)
        query_words = self.normalizer.question_words(normalized_query)
        question_words = self.normalizer.question_words(normalized_question)

        return SubScores(
            exact=self.exact_score(normalized_query, normalized_question),
            semantic=self.semantic_score(query_words, question_words),
            partial=self.partial_score(normalized_query.split(), normalized_question),
            order=self.order_score(query_words, question_words),
        )

    # Best match

    def find_best_match(
        self,
        query: str,
        rows: Iterable[RowLike],
        language_hint: Optional[str] = None,
        threshold: Optional[float] = None,
    ) -> Optional[MatchResult]:
        """
        Best question/answer pair across all candidate rows.

        Rows whose payload cannot be read are logged and skipped.

        Args:
            query: Raw user query
            rows: Candidate rows (FaqRow or store dicts)
            language_hint: Session language, used for logging only
            threshold: Acceptance threshold (default: the matcher's)

        Returns:
            MatchResult with the strictly highest composite score at or above
            the threshold, or None
        """
        threshold = self.threshold if threshold is None else threshold
        self._check_threshold(threshold)

        normalized_query = self.normalizer.normalize(query)
        if not normalized_query:
            return None
        query_words = self.normalizer.question_words(normalized_query)
        query_tokens = normalized_query.split()

        best: Optional[MatchResult] = None
        best_score = 0.0
        scanned = 0

        for raw in rows:
            try:
                row = to_faq_row(raw)
                entries = row.qa_entries()
            except (QAPayloadError, ValidationError) as e:
                faq_id = raw.get("id") if isinstance(raw, dict) else getattr(raw, "id", None)
                logger.warning(f"Skipping FAQ {faq_id}: unreadable QA payload ({e})")
                continue

            relevance = row.enhanced_relevance or row.relevance or 0.0
            for entry in entries:
                scanned += 1
                question = self.normalizer.normalize(entry.question)
                question_words = self.normalizer.question_words(question)
                scores = SubScores(
                    exact=self.exact_score(normalized_query, question),
                    semantic=self.semantic_score(query_words, question_words),
                    partial=self.partial_score(query_tokens, question),
                    order=self.order_score(query_words, question_words),
                )
                total = scores.composite + RELEVANCE_WEIGHT * relevance

                if total > best_score and total >= threshold:
                    best_score = total
                    best = MatchResult(
                        faq_id=row.id,
                        question=entry.question,
                        answer=entry.answer,
                        score=total,
                        match_type=scores.match_type,
                        title=row.title,
                        rubrique=row.rubrique,
                    )

        if best is None:
            logger.debug(
                f"No match above {threshold} for '{normalized_query[:50]}' "
                f"({scanned} questions, language={language_hint or self.lexicon.language})"
            )
        else:
            logger.info(
                f"Best match faq {best.faq_id} ({best.match_type}, {best.score:.3f}) "
                f"for '{normalized_query[:50]}' (language={language_hint or self.lexicon.language})"
            )
        return best
