"""
FAQ store adapter.

Query surface over the faq_search_view view (active FAQ records only). The
primary search unions four strategies, each tagging its rows with a
provisional relevance and a search_type:

    fulltext       ts_rank over title, keywords and description
    json_enhanced  substring/word-boundary match inside the QA payload
                   (question 3.0 / answer 2.5 exact, question 2.0 / answer 1.5 word, else 1.0)
    word_match     per-word substring in questions, answers or title (1.2)
    metadata_like  substring in title, keywords or description (0.8)

Rows are then de-duplicated by id (highest relevance kept) and re-scored by
an enhanced-relevance post-pass before being returned as FaqRow objects.
"""

from typing import Any, Dict, List, Optional, Tuple

from core.config import get_retrieval_settings
from core.schemas import FaqRow, QAPayloadError, SearchFilters, to_faq_row
from core.storage_base import BaseStorageClient
from core.text_processing import TextNormalizer
from utils.logger import get_logger, PerformanceLogger

logger = get_logger(__name__)

FAQ_VIEW = "faq_search_view"

ROW_COLUMNS = (
    "id, title, language_code, rubrique, product_ref, "
    "meta_keywords, meta_description, qa_data, last_updated"
)

QUESTION_TEXT = (
    "lower(jsonb_path_query_array(qa_data::jsonb, 'lax $[*].data.question')::text)"
)
ANSWER_TEXT = (
    "lower(jsonb_path_query_array(qa_data::jsonb, 'lax $[*].data.answer')::text)"
)
METADATA_VECTOR = (
    "to_tsvector('french', coalesce(title, '') || ' ' || "
    "coalesce(meta_keywords, '') || ' ' || coalesce(meta_description, ''))"
)

# Relevance tiers
EXACT_QUESTION_TIER = 3.0
EXACT_ANSWER_TIER = 2.5
WORD_QUESTION_TIER = 2.0
WORD_ANSWER_TIER = 1.5
JSON_DEFAULT_TIER = 1.0
WORD_MATCH_TIER = 1.2
METADATA_TIER = 0.8

# Enhanced-relevance post-pass
EXACT_PHRASE_BOOST = 2.0
QUESTION_WORD_BOOST = 0.8
ANSWER_WORD_BOOST = 0.6
TITLE_WORD_BOOST = 0.4


def like_pattern(term: str) -> str:
    """Wrap a term in % wildcards, escaping LIKE metacharacters."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def filter_clauses(filters: SearchFilters) -> Tuple[str, Dict[str, Any]]:
    """SQL AND-clauses and params for the optional filters."""
    clauses = []
    params: Dict[str, Any] = {}
    if filters.language_code:
        clauses.append("language_code = %(language_code)s")
        params["language_code"] = filters.language_code
    if filters.rubrique:
        clauses.append("rubrique = %(rubrique)s")
        params["rubrique"] = filters.rubrique
    if filters.product_ref:
        clauses.append("product_ref = %(product_ref)s")
        params["product_ref"] = filters.product_ref
    sql = "".join(f" AND {clause}" for clause in clauses)
    return sql, params


class FaqStore(BaseStorageClient):
    """Read-only search and lookup over active FAQ records."""

    def __init__(self, connection_pool=None, normalizer: Optional[TextNormalizer] = None):
        super().__init__(connection_pool)
        self.normalizer = normalizer or TextNormalizer()
        self.default_limit = get_retrieval_settings().MAX_CANDIDATES_PER_VARIANT

    def _limit(self, filters: SearchFilters) -> int:
        return filters.limit or self.default_limit

    def build_search_query(
        self, normalized: str, words: List[str], filters: SearchFilters
    ) -> Tuple[str, Dict[str, Any]]:
        """
        Build the four-strategy UNION query.

        Args:
            normalized: Normalized search text
            words: Stemmed significant words of the search text
            filters: Narrowing filters (limit defaults to the per-variant cap)

        Returns:
            (sql, params) with named placeholders shared by every arm
        """
        filter_sql, params = filter_clauses(filters)
        params.update(
            {
                "search_term": normalized,
                "exact_pattern": like_pattern(normalized),
                "limit": self._limit(filters),
            }
        )

        arms = [
            f"""
            SELECT {ROW_COLUMNS},
                ts_rank({METADATA_VECTOR}, plainto_tsquery('french', %(search_term)s))::float8 AS relevance,
                'fulltext' AS search_type
            FROM {FAQ_VIEW}
            WHERE {METADATA_VECTOR} @@ plainto_tsquery('french', %(search_term)s){filter_sql}
            """
        ]

        tiers = [
            f"WHEN {QUESTION_TEXT} LIKE %(exact_pattern)s THEN {EXACT_QUESTION_TIER}",
            f"WHEN {ANSWER_TEXT} LIKE %(exact_pattern)s THEN {EXACT_ANSWER_TIER}",
        ]
        json_conditions = [
            f"{QUESTION_TEXT} LIKE %(exact_pattern)s",
            f"{ANSWER_TEXT} LIKE %(exact_pattern)s",
        ]
        if words:
            params["word_regex"] = r"\y(" + "|".join(words) + r")\y"
            tiers += [
                f"WHEN {QUESTION_TEXT} ~ %(word_regex)s THEN {WORD_QUESTION_TIER}",
                f"WHEN {ANSWER_TEXT} ~ %(word_regex)s THEN {WORD_ANSWER_TIER}",
            ]
            json_conditions += [
                f"{QUESTION_TEXT} ~ %(word_regex)s",
                f"{ANSWER_TEXT} ~ %(word_regex)s",
            ]

        arms.append(
            f"""
            SELECT {ROW_COLUMNS},
                (CASE {' '.join(tiers)} ELSE {JSON_DEFAULT_TIER} END)::float8 AS relevance,
                'json_enhanced' AS search_type
            FROM {FAQ_VIEW}
            WHERE ({' OR '.join(json_conditions)}){filter_sql}
            """
        )

        if words:
            word_conditions = []
            for index, word in enumerate(words):
                key = f"word_{index}"
                params[key] = like_pattern(word)
                word_conditions.append(
                    f"{QUESTION_TEXT} LIKE %({key})s OR {ANSWER_TEXT} LIKE %({key})s "
                    f"OR lower(title) LIKE %({key})s"
                )
            arms.append(
                f"""
                SELECT {ROW_COLUMNS},
                    {WORD_MATCH_TIER}::float8 AS relevance,
                    'word_match' AS search_type
                FROM {FAQ_VIEW}
                WHERE ({' OR '.join(word_conditions)}){filter_sql}
                """
            )

        arms.append(
            f"""
            SELECT {ROW_COLUMNS},
                {METADATA_TIER}::float8 AS relevance,
                'metadata_like' AS search_type
            FROM {FAQ_VIEW}
            WHERE (lower(title) LIKE %(exact_pattern)s
                OR lower(coalesce(meta_keywords, '')) LIKE %(exact_pattern)s
                OR lower(coalesce(meta_description, '')) LIKE %(exact_pattern)s){filter_sql}
            """
        )

        sql = (
            " UNION ALL ".join(arm.strip() for arm in arms)
            + " ORDER BY relevance DESC, last_updated DESC LIMIT %(limit)s"
        )
        return sql, params

    async def search_faqs(
        self, query: str, filters: Optional[SearchFilters] = None
    ) -> List[FaqRow]:
        """
        Primary multi-strategy search.

        Args:
            query: Free-text query (normalized here)
            filters: Optional narrowing filters

        Returns:
            De-duplicated rows sorted by enhanced relevance, then recency

        Raises:
            ConnectionError: If the database query fails
        """
        filters = filters or SearchFilters()
        normalized = self.normalizer.normalize(query)
        if not normalized:
            return []

        words = self.normalizer.extract_words(normalized)
        sql, params = self.build_search_query(normalized, words, filters)

        with PerformanceLogger(logger, f"search_faqs '{normalized[:50]}'"):
            raw_rows = await self.fetch_all(sql, params)

        rows = self.deduplicate_and_score(
            [to_faq_row(row) for row in raw_rows], normalized, words
        )
        logger.debug(
            f"search_faqs returned {len(rows)} unique rows "
            f"({len(raw_rows)} raw) for '{normalized[:50]}'"
        )
        return rows

    def deduplicate_and_score(
        self, rows: List[FaqRow], normalized: str, words: List[str]
    ) -> List[FaqRow]:
        """Keep the highest-relevance row per id and attach enhanced_relevance."""
        best: Dict[int, FaqRow] = {}
        for row in rows:
            current = best.get(row.id)
            if current is None or (row.relevance or 0) > (current.relevance or 0):
                best[row.id] = row

        unique = list(best.values())
        for row in unique:
            row.enhanced_relevance = self.enhanced_relevance(row, normalized, words)

        return sorted(
            unique,
            key=lambda r: (
                r.enhanced_relevance or 0,
                r.last_updated.timestamp() if r.last_updated else 0,
            ),
            reverse=True,
        )

    @staticmethod
    def enhanced_relevance(row: FaqRow, normalized: str, words: List[str]) -> float:
        """
        Relevance boosted by exact-phrase and per-word hits.

        +2.0 if the phrase appears in any question, answer or the title, then
        per word +0.8 per question, +0.6 per answer and +0.4 for the title
        containing it. A row with an unreadable payload keeps its relevance.
        """
        score = row.relevance or 0.0
        try:
            entries = row.qa_entries()
        except QAPayloadError:
            return score

        questions = [e.question.lower() for e in entries if e.question]
        answers = [e.answer.lower() for e in entries if e.answer]
        title = (row.title or "").lower()

        if (
            any(normalized in q for q in questions)
            or any(normalized in a for a in answers)
            or normalized in title
        ):
            score += EXACT_PHRASE_BOOST

        for word in words:
            score += QUESTION_WORD_BOOST * sum(1 for q in questions if word in q)
            score += ANSWER_WORD_BOOST * sum(1 for a in answers if word in a)
            if word in title:
                score += TITLE_WORD_BOOST

        return score

    async def search_faq_content(
        self, query: str, filters: Optional[SearchFilters] = None
    ) -> List[FaqRow]:
        """
        Pattern-only search used by the fallback chain.

        Case-insensitive substring match over questions, answers, title,
        keywords and description, most recent first.

        Raises:
            ConnectionError: If the database query fails
        """
        filters = filters or SearchFilters()
        filter_sql, params = filter_clauses(filters)
        params["pattern"] = like_pattern((query or "").strip())
        params["limit"] = self._limit(filters)

        sql = f"""
            SELECT {ROW_COLUMNS}
            FROM {FAQ_VIEW}
            WHERE ({QUESTION_TEXT} ILIKE %(pattern)s
                OR {ANSWER_TEXT} ILIKE %(pattern)s
                OR title ILIKE %(pattern)s
                OR meta_keywords ILIKE %(pattern)s
                OR meta_description ILIKE %(pattern)s){filter_sql}
            ORDER BY last_updated DESC
            LIMIT %(limit)s
        """

        with PerformanceLogger(logger, f"search_faq_content '{query[:50]}'"):
            raw_rows = await self.fetch_all(sql, params)
        return [to_faq_row(row) for row in raw_rows]

    async def get_faqs(
        self, filters: Optional[SearchFilters] = None, search: Optional[str] = None
    ) -> List[FaqRow]:
        """
        Direct filtered lookup, most recent first.

        Args:
            filters: Optional narrowing filters; no limit when filters.limit is unset
            search: Optional full-text condition on title/keywords/description

        Raises:
            ConnectionError: If the database query fails
        """
        filters = filters or SearchFilters()
        filter_sql, params = filter_clauses(filters)

        sql = f"SELECT {ROW_COLUMNS} FROM {FAQ_VIEW} WHERE 1=1{filter_sql}"
        if search:
            sql += f" AND {METADATA_VECTOR} @@ plainto_tsquery('french', %(search)s)"
            params["search"] = search
        sql += " ORDER BY last_updated DESC"
        if filters.limit:
            sql += " LIMIT %(limit)s"
            params["limit"] = filters.limit

        raw_rows = await self.fetch_all(sql, params)
        logger.debug(f"get_faqs returned {len(raw_rows)} rows")
        return [to_faq_row(row) for row in raw_rows]

    async def get_faq_by_id(self, faq_id: int) -> Optional[FaqRow]:
        """
        Fetch one active FAQ record.

        Raises:
            ConnectionError: If the database query fails
        """
        raw_rows = await self.fetch_all(
            "SELECT * FROM faqs WHERE id = %(id)s AND is_active = TRUE",
            {"id": faq_id},
        )
        if not raw_rows:
            return None
        return to_faq_row(raw_rows[0])
