"""
Retrieval orchestrator.

Drives one retrieval: builds query variants, runs each through the cache and
the FAQ store (with a relaxing-filter fallback chain when a variant finds
nothing), scores every row against the session and merges rows reached by
several variants. Variants run one after another in priority order; every
variant up to the cap is attempted.

Failures are contained here: a store error or a cache error is logged and
treated as "no results" for that call, so retrieve() returns None rather
than raising for anything but programming errors.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Protocol

from core.cache import CacheBackend
from core.config import get_retrieval_settings
from core.query_variants import QueryVariantBuilder
from core.schemas import (
    FaqRow,
    QueryVariant,
    RetrievalResult,
    Rubrique,
    ScoredCandidate,
    SearchFilters,
    SessionContext,
)
from core.text_processing import TextNormalizer
from utils.logger import get_logger, PerformanceLogger

logger = get_logger(__name__)

DEFAULT_RELEVANCE = 0.2
RECENCY_BASE_BOOST = 0.1
RECENCY_SCALED_BOOST = 0.1


class CandidateStore(Protocol):
    """Search surface the orchestrator needs from the FAQ store."""

    async def search_faqs(
        self, query: str, filters: Optional[SearchFilters] = None
    ) -> List[FaqRow]: ...

    async def search_faq_content(
        self, query: str, filters: Optional[SearchFilters] = None
    ) -> List[FaqRow]: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RagSearchService:
    """
    Multi-variant FAQ retrieval with caching and score aggregation.

    Example:
        service = RagSearchService(store=FaqStore(), cache=BoundedCache())
        result = await service.retrieve("horaires du support", session)
        if result:
            rows = result.top_rows
    """

    def __init__(
        self,
        store: CandidateStore,
        cache: Optional[CacheBackend] = None,
        variant_builder: Optional[QueryVariantBuilder] = None,
        normalizer: Optional[TextNormalizer] = None,
        max_candidates_per_variant: Optional[int] = None,
        top_k: Optional[int] = None,
        min_score: Optional[float] = None,
        cache_ttl: Optional[float] = None,
        recency_days: Optional[int] = None,
        rubrique_boost: Optional[float] = None,
        product_boost: Optional[float] = None,
        fallback_limit: Optional[int] = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize the orchestrator. Unset tunables come from RAG_* settings.

        Args:
            store: FAQ store (search_faqs / search_faq_content)
            cache: Optional cache for primary search results
            variant_builder: Variant builder (default: settings-driven)
            normalizer: Text normalizer (default: default lexicon)
            now: Clock returning an aware datetime, injectable for tests

        Raises:
            ValueError: If a tunable is out of range
        """
        settings = get_retrieval_settings()

        def pick(value, default):
            return default if value is None else value

        self.store = store
        self.cache = cache
        self.variant_builder = variant_builder or QueryVariantBuilder()
        self.normalizer = normalizer or TextNormalizer()
        self.max_candidates_per_variant = pick(
            max_candidates_per_variant, settings.MAX_CANDIDATES_PER_VARIANT
        )
        self.top_k = pick(top_k, settings.TOP_K_RESULTS)
        self.min_score = pick(min_score, settings.MIN_SCORE)
        self.cache_ttl = pick(cache_ttl, settings.CACHE_TTL_SECONDS)
        self.recency_days = pick(recency_days, settings.RECENCY_BOOST_DAYS)
        self.rubrique_boost = pick(rubrique_boost, settings.RUBRIQUE_BOOST)
        self.product_boost = pick(product_boost, settings.PRODUCT_BOOST)
        self.fallback_limit = pick(fallback_limit, settings.FALLBACK_LIMIT)
        self._now = now

        for name in ("max_candidates_per_variant", "top_k", "fallback_limit"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")
        for name in ("min_score", "cache_ttl", "rubrique_boost", "product_boost"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or value < 0:
                raise ValueError(f"{name} must be a non-negative number, got {value!r}")
        if not isinstance(self.recency_days, int) or self.recency_days < 0:
            raise ValueError(
                f"recency_days must be a non-negative integer, got {self.recency_days!r}"
            )

        logger.info(
            f"RagSearchService initialized (top_k={self.top_k}, min_score={self.min_score}, "
            f"cache={'on' if cache is not None else 'off'})"
        )

    async def retrieve(
        self, query: str, session: Optional[SessionContext] = None
    ) -> Optional[RetrievalResult]:
        """
        Retrieve ranked FAQ candidates for a query.

        Candidate rows may come from the cache and are shared with later
        requests; treat them as read-only.

        Args:
            query: Raw user query
            session: Caller session (default: French, general rubrique)

        Returns:
            RetrievalResult, or None when no variant produced any candidate
        """
        session = session or SessionContext()
        normalized = self.normalizer.normalize(query)
        if not normalized:
            logger.debug("Empty query after normalization, nothing to retrieve")
            return None

        variants = self.variant_builder.build(normalized, session)
        scored: List[ScoredCandidate] = []

        with PerformanceLogger(logger, f"retrieve '{normalized[:50]}'"):
            for variant in variants:
                filters = self.build_filters(session, variant)
                rows = await self._cached_search(variant, filters)

                if not rows and variant.allow_fallback:
                    rows = await self.search_fallback(variant.query, filters)

                if rows:
                    scored.extend(self.score_rows(rows, variant, session))

        if not scored:
            logger.info(f"No candidates for '{normalized[:50]}' ({len(variants)} variants)")
            return None

        ranked = sorted(self.aggregate(scored), key=lambda c: c.score, reverse=True)
        for position, candidate in enumerate(ranked, start=1):
            candidate.rank = position

        top = ranked[: self.top_k]
        above_floor = [c for c in top if c.score >= self.min_score]
        if not above_floor:
            logger.debug(
                f"No candidate reached min_score={self.min_score}, keeping unfiltered top {len(top)}"
            )

        result = RetrievalResult(
            normalized_query=normalized,
            variants=variants,
            ranked_candidates=ranked,
            top_candidates=above_floor or top,
        )
        logger.info(
            f"Retrieved {len(ranked)} candidates for '{normalized[:50]}', "
            f"top={[c.faq_id for c in result.top_candidates]}"
        )
        return result

    def build_filters(self, session: SessionContext, variant: QueryVariant) -> SearchFilters:
        """Store filters for one variant (variant hints win over the session)."""
        rubrique = variant.filters.get("rubrique")
        if not rubrique and session.rubrique != Rubrique.GENERAL:
            rubrique = session.rubrique.value

        return SearchFilters(
            language_code=session.language_code,
            rubrique=rubrique or None,
            product_ref=variant.filters.get("product_code") or session.product_code,
            limit=self.max_candidates_per_variant,
        )

    async def _cached_search(
        self, variant: QueryVariant, filters: SearchFilters
    ) -> Optional[List[FaqRow]]:
        if self.cache is not None:
            try:
                cached = self.cache.get(variant.cache_key)
            except Exception as e:
                logger.warning(f"Cache read failed for {variant.cache_key}: {e}")
                cached = None
            if cached is not None:
                logger.debug(f"Cache hit for {variant.reason} variant ({variant.cache_key})")
                return cached

        try:
            rows = await self.store.search_faqs(variant.query, filters)
        except Exception as e:
            logger.warning(
                f"FAQ search failed for {variant.reason} variant '{variant.query[:50]}' "
                f"with {filters.model_dump(exclude_none=True)}: {e}"
            )
            return None

        if self.cache is not None and rows is not None:
            try:
                self.cache.set(variant.cache_key, rows, self.cache_ttl)
            except Exception as e:
                logger.warning(f"Cache write failed for {variant.cache_key}: {e}")
        return rows

    def fallback_filters(self, filters: SearchFilters) -> List[SearchFilters]:
        """
        Progressively relaxed filter sets, duplicates removed.

        Order: all -> no product -> no rubrique -> neither -> language only
        -> no filters. Every set carries the capped fallback limit.
        """
        limit = min(filters.limit or self.max_candidates_per_variant, self.fallback_limit)
        full = SearchFilters(
            language_code=filters.language_code or None,
            rubrique=filters.rubrique or None,
            product_ref=filters.product_ref or None,
            limit=limit,
        )
        relaxed = [
            full,
            full.model_copy(update={"product_ref": None}),
            full.model_copy(update={"rubrique": None}),
            full.model_copy(update={"product_ref": None, "rubrique": None}),
            SearchFilters(language_code=full.language_code, limit=limit),
            SearchFilters(limit=limit),
        ]

        unique: List[SearchFilters] = []
        for candidate in relaxed:
            if candidate not in unique:
                unique.append(candidate)
        return unique

    async def search_fallback(
        self, query: str, filters: SearchFilters
    ) -> Optional[List[FaqRow]]:
        """First non-empty pattern search over the relaxed filter chain (not cached)."""
        for relaxed in self.fallback_filters(filters):
            try:
                rows = await self.store.search_faq_content(query, relaxed)
            except Exception as e:
                logger.warning(
                    f"Fallback search failed for '{query[:50]}' "
                    f"with {relaxed.model_dump(exclude_none=True)}: {e}"
                )
                continue
            if rows:
                logger.info(
                    f"Fallback search matched {len(rows)} rows for '{query[:50]}' "
                    f"with {relaxed.model_dump(exclude_none=True)}"
                )
                return rows
        return None

    def score_rows(
        self, rows: List[FaqRow], variant: QueryVariant, session: SessionContext
    ) -> List[ScoredCandidate]:
        """
        Score rows from one variant.

        score = (enhanced_relevance, else relevance, else 0.2) * variant weight,
        plus the product boost, the rubrique boost, and a recency boost of
        0.1 to 0.2 for rows updated within the recency window.
        """
        now = self._now()
        window = timedelta(days=self.recency_days)
        cutoff = now - window
        candidates = []

        for row in rows:
            if row.enhanced_relevance is not None:
                base = row.enhanced_relevance
            elif row.relevance is not None:
                base = row.relevance
            else:
                base = DEFAULT_RELEVANCE
            score = base * variant.weight

            if session.product_code and row.product_ref == session.product_code:
                score += self.product_boost

            if row.rubrique and row.rubrique == session.rubrique.value:
                score += self.rubrique_boost

            if row.last_updated is not None and window and row.last_updated >= cutoff:
                fraction = (row.last_updated - cutoff) / window
                score += RECENCY_BASE_BOOST + RECENCY_SCALED_BOOST * min(1.0, fraction)

            logger.debug(f"faq {row.id} scored {score:.3f} via {variant.reason}")
            candidates.append(
                ScoredCandidate(faq_id=row.id, row=row, score=score, sources=[variant.reason])
            )

        return candidates

    @staticmethod
    def aggregate(candidates: List[ScoredCandidate]) -> List[ScoredCandidate]:
        """Merge candidates by faq id: max score, union of sources, first row kept."""
        merged: Dict[int, ScoredCandidate] = {}
        for candidate in candidates:
            existing = merged.get(candidate.faq_id)
            if existing is None:
                merged[candidate.faq_id] = ScoredCandidate(
                    faq_id=candidate.faq_id,
                    row=candidate.row,
                    score=candidate.score,
                    sources=list(candidate.sources),
                )
                continue
            existing.score = max(existing.score, candidate.score)
            for source in candidate.sources:
                if source not in existing.sources:
                    existing.sources.append(source)
        return list(merged.values())

    def invalidate_cache(self) -> int:
        """Drop cached search results, e.g. after the FAQ store was re-synced."""
        invalidate = getattr(self.cache, "invalidate_prefix", None)
        if invalidate is None:
            return 0
        return invalidate("rag:")
