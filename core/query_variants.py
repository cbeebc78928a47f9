"""
Query-variant generation.

Turns a normalized query and the session context into an ordered, weighted
list of alternate queries, in fixed priority order:

1. base query (weight 1.0, fallback allowed)
2. product-code-prefixed query, when the session has a product
3. rubrique-label-prefixed query, when the rubrique is not "general"
   (fallback disallowed)
4. one synonym rewrite per synonym hit, weight max(0.3, 1 - (i+1) * decay),
   fallback allowed for the first one only

Generation stops once the configured maximum is reached.
"""

import hashlib
from typing import Dict, List, Optional

from core.config import get_retrieval_settings
from core.schemas import QueryVariant, Rubrique, SessionContext
from core.synonyms import SynonymExpander
from utils.logger import get_logger

logger = get_logger(__name__)

MIN_SYNONYM_WEIGHT = 0.3


def build_cache_key(query: str, filters: Dict[str, Optional[str]]) -> str:
    """Deterministic cache key of a query and its non-empty filters."""
    filter_part = "|".join(
        sorted(f"{key}:{value}" for key, value in filters.items() if value)
    )
    digest = hashlib.sha256(f"{query}:{filter_part}".encode("utf-8")).hexdigest()
    return f"rag:{digest[:16]}"


class QueryVariantBuilder:
    """Builds weighted query variants for one retrieval."""

    def __init__(
        self,
        expander: Optional[SynonymExpander] = None,
        max_variants: Optional[int] = None,
        decay: Optional[float] = None,
    ):
        """
        Args:
            expander: Synonym expander (default: one over the default lexicon)
            max_variants: Variant cap (default: RAG_MAX_QUERY_VARIANTS)
            decay: Weight decay per generation step (default: RAG_VARIANT_DECAY)

        Raises:
            ValueError: If max_variants < 1 or decay is outside [0, 1]
        """
        settings = get_retrieval_settings()
        self.expander = expander or SynonymExpander()
        self.max_variants = (
            settings.MAX_QUERY_VARIANTS if max_variants is None else max_variants
        )
        self.decay = settings.VARIANT_DECAY if decay is None else decay

        if self.max_variants < 1:
            raise ValueError("max_variants must be at least 1")
        if not 0 <= self.decay <= 1:
            raise ValueError("decay must be between 0 and 1")

    def build(self, query: str, session: SessionContext) -> List[QueryVariant]:
        """
        Build the variants for a normalized query.

        Args:
            query: Normalized query text
            session: Caller session (language, rubrique, product)

        Returns:
            At most max_variants variants, base first
        """
        rubrique = session.rubrique.value
        base_filters = {
            "language_code": session.language_code,
            "rubrique": rubrique,
            "product_code": session.product_code,
        }
        variants: List[QueryVariant] = []

        def push(text: str, weight: float, reason: str, filters, allow_fallback: bool):
            if len(variants) >= self.max_variants:
                return
            variants.append(
                QueryVariant(
                    query=text,
                    weight=weight,
                    reason=reason,
                    filters=filters,
                    cache_key=build_cache_key(text, filters),
                    allow_fallback=allow_fallback,
                )
            )

        push(query, 1.0, "base", base_filters, True)

        if session.product_code:
            push(
                f"{session.product_code} {query}".strip(),
                1.0 - self.decay,
                "product",
                {**base_filters, "product_code": session.product_code},
                True,
            )

        if rubrique != Rubrique.GENERAL.value:
            push(
                f"{rubrique.replace('_', ' ')} {query}".strip(),
                1.0 - self.decay,
                "rubrique",
                {**base_filters, "rubrique": rubrique},
                False,
            )

        for index, rewrite in enumerate(self.expander.expand(query)):
            if len(variants) >= self.max_variants:
                break
            push(
                rewrite,
                max(MIN_SYNONYM_WEIGHT, 1.0 - (index + 1) * self.decay),
                "synonym",
                dict(base_filters),
                index == 0,
            )

        logger.debug(
            f"Built {len(variants)} variants for '{query[:50]}': "
            f"{[v.reason for v in variants]}"
        )
        return variants
