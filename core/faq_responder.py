"""
FAQ reply composition.

Runs retrieval for a user message, matches the top candidates to pick the
primary answer, and appends up to two answers from the other candidates
under a localized "other useful information" heading.
"""

from typing import List, Optional

from core.answer_matcher import AnswerMatcher
from core.config import get_matcher_settings
from core.rag_search import RagSearchService
from core.schemas import FaqAnswer, MatchResult, RetrievalResult, SessionContext
from utils.logger import get_logger

logger = get_logger(__name__)

MAX_SUPPORTING_MATCHES = 2


class FaqResponder:
    """Turns a user message into a composed FAQ answer, or None."""

    def __init__(
        self,
        search: RagSearchService,
        matcher: Optional[AnswerMatcher] = None,
        contact_support_threshold: Optional[float] = None,
    ):
        self.search = search
        self.matcher = matcher or AnswerMatcher()
        self.contact_support_threshold = (
            get_matcher_settings().CONTACT_SUPPORT_THRESHOLD
            if contact_support_threshold is None
            else contact_support_threshold
        )

    async def answer(
        self, query: str, session: Optional[SessionContext] = None
    ) -> Optional[FaqAnswer]:
        """
        Answer a user message from the FAQ.

        Args:
            query: Raw user message
            session: Caller session

        Returns:
            FaqAnswer, or None when nothing relevant was found
        """
        session = session or SessionContext()
        result = await self.search.retrieve(query, session)
        return self.answer_from_result(query, session, result)

    def answer_from_result(
        self,
        query: str,
        session: SessionContext,
        result: Optional[RetrievalResult],
    ) -> Optional[FaqAnswer]:
        """Compose the answer from an already computed retrieval result."""
        if result is None or not result.top_candidates:
            return None

        threshold = None
        if self.matcher.is_contact_support_request(query):
            threshold = self.contact_support_threshold
            logger.debug(f"Contact-support request, matching at threshold {threshold}")

        primary = self.matcher.find_best_match(
            query, result.top_rows, session.language_code, threshold=threshold
        )
        if primary is None:
            logger.info(f"No answer above threshold for '{query[:50]}'")
            return None

        supporting = self._supporting_matches(query, result, primary, session, threshold)
        message = self.compose_message(primary, supporting, session.language_code)

        return FaqAnswer(
            message=message,
            faq_id=primary.faq_id,
            match=primary,
            sources=[
                {
                    "faq_id": candidate.faq_id,
                    "title": candidate.row.title,
                    "rubrique": candidate.row.rubrique,
                    "reasons": list(candidate.sources),
                }
                for candidate in result.top_candidates
            ],
            metadata={
                "rag": True,
                "variant_count": len(result.variants),
                "total_candidates": len(result.ranked_candidates),
            },
        )

    def _supporting_matches(
        self,
        query: str,
        result: RetrievalResult,
        primary: MatchResult,
        session: SessionContext,
        threshold: Optional[float],
    ) -> List[MatchResult]:
        matches = []
        for candidate in result.top_candidates:
            if candidate.faq_id == primary.faq_id:
                continue
            match = self.matcher.find_best_match(
                query, [candidate.row], session.language_code, threshold=threshold
            )
            if match is not None:
                matches.append(match)
        return matches

    def compose_message(
        self, primary: MatchResult, supporting: List[MatchResult], language: Optional[str]
    ) -> str:
        message = primary.answer
        if supporting:
            points = "\n".join(f"• {m.answer}" for m in supporting[:MAX_SUPPORTING_MATCHES])
            heading = self.matcher.lexicon.heading_for(language)
            message += f"\n\n{heading}\n{points}"
        return message
