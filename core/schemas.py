"""
Data model for the FAQ retrieval core.

Boundary records (rows read from the FAQ store, search filters, the caller's
session context) are pydantic models so they are validated where they enter
the core. In-process results (variants, scored candidates, matches) are plain
dataclasses with a to_dict() for logging and the CLI.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

FAQ_ENTRY_CODE = "app.faq_entry"


class Rubrique(str, Enum):
    """Closed set of page-context categories."""

    PRODUIT = "produit"
    COMPTE_CLIENT = "compte_client"
    TUNNEL_VENTE = "tunnel_vente"
    GENERAL = "general"


class QAPayloadError(ValueError):
    """Raised when a row's QA payload cannot be decoded into entries."""


# QA pair
class QAEntry(BaseModel):
    """A single question/answer pair from a FAQ record's payload."""

    question: str = ""
    answer: str = ""
    code: str = FAQ_ENTRY_CODE


def parse_qa_payload(raw: Any) -> List[QAEntry]:
    """
    Normalize a QA payload to a list of entries.

    The payload is stored either as a JSON string or already decoded, and
    holds a single {code, data: {question, answer}} object or a list of them.
    Items not tagged with the FAQ entry code (or without a data object) are
    ignored.

    Args:
        raw: Payload as read from the store

    Returns:
        List of QAEntry in payload order

    Raises:
        QAPayloadError: If the payload is not valid JSON or not an object/list
    """
    if raw is None:
        return []

    payload = raw
    if isinstance(raw, (str, bytes)):
        try:
            payload = json.loads(raw)
        except ValueError as e:
            # JSONDecodeError or UnicodeDecodeError on undecodable bytes
            raise QAPayloadError(f"Invalid QA payload JSON: {e}") from e

    if isinstance(payload, dict):
        items = [payload]
    elif isinstance(payload, list):
        items = payload
    else:
        raise QAPayloadError(
            f"QA payload must be an object or a list, got {type(payload).__name__}"
        )

    entries = []
    for item in items:
        if not isinstance(item, dict) or item.get("code") != FAQ_ENTRY_CODE:
            continue
        data = item.get("data")
        if not isinstance(data, dict):
            continue
        entries.append(
            QAEntry(
                question=str(data.get("question") or ""),
                answer=str(data.get("answer") or ""),
                code=FAQ_ENTRY_CODE,
            )
        )
    return entries


# FAQ row
class FaqRow(BaseModel):
    """
    A FAQ record as returned by the store's search views.

    relevance and enhanced_relevance are only present on rows produced by a
    search; search_type tags the strategy that surfaced the row.
    """

    model_config = ConfigDict(extra="ignore")

    id: int
    title: str = ""
    language_code: str = "fr"
    rubrique: Optional[str] = Rubrique.GENERAL.value
    product_ref: Optional[str] = None
    product_name: Optional[str] = None
    meta_keywords: Optional[str] = None
    meta_description: Optional[str] = None
    qa_data: Any = None
    last_updated: Optional[datetime] = None
    relevance: Optional[float] = None
    enhanced_relevance: Optional[float] = None
    search_type: Optional[str] = None

    _qa_entries: Optional[List[QAEntry]] = PrivateAttr(default=None)

    @field_validator("last_updated")
    @classmethod
    def naive_timestamps_are_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def qa_entries(self) -> List[QAEntry]:
        """
        Parsed QA entries (memoised).

        Raises:
            QAPayloadError: If qa_data cannot be decoded
        """
        if self._qa_entries is None:
            self._qa_entries = parse_qa_payload(self.qa_data)
        return self._qa_entries


# Search filters
class SearchFilters(BaseModel):
    """Optional narrowing applied to every store search."""

    language_code: Optional[str] = None
    rubrique: Optional[str] = None
    product_ref: Optional[str] = None
    limit: Optional[int] = Field(default=None, ge=1)

    def is_empty(self) -> bool:
        return not (self.language_code or self.rubrique or self.product_ref)


# Caller session
class SessionContext(BaseModel):
    """Context of the conversation a query belongs to."""

    session_id: Optional[str] = None
    language_code: str = "fr"
    rubrique: Rubrique = Rubrique.GENERAL
    product_code: Optional[str] = None

    @field_validator("rubrique", mode="before")
    @classmethod
    def default_rubrique(cls, value):
        return value or Rubrique.GENERAL

    @field_validator("product_code", mode="before")
    @classmethod
    def blank_product_is_none(cls, value):
        return value or None


@dataclass
class QueryVariant:
    """
    An alternate phrasing of the user's query.

    Attributes:
        query: Query text sent to the store
        weight: Confidence multiplier (base variant is 1.0)
        reason: base, product, rubrique or synonym
        filters: Filter hints carried by this variant
        cache_key: Deterministic key of query + non-empty filters
        allow_fallback: Whether an empty result triggers the fallback chain
    """

    query: str
    weight: float
    reason: str
    filters: Dict[str, Optional[str]]
    cache_key: str
    allow_fallback: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "weight": round(self.weight, 4),
            "reason": self.reason,
            "filters": dict(self.filters),
            "cache_key": self.cache_key,
            "allow_fallback": self.allow_fallback,
        }


@dataclass
class ScoredCandidate:
    """
    A FAQ row scored against the session, possibly reached by several variants.

    Attributes:
        faq_id: FAQ record identifier
        row: Source row (first row seen for this id)
        score: Best score across contributing variants
        sources: Reasons of the variants that surfaced this row
        rank: Position in the ranked list (1-indexed, 0 before ranking)
    """

    faq_id: int
    row: FaqRow
    score: float
    sources: List[str] = field(default_factory=list)
    rank: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rank": self.rank,
            "faq_id": self.faq_id,
            "title": self.row.title,
            "rubrique": self.row.rubrique,
            "score": round(self.score, 4),
            "sources": list(self.sources),
        }


@dataclass
class RetrievalResult:
    """Output of RagSearchService.retrieve()."""

    normalized_query: str
    variants: List[QueryVariant]
    ranked_candidates: List[ScoredCandidate]
    top_candidates: List[ScoredCandidate]

    @property
    def top_rows(self) -> List[FaqRow]:
        return [candidate.row for candidate in self.top_candidates]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "normalized_query": self.normalized_query,
            "variants": [v.to_dict() for v in self.variants],
            "ranked_candidates": [c.to_dict() for c in self.ranked_candidates],
            "top_candidates": [c.to_dict() for c in self.top_candidates],
        }


@dataclass
class MatchResult:
    """Best question/answer pair chosen by the answer matcher."""

    faq_id: int
    question: str
    answer: str
    score: float
    match_type: str
    title: str = ""
    rubrique: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "faq_id": self.faq_id,
            "question": self.question,
            "answer": self.answer,
            "score": round(self.score, 4),
            "match_type": self.match_type,
            "title": self.title,
            "rubrique": self.rubrique,
        }


@dataclass
class FaqAnswer:
    """Composed reply produced by FaqResponder."""

    message: str
    faq_id: int
    match: MatchResult
    sources: List[Dict[str, Any]] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "faq_id": self.faq_id,
            "match": self.match.to_dict(),
            "sources": list(self.sources),
            "metadata": dict(self.metadata),
        }


RowLike = Union[FaqRow, Dict[str, Any]]


def to_faq_row(row: RowLike) -> FaqRow:
    """Coerce a store row (dict or FaqRow) into a FaqRow."""
    if isinstance(row, FaqRow):
        return row
    return FaqRow.model_validate(row)
