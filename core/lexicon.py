"""
Lexicon resource loading.

The stop-word lists, the stemming suffix table, the synonym map and the
"contact support" key phrases are domain data, kept in a JSON resource
(core/resources/lexicon_fr.json) rather than in code. Tests can build a
reduced Lexicon directly or point MATCH_LEXICON_PATH at another file.
"""

import json
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, FrozenSet, Mapping, Optional, Tuple, Union

from core.config import get_matcher_settings
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_LEXICON_PATH = Path(__file__).parent / "resources" / "lexicon_fr.json"

_REQUIRED_KEYS = ("stop_words", "question_stop_words", "suffixes", "synonyms")


@dataclass(frozen=True)
class Lexicon:
    """
    Immutable bundle of the language tables used for matching.

    Attributes:
        stop_words: Words dropped when extracting search words (store side)
        question_stop_words: Words dropped when comparing a query to a question
        suffixes: Ordered suffix table; the first matching suffix is stripped
        synonyms: Canonical term -> related terms
        contact_key_phrases: Phrases signalling a "contact support" request
        contact_markers: Words a question must contain to honour a key phrase
        other_info_heading: Language code -> heading for secondary answers
    """

    stop_words: FrozenSet[str]
    question_stop_words: FrozenSet[str]
    suffixes: Tuple[str, ...]
    synonyms: Mapping[str, Tuple[str, ...]]
    contact_key_phrases: Tuple[str, ...] = ()
    contact_markers: Tuple[str, ...] = ("contacter", "contact")
    other_info_heading: Mapping[str, str] = field(default_factory=dict)
    language: str = "fr"

    @classmethod
    def from_dict(cls, data: Mapping) -> "Lexicon":
        """
        Build a Lexicon from decoded JSON.

        Raises:
            ValueError: If a required table is missing or has the wrong shape
        """
        missing = [key for key in _REQUIRED_KEYS if key not in data]
        if missing:
            raise ValueError(f"Lexicon is missing required tables: {missing}")

        synonyms = data["synonyms"]
        if not isinstance(synonyms, dict):
            raise ValueError("Lexicon 'synonyms' must be an object of lists")

        return cls(
            stop_words=frozenset(w.lower() for w in data["stop_words"]),
            question_stop_words=frozenset(
                w.lower() for w in data["question_stop_words"]
            ),
            suffixes=tuple(data["suffixes"]),
            synonyms={
                key.lower(): tuple(term.lower() for term in terms)
                for key, terms in synonyms.items()
            },
            contact_key_phrases=tuple(data.get("contact_key_phrases", ())),
            contact_markers=tuple(
                data.get("contact_markers", ("contacter", "contact"))
            ),
            other_info_heading=dict(data.get("other_info_heading", {})),
            language=data.get("language", "fr"),
        )

    def heading_for(self, language: Optional[str]) -> str:
        """Heading used when appending secondary answers to a reply."""
        if language and language in self.other_info_heading:
            return self.other_info_heading[language]
        return self.other_info_heading.get(
            self.language, "Autres informations utiles :"
        )


def load_lexicon(path: Optional[Union[str, Path]] = None) -> Lexicon:
    """
    Load a lexicon from a JSON file.

    Args:
        path: JSON file to read (default: the bundled French lexicon)

    Returns:
        Lexicon instance

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not valid JSON or misses required tables
    """
    lexicon_path = Path(path) if path else DEFAULT_LEXICON_PATH

    try:
        with open(lexicon_path, "r", encoding="utf-8") as f:
            data: Dict = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid lexicon file {lexicon_path}: {e}") from e

    lexicon = Lexicon.from_dict(data)
    logger.debug(
        f"Loaded lexicon from {lexicon_path}: {len(lexicon.suffixes)} suffixes, "
        f"{len(lexicon.synonyms)} synonym groups"
    )
    return lexicon


@lru_cache()
def get_lexicon() -> Lexicon:
    """Default lexicon (MATCH_LEXICON_PATH or the bundled French tables)."""
    return load_lexicon(get_matcher_settings().LEXICON_PATH)
