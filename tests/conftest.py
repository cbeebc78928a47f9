"""
Pytest configuration and shared fixtures.
"""

import os

# Keep test runs from writing log files
os.environ.setdefault("LOG_TO_FILE", "false")

import json
from datetime import datetime, timezone
from unittest.mock import Mock, patch

import pytest

from core.lexicon import Lexicon
from core.schemas import FAQ_ENTRY_CODE, FaqRow, SessionContext

FIXED_NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)
OLD_DATE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _qa_payload(pairs, as_json=True):
    entries = [
        {"code": FAQ_ENTRY_CODE, "data": {"question": q, "answer": a}} for q, a in pairs
    ]
    return json.dumps(entries, ensure_ascii=False) if as_json else entries


@pytest.fixture
def fixed_now():
    """Reference 'now' used by time-dependent scoring tests."""
    return FIXED_NOW


@pytest.fixture
def qa_payload():
    """Build a QA payload (JSON string by default) from (question, answer) pairs."""
    return _qa_payload


@pytest.fixture
def make_row():
    """Factory for FaqRow objects with one question/answer pair."""

    def factory(
        faq_id,
        question="Question ?",
        answer="Réponse.",
        **overrides,
    ) -> FaqRow:
        data = {
            "id": faq_id,
            "title": f"FAQ {faq_id}",
            "language_code": "fr",
            "rubrique": "produit",
            "product_ref": None,
            "meta_keywords": "",
            "meta_description": "",
            "qa_data": _qa_payload([(question, answer)]),
            "last_updated": OLD_DATE,
        }
        data.update(overrides)
        return FaqRow(**data)

    return factory


@pytest.fixture
def general_session():
    return SessionContext(session_id="s-1", language_code="fr")


@pytest.fixture
def product_session():
    return SessionContext(
        session_id="s-2",
        language_code="fr",
        rubrique="compte_client",
        product_code="PRD-42",
    )


@pytest.fixture
def small_lexicon():
    """Reduced lexicon: no stop words, no stemming, one synonym group."""
    return Lexicon(
        stop_words=frozenset(),
        question_stop_words=frozenset(),
        suffixes=(),
        synonyms={"prix": ("tarif", "cout")},
    )


@pytest.fixture
def mock_db_settings():
    """Mock settings for direct database connections."""
    with patch("core.storage_base.get_database_settings") as mock:
        settings = Mock()
        settings.HOST = "localhost"
        settings.PORT = 5432
        settings.USER = "test_user"
        settings.PASSWORD.get_secret_value.return_value = "test_password"
        settings.NAME = "test_db"
        mock.return_value = settings
        yield settings
