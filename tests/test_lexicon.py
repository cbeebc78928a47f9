"""
Tests for the lexicon resource loader.
"""

import json

import pytest

from core.config import get_matcher_settings
from core.lexicon import DEFAULT_LEXICON_PATH, Lexicon, get_lexicon, load_lexicon


@pytest.fixture
def reset_lexicon_cache():
    get_matcher_settings.cache_clear()
    get_lexicon.cache_clear()
    yield
    get_matcher_settings.cache_clear()
    get_lexicon.cache_clear()


class TestDefaultLexicon:
    """Test suite for the bundled French lexicon."""

    def test_loads_bundled_file(self):
        lexicon = load_lexicon()

        assert DEFAULT_LEXICON_PATH.exists()
        assert lexicon.language == "fr"
        assert len(lexicon.suffixes) == 21
        assert lexicon.suffixes[0] == "ation"
        assert lexicon.suffixes[-1] == "s"

    def test_stop_word_sets(self):
        lexicon = load_lexicon()

        assert "le" in lexicon.stop_words
        assert "comment" not in lexicon.stop_words
        assert "comment" in lexicon.question_stop_words
        assert "puis" in lexicon.question_stop_words

    def test_synonym_groups(self):
        lexicon = load_lexicon()

        assert "support" in lexicon.synonyms
        assert "assistance" in lexicon.synonyms["support"]
        assert "tarif" in lexicon.synonyms["prix"]

    def test_contact_tables(self):
        lexicon = load_lexicon()

        assert "contacter le support" in lexicon.contact_key_phrases
        assert lexicon.contact_markers == ("contacter", "contact")

    def test_heading_for_language(self):
        lexicon = load_lexicon()

        assert lexicon.heading_for("fr") == "Autres informations utiles :"
        assert lexicon.heading_for("en") == "Other useful information:"
        assert lexicon.heading_for("de") == "Autres informations utiles :"
        assert lexicon.heading_for(None) == "Autres informations utiles :"


class TestLoadLexicon:
    """Test suite for loading alternate lexicon files."""

    def test_load_custom_file(self, tmp_path):
        path = tmp_path / "mini.json"
        path.write_text(
            json.dumps(
                {
                    "language": "en",
                    "stop_words": ["The"],
                    "question_stop_words": ["how"],
                    "suffixes": ["ing"],
                    "synonyms": {"Price": ["Cost"]},
                }
            ),
            encoding="utf-8",
        )

        lexicon = load_lexicon(path)

        assert lexicon.language == "en"
        assert lexicon.stop_words == frozenset({"the"})
        assert lexicon.synonyms == {"price": ("cost",)}
        assert lexicon.contact_key_phrases == ()

    def test_missing_tables_raise(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text(json.dumps({"stop_words": []}), encoding="utf-8")

        with pytest.raises(ValueError, match="missing required tables"):
            load_lexicon(path)

    def test_invalid_json_raises_value_error(self, tmp_path):
        path = tmp_path / "invalid.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(ValueError, match="Invalid lexicon file"):
            load_lexicon(path)

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_lexicon(tmp_path / "absent.json")

    def test_synonyms_must_be_an_object(self):
        with pytest.raises(ValueError, match="synonyms"):
            Lexicon.from_dict(
                {
                    "stop_words": [],
                    "question_stop_words": [],
                    "suffixes": [],
                    "synonyms": ["prix"],
                }
            )


class TestGetLexicon:
    """Test suite for the cached default lexicon."""

    def test_honours_lexicon_path_setting(self, tmp_path, monkeypatch, reset_lexicon_cache):
        path = tmp_path / "alt.json"
        path.write_text(
            json.dumps(
                {
                    "stop_words": [],
                    "question_stop_words": [],
                    "suffixes": ["x"],
                    "synonyms": {},
                }
            ),
            encoding="utf-8",
        )
        monkeypatch.setenv("MATCH_LEXICON_PATH", str(path))

        assert get_lexicon().suffixes == ("x",)

    def test_is_cached(self, reset_lexicon_cache):
        assert get_lexicon() is get_lexicon()
