"""
Tests for the debug CLI (main.py).
"""

import json
from unittest.mock import AsyncMock, patch

import pytest

import main
from core.schemas import FAQ_ENTRY_CODE


def run_cli(*argv):
    with patch("sys.argv", ["main.py", *argv]):
        return main.main()


def qa(question, answer):
    return [{"code": FAQ_ENTRY_CODE, "data": {"question": question, "answer": answer}}]


@pytest.fixture
def rows_file(tmp_path):
    path = tmp_path / "faqs.json"
    path.write_text(
        json.dumps(
            [
                {"id": 1, "title": "Mot de passe", "qa_data": qa("Comment changer mon mot de passe ?", "Paramètres.")},
                {"id": 2, "title": "Horaires", "qa_data": qa("Quels sont les horaires ?", "De 9h à 18h.")},
            ]
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def faq_store():
    with patch("main.FaqStore") as store_class, patch("main.get_database_settings"):
        yield store_class.return_value


class TestArgumentParsing:
    """Test suite for setup_argparse."""

    def test_session_arguments(self):
        args = main.setup_argparse().parse_args(
            ["search", "prix", "--rubrique", "produit", "--product", "P1"]
        )

        session = main.build_session(args)

        assert session.language_code == "fr"
        assert session.rubrique.value == "produit"
        assert session.product_code == "P1"

    def test_rubrique_choices(self):
        with pytest.raises(SystemExit):
            main.setup_argparse().parse_args(["list", "--rubrique", "blog"])

    def test_no_command(self):
        assert run_cli() == 1


class TestOfflineCommands:
    """Test suite for commands that do not need the database."""

    def test_words(self, capsys):
        assert run_cli("words", "Comment contacter le support ?") == 0

        output = capsys.readouterr().out
        assert "comment contacter le support" in output
        assert "contact" in output

    def test_match(self, rows_file, capsys):
        assert run_cli("match", "horaires", "--rows", str(rows_file)) == 0

        output = capsys.readouterr().out
        assert "faq 2" in output
        assert "De 9h à 18h." in output

    def test_match_without_result(self, rows_file, capsys):
        assert run_cli("match", "livraison", "--rows", str(rows_file)) == 0

        assert "No match among 2 rows" in capsys.readouterr().out

    def test_match_requires_a_list(self, tmp_path):
        path = tmp_path / "object.json"
        path.write_text(json.dumps({"id": 1}), encoding="utf-8")

        assert run_cli("match", "horaires", "--rows", str(path)) == 1

    def test_match_missing_file(self, tmp_path):
        assert run_cli("match", "horaires", "--rows", str(tmp_path / "absent.json")) == 1


class TestDatabaseCommands:
    """Test suite for commands backed by the FAQ store."""

    def test_missing_database_configuration(self):
        with patch("main.get_database_settings", side_effect=Exception("DB_HOST missing")):
            assert run_cli("list") == 1

    def test_list(self, faq_store, make_row, capsys):
        faq_store.get_faqs = AsyncMock(return_value=[make_row(1), make_row(2, qa_data="{broken")])

        assert run_cli("list", "--rubrique", "produit", "--limit", "5") == 0

        filters = faq_store.get_faqs.await_args.args[0]
        assert filters.rubrique == "produit"
        assert filters.limit == 5
        assert "FAQ rows (2)" in capsys.readouterr().out

    def test_list_failure(self, faq_store):
        faq_store.get_faqs = AsyncMock(side_effect=ConnectionError("database down"))

        assert run_cli("list") == 1

    def test_search_json(self, faq_store, make_row, capsys):
        row = make_row(4, "Comment contacter le support ?", "Via le formulaire.", relevance=3.0)
        faq_store.search_faqs = AsyncMock(return_value=[row])
        faq_store.search_faq_content = AsyncMock(return_value=[])

        assert run_cli("search", "Comment contacter le support ?", "--json") == 0

        output = capsys.readouterr().out
        payload = json.loads(output[output.index("{\n"):])
        assert payload["retrieval"]["top_candidates"][0]["faq_id"] == 4
        assert payload["answer"]["message"] == "Via le formulaire."
        assert payload["cache"]["sets"] >= 1

    def test_search_without_candidates(self, faq_store, capsys):
        faq_store.search_faqs = AsyncMock(return_value=[])
        faq_store.search_faq_content = AsyncMock(return_value=[])

        assert run_cli("search", "livraison") == 0

        assert "No candidates found" in capsys.readouterr().out
