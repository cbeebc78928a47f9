#!/usr/bin/env python3
"""
Debug CLI for the FAQ retrieval core.

Inspect what the retrieval pipeline sees and decides for a given message,
either against the live FAQ database or offline against a JSON dump of rows.

Usage examples:
    # List active FAQ rows for a rubrique
    python main.py list --rubrique compte_client --limit 20

    # Run retrieval + matching against the database
    python main.py search "Comment contacter le support ?" --product PRD-42

    # Run the matcher offline against exported rows
    python main.py match "Quels sont vos horaires ?" --rows faqs.json

    # Show normalization, stemming and synonym rewrites of a text
    python main.py words "Comment contacter le support ?"
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.table import Table

from core.answer_matcher import AnswerMatcher
from core.cache import BoundedCache
from core.config import get_database_settings, get_matcher_settings
from core.faq_responder import FaqResponder
from core.rag_search import RagSearchService
from core.schemas import Rubrique, SearchFilters, SessionContext
from core.storage_faq import FaqStore
from core.synonyms import SynonymExpander
from core.text_processing import TextNormalizer
from utils.logger import get_logger, set_level

logger = get_logger(__name__)
console = Console()


def setup_argparse() -> argparse.ArgumentParser:
    """
    Configure and return the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        description="FAQ retrieval - debugging CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py list --language fr --rubrique produit
  python main.py --log-level DEBUG search "mot de passe oublie" --rubrique compte_client
  python main.py match "horaires du support" --rows faqs.json --threshold 0.2
  python main.py words "Comment contacter le support ?"
        """,
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
        help="Set logging level (default: INFO)",
    )
    parser.add_argument("--version", action="version", version="%(prog)s 1.0.0")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    def add_session_arguments(sub: argparse.ArgumentParser) -> None:
        sub.add_argument(
            "--language",
            default=get_matcher_settings().DEFAULT_LANGUAGE,
            help="Language code (default: MATCH_DEFAULT_LANGUAGE)",
        )
        sub.add_argument(
            "--rubrique",
            choices=[r.value for r in Rubrique],
            default=None,
            help="Rubrique filter / page context",
        )
        sub.add_argument("--product", default=None, metavar="REF", help="Product reference")

    # ========== LIST COMMAND ==========
    list_parser = subparsers.add_parser(
        "list",
        help="List active FAQ rows",
        description="Show FAQ rows from the search view, most recent first.",
    )
    add_session_arguments(list_parser)
    list_parser.add_argument("--search", default=None, help="Full-text condition on metadata")
    list_parser.add_argument("--limit", type=int, default=50, metavar="N", help="Max rows (default: 50)")

    # ========== SEARCH COMMAND ==========
    search_parser = subparsers.add_parser(
        "search",
        help="Run retrieval and answer matching against the database",
        description="Build variants, search the FAQ store, rank candidates and compose the answer.",
    )
    search_parser.add_argument("query", help="User message")
    add_session_arguments(search_parser)
    search_parser.add_argument("--json", action="store_true", help="Print the raw result as JSON")

    # ========== MATCH COMMAND ==========
    match_parser = subparsers.add_parser(
        "match",
        help="Run the answer matcher on rows from a JSON file",
        description="Score every question of the given rows without touching the database.",
    )
    match_parser.add_argument("query", help="User message")
    match_parser.add_argument("--rows", type=Path, required=True, help="JSON file holding a list of FAQ rows")
    match_parser.add_argument("--threshold", type=float, default=None, help="Acceptance threshold")
    match_parser.add_argument("--language", default=None, help="Language hint")

    # ========== WORDS COMMAND ==========
    words_parser = subparsers.add_parser(
        "words",
        help="Show how a text is normalized, stemmed and expanded",
    )
    words_parser.add_argument("text", help="Text to analyse")

    return parser


def build_session(args: argparse.Namespace) -> SessionContext:
    return SessionContext(
        session_id="cli",
        language_code=args.language,
        rubrique=args.rubrique,
        product_code=args.product,
    )


async def _list_rows(args: argparse.Namespace):
    store = FaqStore()
    filters = SearchFilters(
        language_code=args.language,
        rubrique=args.rubrique,
        product_ref=args.product,
        limit=args.limit,
    )
    return await store.get_faqs(filters, search=args.search)


def command_list(args: argparse.Namespace) -> int:
    """
    Execute the list command.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    try:
        rows = asyncio.run(_list_rows(args))
    except Exception as e:
        logger.error(f"Listing FAQs failed: {str(e)}", exc_info=True)
        return 1

    table = Table(title=f"FAQ rows ({len(rows)})")
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Title")
    table.add_column("Lang")
    table.add_column("Rubrique")
    table.add_column("Product")
    table.add_column("Questions", justify="right")
    table.add_column("Updated")

    for row in rows:
        try:
            question_count = str(len(row.qa_entries()))
        except ValueError:
            question_count = "[red]invalid[/red]"
        table.add_row(
            str(row.id),
            row.title,
            row.language_code,
            row.rubrique or "",
            row.product_ref or "",
            question_count,
            row.last_updated.strftime("%Y-%m-%d") if row.last_updated else "",
        )

    console.print(table)
    return 0


async def _search(args: argparse.Namespace):
    cache = BoundedCache()
    search = RagSearchService(store=FaqStore(), cache=cache)
    responder = FaqResponder(search)
    session = build_session(args)

    result = await search.retrieve(args.query, session)
    answer = responder.answer_from_result(args.query, session, result)
    return result, answer, cache.get_stats()


def command_search(args: argparse.Namespace) -> int:
    """
    Execute the search command.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    logger.info("=" * 80)
    logger.info(f"COMMAND: SEARCH '{args.query}'")
    logger.info("=" * 80)

    try:
        result, answer, cache_stats = asyncio.run(_search(args))
    except Exception as e:
        logger.error(f"Search failed: {str(e)}", exc_info=True)
        return 1

    if args.json:
        payload = {
            "retrieval": result.to_dict() if result else None,
            "answer": answer.to_dict() if answer else None,
            "cache": cache_stats,
        }
        console.print_json(json.dumps(payload, ensure_ascii=False, default=str))
        return 0

    if result is None:
        console.print("[yellow]No candidates found[/yellow]")
        return 0

    console.print(f"Normalized query: [bold]{result.normalized_query}[/bold]")

    variant_table = Table(title="Query variants")
    variant_table.add_column("Reason", style="cyan")
    variant_table.add_column("Query")
    variant_table.add_column("Weight", justify="right")
    variant_table.add_column("Fallback")
    for variant in result.variants:
        variant_table.add_row(
            variant.reason,
            variant.query,
            f"{variant.weight:.2f}",
            "yes" if variant.allow_fallback else "no",
        )
    console.print(variant_table)

    top_ids = {c.faq_id for c in result.top_candidates}
    candidate_table = Table(title="Ranked candidates")
    candidate_table.add_column("Rank", justify="right")
    candidate_table.add_column("ID", justify="right", style="cyan")
    candidate_table.add_column("Title")
    candidate_table.add_column("Score", justify="right")
    candidate_table.add_column("Sources")
    for candidate in result.ranked_candidates:
        marker = "[bold green]*[/bold green]" if candidate.faq_id in top_ids else ""
        candidate_table.add_row(
            f"{candidate.rank}{marker}",
            str(candidate.faq_id),
            candidate.row.title,
            f"{candidate.score:.3f}",
            ", ".join(candidate.sources),
        )
    console.print(candidate_table)

    if answer is None:
        console.print("[yellow]No answer above threshold[/yellow]")
    else:
        console.print(
            f"\n[bold]Answer[/bold] (faq {answer.faq_id}, {answer.match.match_type}, "
            f"{answer.match.score:.3f})"
        )
        console.print(answer.message)

    console.print(
        f"\nCache: {cache_stats['size']} entries, hit rate {cache_stats['hit_rate']}%"
    )
    return 0


def command_match(args: argparse.Namespace) -> int:
    """
    Execute the match command.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    try:
        with open(args.rows, "r", encoding="utf-8") as f:
            rows = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Cannot read rows from {args.rows}: {str(e)}")
        return 1

    if not isinstance(rows, list):
        logger.error(f"{args.rows} must contain a JSON list of FAQ rows")
        return 1

    matcher = AnswerMatcher()
    match = matcher.find_best_match(
        args.query, rows, language_hint=args.language, threshold=args.threshold
    )

    if match is None:
        console.print(f"[yellow]No match among {len(rows)} rows[/yellow]")
        return 0

    scores = matcher.score_question(args.query, match.question)
    table = Table(title=f"Best match: faq {match.faq_id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Question", match.question)
    table.add_row("Answer", match.answer)
    table.add_row("Match type", match.match_type)
    table.add_row("Score", f"{match.score:.3f}")
    table.add_row(
        "Sub-scores",
        f"exact={scores.exact:.2f} semantic={scores.semantic:.2f} "
        f"partial={scores.partial:.2f} order={scores.order:.2f}",
    )
    console.print(table)
    return 0


def command_words(args: argparse.Namespace) -> int:
    """Execute the words command."""
    normalizer = TextNormalizer()
    expander = SynonymExpander(normalizer.lexicon, normalizer)
    normalized = normalizer.normalize(args.text)

    table = Table(title="Text analysis")
    table.add_column("Step", style="cyan")
    table.add_column("Result")
    table.add_row("Normalized", normalized)
    table.add_row("Tokens", " | ".join(normalizer.tokenize(normalized)))
    table.add_row("Search words", " | ".join(normalizer.extract_words(normalized)))
    table.add_row("Question words", " | ".join(normalizer.question_words(normalized)))
    table.add_row("Rewrites", "\n".join(expander.expand(normalized)) or "-")
    console.print(table)
    return 0


COMMANDS = {
    "list": command_list,
    "search": command_search,
    "match": command_match,
    "words": command_words,
}

DATABASE_COMMANDS = {"list", "search"}


def main() -> int:
    """
    Main entry point for the CLI application.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = setup_argparse()
    args = parser.parse_args()

    set_level(args.log_level)

    start_time = datetime.now()
    logger.debug(f"FAQ retrieval CLI - starting at {start_time.isoformat()}")

    if not args.command:
        parser.print_help()
        return 1

    if args.command in DATABASE_COMMANDS:
        try:
            get_database_settings()
        except Exception as e:
            logger.error(f"Configuration error: {str(e)}")
            logger.error("Please ensure the DB_* environment variables are set in .env file")
            return 1

    try:
        exit_code = COMMANDS[args.command](args)
    except KeyboardInterrupt:
        logger.warning("\nOperation cancelled by user")
        exit_code = 130
    except Exception as e:
        logger.error(f"Unexpected error: {str(e)}", exc_info=True)
        exit_code = 1

    duration = (datetime.now() - start_time).total_seconds()
    logger.debug(f"Completed in {duration:.2f} seconds (exit code {exit_code})")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
