"""Command line entry point.

Exit Codes:
    0 - Success
    2 - No valid question could be produced
    3 - Configuration error
    4 - Database error
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from .config import settings
from .database import QuestionDatabase
from .exceptions import ExhaustionError, StoreUnavailable
from .logging_config import setup_logging
from .models import Article
from .observability import init_sentry
from .orchestrator import QuestionCacheOrchestrator

logger = logging.getLogger(__name__)

# Exit codes
EXIT_SUCCESS = 0
EXIT_EXHAUSTED = 2
EXIT_CONFIG_ERROR = 3
EXIT_DATABASE_ERROR = 4


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        argv: Argument list (sys.argv[1:] if not provided)

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        prog="wikiquiz",
        description="Generate and serve quiz questions from article text",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the HTTP service
  wikiquiz serve --port 8080

  # Fill the cache for one article and print a question
  wikiquiz warm article.txt --title "Karel IV." --lang cs

  # Read the article from stdin
  cat article.txt | wikiquiz warm - --lang en
        """,
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP service")
    serve.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    serve.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")

    warm = subparsers.add_parser(
        "warm", help="Fill the question cache for one article"
    )
    warm.add_argument("file", help="Path to the article text, or - for stdin")
    warm.add_argument("--title", default="", help="Article title")
    warm.add_argument("--lang", default="cs", help="Language code (default: cs)")

    return parser.parse_args(argv)


def _read_article_text(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    with open(path, encoding="utf-8") as f:
        return f.read()


async def _warm(article: Article) -> dict:
    store = QuestionDatabase(settings.database_url)
    store.create_tables()
    orchestrator = QuestionCacheOrchestrator.from_settings(store, settings)
    try:
        question = await orchestrator.get_question(article)
    finally:
        await orchestrator.cleanup()
    return {
        "question": question.question,
        "answers": list(question.answers),
        "correctIndex": question.correct_index,
        "question_hash": question.question_hash,
        "model": question.model,
    }


def run_serve(host: str, port: int) -> int:
    import uvicorn

    from .server import create_app

    uvicorn.run(create_app(settings=settings), host=host, port=port, log_config=None)
    return EXIT_SUCCESS


def run_warm(path: str, title: str, lang: str) -> int:
    """Generate (or fetch) one question for the article and print it as JSON."""
    try:
        text = _read_article_text(path)
    except OSError as e:
        logger.error(f"Cannot read article: {e}")
        return EXIT_CONFIG_ERROR

    if not text.strip():
        logger.error("Article text is empty")
        return EXIT_CONFIG_ERROR

    article = Article(text=text, title=title, lang=lang.strip().lower() or "cs")
    try:
        payload = asyncio.run(_warm(article))
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR
    except StoreUnavailable as e:
        logger.error(f"Database error: {e} ({e.original_error})")
        return EXIT_DATABASE_ERROR
    except ExhaustionError as e:
        logger.error(str(e))
        return EXIT_EXHAUSTED

    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return EXIT_SUCCESS


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    args = parse_arguments(argv)

    log_level = "DEBUG" if args.verbose else settings.log_level
    setup_logging(log_level, json_format=settings.env == "production")
    init_sentry(settings)

    if args.command == "serve":
        return run_serve(args.host, args.port)
    return run_warm(args.file, args.title, args.lang)


if __name__ == "__main__":
    sys.exit(main())
