#!/usr/bin/env python3
"""
Bulk relevancy ranking of the whole course catalog.

Ranks every course for each category in one oracle request per category,
repairs the returned ranking and writes it to the category's rank column.
Categories are processed one after another with a short pause between them.

Usage:
    python scripts/rank_courses_by_relevancy.py
    python scripts/rank_courses_by_relevancy.py --category Business --category Fleet
    python scripts/rank_courses_by_relevancy.py --no-landing-pages --verbose
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config import settings
from relevancy.logging_utils import setup_script_logging
from stages.orchestrator import build_ranker

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Rank all courses by relevancy for each category")
    parser.add_argument(
        "--category",
        action="append",
        dest="categories",
        help="Category to rank (repeatable, default: all)",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=settings.CATEGORY_DELAY_SECONDS,
        help=f"Seconds to wait between categories (default: {settings.CATEGORY_DELAY_SECONDS})",
    )
    parser.add_argument(
        "--no-landing-pages",
        action="store_true",
        help="Only rank the built-in categories",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_script_logging("rank_courses_by_relevancy.log", verbose=args.verbose)

    settings.validate_config(require_oracle=True)

    logger.info("🚀 Starting course relevancy ranking...")
    ranker = build_ranker(include_landing_pages=not args.no_landing_pages)
    results = ranker.rerank_all(args.categories, delay_seconds=args.delay)

    logger.info("=" * 60)
    logger.info("RANKING SUMMARY")
    logger.info("=" * 60)
    for name, result in results.items():
        status = "✅" if result['success'] else "❌"
        logger.info(f"{status} {name}: ranked {result['ranked']}/{result['total']}, errors: {result['failed']}")
        if result.get('error'):
            logger.info(f"   Error: {result['error']}")
        for rank, course_id, title in result.get('top', []):
            logger.info(f"   {rank}. {title} ({course_id})")

    failed = [name for name, result in results.items() if not result['success']]
    if failed:
        logger.error(f"Ranking failed for: {', '.join(failed)}")
        return 1

    logger.info("✅ All rankings completed successfully!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
