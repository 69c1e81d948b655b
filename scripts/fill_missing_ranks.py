#!/usr/bin/env python3
"""
Rank every course that has no rank yet in a category.

Unranked courses are ranked one by one against the category's top ranked
courses, in chunks with bounded concurrency. Courses whose oracle call
fails stay unranked and are picked up by the next run.

Usage:
    python scripts/fill_missing_ranks.py
    python scripts/fill_missing_ranks.py --category Restaurant --chunk-size 5
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config import settings
from relevancy.errors import UnknownCategory
from relevancy.logging_utils import setup_script_logging
from relevancy.rate_control import ChunkedExecutor
from stages.orchestrator import build_ranker

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fill in missing relevancy ranks")
    parser.add_argument(
        "--category",
        action="append",
        dest="categories",
        help="Category to fill (repeatable, default: all)",
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=settings.RANK_CHUNK_SIZE,
        help=f"Concurrent oracle calls per chunk (default: {settings.RANK_CHUNK_SIZE})",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_script_logging("fill_missing_ranks.log", verbose=args.verbose)

    settings.validate_config(require_oracle=True)

    ranker = build_ranker()
    ranker.executor = ChunkedExecutor(chunk_size=args.chunk_size)

    exit_code = 0
    for name in args.categories or ranker.registry.names:
        category = ranker.registry.find(name)
        if category is None:
            logger.error(f"❌ {UnknownCategory(name)}")
            exit_code = 1
            continue

        result = ranker.fill_missing(category)
        logger.info(
            f"{category.name}: ranked {result['ranked']}/{result['total']} missing courses, "
            f"errors: {result['failed']}"
        )
        if not result['success']:
            exit_code = 1

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
