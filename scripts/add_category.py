#!/usr/bin/env python3
"""
Add a landing-page category and rank the catalog for it.

The rank column is derived from the tag ({tag}_relevancy, hyphens become
underscores), created if it does not exist, then filled by a full rerank.

Usage:
    python scripts/add_category.py --tag ai-for-dentists --name "AI for Dentists"
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config import settings
from relevancy.categories import Category, rank_column_for_tag
from relevancy.errors import InvalidRankColumn
from relevancy.logging_utils import setup_script_logging
from stages.orchestrator import build_ranker

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a rank column for a landing page and rank all courses")
    parser.add_argument("--tag", required=True, help="Landing page tag (e.g. ai-for-dentists)")
    parser.add_argument("--name", required=True, help="Display name of the category")
    parser.add_argument("--description", default="", help="Audience description used as ranking context")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def category_from_args(args: argparse.Namespace) -> Category:
    return Category(
        name=args.name,
        context=args.description or f"AI courses relevant to {args.name}",
        rank_column=rank_column_for_tag(args.tag),
    )


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_script_logging("add_category.log", verbose=args.verbose)

    try:
        category = category_from_args(args)
    except InvalidRankColumn as e:
        logger.error(f"❌ {e}")
        return 1

    settings.validate_config(require_oracle=True)

    ranker = build_ranker(include_landing_pages=False)
    logger.info(f"Adding category {category.name} ({category.rank_column})")
    result = ranker.initialize_category(category)

    if not result['success']:
        logger.error(f"❌ Initial ranking failed for {category.name}: {result.get('error')}")
        return 1

    logger.info(f"✅ Ranked {result['ranked']} courses for {category.name}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
