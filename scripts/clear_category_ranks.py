#!/usr/bin/env python3
"""
Null out every rank of one category.

Run before deleting a landing page so stale ranks do not linger in its column.

Usage:
    python scripts/clear_category_ranks.py --category "AI for Dentists"
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
from stages.orchestrator import build_ranker

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Clear all ranks of a category")
    parser.add_argument("--category", required=True, help="Category name or rank column")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_script_logging("clear_category_ranks.log", verbose=args.verbose)

    settings.validate_config()

    ranker = build_ranker()
    category = ranker.registry.find(args.category)
    if category is None:
        logger.error(f"❌ {UnknownCategory(args.category)}")
        return 1

    cleared = ranker.clear_category(category)
    logger.info(f"✅ Cleared {cleared} ranks from {category.rank_column}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
