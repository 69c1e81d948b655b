#!/usr/bin/env python3
"""
Rank one newly created course in every category.

Each category's rank comes from a comparative oracle call against the
category's top ranked courses. Without OPENAI_API_KEY, or when a call fails,
the default rank is written instead.

Usage:
    python scripts/rank_new_course.py --course-id 42
    python scripts/rank_new_course.py --course-id 42 --dry-run
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
    parser = argparse.ArgumentParser(description="Rank a new course against existing rankings")
    parser.add_argument("--course-id", required=True, help="ID of the course to rank")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the ranks without writing them",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_script_logging("rank_new_course.log", verbose=args.verbose)

    settings.validate_config()

    ranker = build_ranker()
    ranks = ranker.rank_new_course_all_categories(args.course_id, persist=not args.dry_run)

    for name, rank in ranks.items():
        suffix = " (default)" if rank == ranker.sentinel else ""
        logger.info(f"  {name}: {rank}{suffix}")

    if args.dry_run:
        logger.info("Dry run: no ranks written")
    return 0


if __name__ == "__main__":
    sys.exit(main())
