"""
STAGE 4: Score Persistence
==========================

Purpose: Write accepted ranks back to the catalog

Input:
  - category: Category whose rank column is written
  - rankings: list of (course_id, rank)

Output: {'succeeded': int, 'failed': int}

One update per course. Updates are independent: a failing row is counted
and logged, and the remaining rows are still written.
"""
import logging
from typing import Dict, Iterable, Tuple

from relevancy.categories import Category

logger = logging.getLogger(__name__)


class ScorePersister:
    """Stage 4: Persist ranks"""

    def __init__(self, store):
        """
        Initialize the stage

        Args:
            store: Catalog store with update_rank(course_id, category, rank)
        """
        self.store = store

    def persist(self, category: Category, rankings: Iterable[Tuple[str, int]]) -> Dict[str, int]:
        """
        Write every (course_id, rank) pair.

        Returns:
            Dictionary with 'succeeded' and 'failed' counts
        """
        succeeded = 0
        failed = 0

        for course_id, rank in rankings:
            try:
                if self.store.update_rank(course_id, category, rank):
                    succeeded += 1
                else:
                    logger.error(f"  ❌ Course {course_id} not found while writing {category.rank_column}")
                    failed += 1
            except Exception as e:
                logger.error(f"  ❌ Error updating course {course_id} ({category.rank_column}): {e}")
                failed += 1

        logger.info(f"{category.name}: successfully updated {succeeded} courses, errors: {failed}")
        return {'succeeded': succeeded, 'failed': failed}
