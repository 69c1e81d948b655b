"""
STAGE 1: Candidate Selection
============================

Purpose: Read the courses a ranking run works on

Input:
  - category: Category being ranked
  - store: catalog store (select_all / select_ranked / select_unranked)

Output:
  - full rerank: every course in the catalog, regardless of tag
  - comparison: up to `limit` already-ranked courses, best first
  - fill missing: courses with no rank yet in the category

Read-only. Storage errors propagate to the caller, no retry.
"""
import logging
from typing import List, Optional

from config import settings
from relevancy.categories import Category
from relevancy.schemas import Course, RankedCourse

logger = logging.getLogger(__name__)


class CandidateSelector:
    """Stage 1: Select candidate courses"""

    def __init__(self, store):
        """
        Initialize the stage

        Args:
            store: Catalog store (CatalogDatabase or a compatible fake)
        """
        self.store = store

    def select_for_full_rerank(self, category: Category) -> List[Course]:
        """
        Every course in the catalog.

        No filtering by tag: ranking is comparative across the whole corpus.
        """
        courses = self.store.select_all()
        logger.info(f"Selected {len(courses)} courses for full rerank of {category.name}")
        return courses

    def select_for_comparison(
        self,
        category: Category,
        exclude_id: Optional[str] = None,
        limit: int = settings.COMPARISON_LIMIT
    ) -> List[RankedCourse]:
        """
        Up to `limit` courses already ranked in the category, ascending by rank.
        """
        ranked = self.store.select_ranked(category, exclude_id=exclude_id, limit=limit)
        ranked = sorted(
            (r for r in ranked if r.course.id != exclude_id),
            key=lambda r: r.rank
        )[:limit]
        logger.debug(f"Selected {len(ranked)} reference courses for {category.name}")
        return ranked

    def select_unranked(self, category: Category) -> List[Course]:
        """Courses with no rank in the category."""
        courses = self.store.select_unranked(category)
        logger.info(f"{len(courses)} courses have no {category.name} rank")
        return courses
