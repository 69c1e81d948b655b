"""
STAGE 2: Oracle Ranking
=======================

Purpose: Build the ranking request for a category and ask the oracle

Input:
  - bulk: list of courses + category
  - comparative: one new course + ranked reference courses + category

Output: raw oracle rankings (bulk) or a single rank (comparative)

Oracle errors are caught here and reported in the result dictionary.
This stage can be tested with a fake oracle.
"""
import logging
from typing import Any, Dict, Sequence

from config import settings
from relevancy.categories import Category
from relevancy.errors import OracleMalformedResponse, OracleTransportError
from relevancy.prompts import build_bulk_request, build_comparative_request, request_as_json
from relevancy.schemas import Course, RankedCourse

logger = logging.getLogger(__name__)


class OracleRankingStage:
    """Stage 2: Ask the oracle for rankings"""

    def __init__(self, oracle, bulk_warn_candidates: int = settings.BULK_WARN_CANDIDATES):
        """
        Initialize the stage

        Args:
            oracle: RelevancyOracle (or compatible fake) with rank_bulk / rank_comparative
            bulk_warn_candidates: Log a warning above this many bulk candidates
        """
        self.oracle = oracle
        self.bulk_warn_candidates = bulk_warn_candidates

    def rank_bulk(self, courses: Sequence[Course], category: Category) -> Dict[str, Any]:
        """
        Execute a bulk ranking call

        Returns:
            Dictionary with:
                - rankings: Oracle (courseId, rank) pairs, unrepaired
                - success: Boolean indicating success
                - error_type: 'malformed' | 'transport' | None
                - error: Error message if failed
        """
        result = {
            'rankings': [],
            'success': False,
            'error_type': None,
            'error': None
        }

        if len(courses) > self.bulk_warn_candidates:
            logger.warning(
                f"Bulk ranking {len(courses)} courses for {category.name} in a single request; "
                f"responses may be truncated above ~{self.bulk_warn_candidates} courses"
            )

        request = build_bulk_request(courses, category)
        logger.debug(f"Bulk request for {category.name}:\n{request_as_json(request)}")

        try:
            result['rankings'] = self.oracle.rank_bulk(request)
            result['success'] = True
            logger.info(f"Received rankings for {len(result['rankings'])} of {len(courses)} courses ({category.name})")
        except OracleMalformedResponse as e:
            result['error_type'] = 'malformed'
            result['error'] = str(e)
            logger.error(f"Oracle returned a malformed ranking for {category.name}: {e}")
        except OracleTransportError as e:
            result['error_type'] = 'transport'
            result['error'] = str(e)
            logger.error(f"Oracle call failed for {category.name}: {e}")

        return result

    def rank_comparative(
        self,
        new_course: Course,
        reference: Sequence[RankedCourse],
        category: Category
    ) -> int:
        """
        Place one new course against reference courses.

        Ranks above the advertised upper bound are clamped to it.

        Raises:
            OracleError: Any oracle failure; callers apply the sentinel fallback
        """
        request = build_comparative_request(new_course, reference, category)
        rank = self.oracle.rank_comparative(request)

        if rank > request.upperBound:
            logger.warning(
                f"Oracle rank {rank} for {new_course.id} ({category.name}) above bound "
                f"{request.upperBound}, clamping"
            )
            rank = request.upperBound

        return rank
