"""
STAGE 3: Ranking Validation
===========================

Purpose: Reconcile oracle rankings with the candidate set

Input:
  - candidates: courses sent to the oracle
  - rankings: oracle (courseId, rank) pairs

Output: repaired rankings (1..N over exactly the candidates) or failure

Hallucinated IDs are dropped, skipped courses are appended after the
ranked ones. Partial coverage is a warning, not an error.
"""
import logging
from typing import Any, Dict, Sequence

from relevancy.repair import repair_rankings
from relevancy.schemas import Course

logger = logging.getLogger(__name__)


def _preview(ids, limit: int = 5) -> str:
    ids = list(ids)
    return ', '.join(ids[:limit]) + ('...' if len(ids) > limit else '')


class ValidationStage:
    """Stage 3: Validate and repair oracle rankings"""

    def execute(self, candidates: Sequence[Course], rankings: Sequence, category_name: str = '') -> Dict[str, Any]:
        """
        Execute Stage 3: Validate and repair

        Args:
            candidates: Courses that were sent to the oracle
            rankings: Oracle pairs (CourseRanking or (id, rank) tuples)
            category_name: For log messages

        Returns:
            Dictionary with:
                - rankings: Repaired list of (course_id, rank), empty on failure
                - missing: IDs appended because the oracle skipped them
                - hallucinated: IDs dropped because they are not candidates
                - success: Boolean indicating success
                - error: Error message if failed
        """
        candidate_ids = [c.id for c in candidates]
        report = repair_rankings(candidate_ids, rankings)

        result = {
            'rankings': report.rankings,
            'missing': report.missing,
            'hallucinated': report.hallucinated,
            'duplicates': report.duplicates,
            'renumbered': report.renumbered,
            'success': report.ok,
            'error': None
        }

        label = f" ({category_name})" if category_name else ''

        if report.hallucinated:
            logger.warning(f"Dropped {len(report.hallucinated)} unknown course IDs{label}: {_preview(report.hallucinated)}")
        if report.duplicates:
            logger.warning(f"Dropped {len(report.duplicates)} repeated course IDs{label}: {_preview(report.duplicates)}")
        if report.invalid:
            logger.warning(f"Dropped {report.invalid} entries with invalid ranks{label}")

        if not report.ok:
            result['error'] = (
                f"No usable rankings: expected {len(candidate_ids)} courses, "
                f"got {len(rankings)} entries"
            )
            logger.error(f"Validation failed{label}: {result['error']}")
            return result

        if report.missing:
            logger.warning(
                f"Oracle skipped {len(report.missing)} of {len(candidate_ids)} courses{label}, "
                f"ranked last: {_preview(report.missing)}"
            )
        if report.renumbered:
            logger.info(f"Renumbered oracle ranks to 1..{len(report.rankings)}{label}")

        return result
