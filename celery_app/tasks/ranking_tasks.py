"""
Celery tasks for relevancy ranking.

Triggered by the admin surface: a full rerank when a landing page is
created, and an incremental ranking when a course is created. Neither
task retries automatically.
"""
import logging

from celery_app import celery
from relevancy.categories import rank_column_for_tag
from stages.orchestrator import build_ranker

logger = logging.getLogger(__name__)


def _progress_reporter(task):
    def report(event):
        logger.info(event.describe())
        task.update_state(
            state='PROGRESS',
            meta={
                'phase': event.phase,
                'processed': event.processed,
                'total': event.total,
                'category': event.category,
            }
        )
    return report


@celery.task(bind=True, name='rerank_category', max_retries=0)
def rerank_category_task(self, category: str = None, tag: str = None):
    """
    Full rerank of one category.

    Args:
        category: Category name
        tag: Landing-page tag, used when category is not given

    Returns:
        Result dictionary of the rerank
    """
    ranker = build_ranker()

    if category is None and tag is not None:
        target = ranker.registry.find(rank_column_for_tag(tag))
        if target is None:
            logger.error(f"No category registered for landing page tag {tag!r}")
            return {'success': False, 'ranked': 0, 'error': f"Unknown landing page tag: {tag}"}
    elif category is not None:
        target = ranker.registry.find(category)
        if target is None:
            logger.error(f"Unknown category {category!r}")
            return {'success': False, 'ranked': 0, 'error': f"Unknown category: {category}"}
    else:
        raise ValueError("rerank_category needs a category name or a landing page tag")

    logger.info(f"Task {self.request.id}: reranking {target.name}")
    return ranker.rerank_category(target, on_event=_progress_reporter(self))


@celery.task(bind=True, name='rank_new_course', max_retries=0)
def rank_new_course_task(self, course_id: str):
    """
    Rank a new course in every category and store the ranks.

    Returns:
        Mapping category name -> rank
    """
    logger.info(f"Task {self.request.id}: ranking new course {course_id}")
    ranker = build_ranker()
    return ranker.rank_new_course_all_categories(course_id, persist=True)
