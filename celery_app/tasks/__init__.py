# Celery tasks
from celery_app.tasks.ranking_tasks import rerank_category_task, rank_new_course_task

__all__ = ['rerank_category_task', 'rank_new_course_task']
