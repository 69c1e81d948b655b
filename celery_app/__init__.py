"""
Celery application for background relevancy ranking tasks.
"""
from celery import Celery
import os

from config import settings

# Create Celery app
celery = Celery('relevancy_tasks')

# Configuration
celery.conf.broker_url = settings.CELERY_BROKER_URL
celery.conf.result_backend = settings.CELERY_RESULT_BACKEND

# Task configuration
celery.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    task_track_started=True,
    task_time_limit=int(os.getenv('CELERY_TASK_TIME_LIMIT', '1800')),  # 30 minutes
    task_soft_time_limit=int(os.getenv('CELERY_TASK_SOFT_TIME_LIMIT', '1650')),
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=86400,  # 24 hours
    task_routes={
        'rerank_category': {'queue': 'ranking'},
        'rank_new_course': {'queue': 'ranking'},
    },
)

# Auto-discover tasks
celery.autodiscover_tasks(['celery_app.tasks'])

# Export for imports
celery_app = celery
