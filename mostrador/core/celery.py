"""
Celery configuration for background tasks
"""
from celery import Celery
import logging

from mostrador.core.config import settings

logger = logging.getLogger(__name__)

# Create Celery instance
celery_app = Celery(
    "mostrador",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "mostrador.modules.reports.tasks",
    ]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=5 * 60,  # 5 minutes
    task_soft_time_limit=4 * 60,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    # Tests and local runs without a worker
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
    task_eager_propagates=True,

    # Result backend settings
    result_expires=3600,  # 1 hour

    # Task routes for different queues
    task_routes={
        "mostrador.modules.reports.tasks.*": {"queue": "reports"},
    },
)

if __name__ == "__main__":
    celery_app.start()
