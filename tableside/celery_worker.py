"""
Celery Worker Configuration

Redis is both broker and result backend. Revenue export tasks go to
their own queue so a slow workbook never delays other work:

    celery -A tableside.celery_worker worker -Q ledger,celery --loglevel=info
"""

from celery import Celery

from tableside.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    'tableside_worker',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['tableside.tasks']
)

celery_app.conf.update(
    # Serialization
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    # Routing
    task_routes={
        'tableside.tasks.export_revenue_entry': {'queue': settings.ledger_queue},
        'tableside.tasks.clear_revenue_export': {'queue': settings.ledger_queue},
    },

    # Workbook writes are serialized by a file lock anyway
    worker_prefetch_multiplier=1,
    worker_concurrency=2,

    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=120,
    result_expires=3600,

    # Inline execution for development without a broker
    task_always_eager=settings.celery_task_always_eager,
    task_eager_propagates=True,

    broker_connection_retry_on_startup=True,
)


if __name__ == '__main__':
    celery_app.start()
