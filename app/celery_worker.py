"""
Celery Worker Configuration
Sets up Celery with Redis as message broker and result backend, plus the
beat schedule of the periodic order sweeps.
"""

from celery import Celery

from app.core.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    'kitchen_worker',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['app.tasks']  # Module containing our tasks
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    # Worker settings
    worker_prefetch_multiplier=1,  # Process one task at a time
    worker_concurrency=4,  # Number of worker processes

    # Result settings
    result_expires=3600,  # Results expire after 1 hour

    # Task execution settings
    task_acks_late=True,  # Acknowledge task after completion
    task_reject_on_worker_lost=True,  # Requeue task if worker dies

    broker_connection_retry_on_startup=True,

    # Periodic sweeps (run with `celery -A app.celery_worker beat`)
    beat_schedule={
        'scan-stale-delivery-orders': {
            'task': 'app.tasks.scan_stale_delivery_orders',
            'schedule': float(settings.stale_order_sweep_seconds),
        },
        'expire-cook-assignments': {
            'task': 'app.tasks.expire_cook_assignments',
            'schedule': float(settings.stale_order_sweep_seconds),
        },
    },
)


if __name__ == '__main__':
    celery_app.start()
