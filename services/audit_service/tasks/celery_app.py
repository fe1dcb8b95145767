from celery import Celery

from services.audit_service.config import settings
from config.celery_config import (
    BROKER_TRANSPORT_OPTIONS,
    CELERY_QUEUES,
    CELERY_RESULT_EXPIRES,
    CELERY_ROUTES,
    CELERY_TASK_ACKS_LATE,
    CELERY_TASK_ANNOTATIONS,
    CELERY_WORKER_LOG_FORMAT,
    CELERY_WORKER_MAX_TASKS_PER_CHILD,
    CELERY_WORKER_PREFETCH_MULTIPLIER,
    CELERY_WORKER_TASK_LOG_FORMAT,
)
from config.logging_config import get_logger, setup_celery_logging

logger = get_logger(__name__)

celery_app = Celery(
    "audit_service",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_always_eager=settings.celery_task_always_eager,
    broker_connection_retry_on_startup=True,
    task_queues=CELERY_QUEUES,
    task_default_queue="check_execution",
    task_routes=CELERY_ROUTES,
    task_annotations=CELERY_TASK_ANNOTATIONS,
    task_acks_late=CELERY_TASK_ACKS_LATE,
    worker_prefetch_multiplier=CELERY_WORKER_PREFETCH_MULTIPLIER,
    worker_max_tasks_per_child=CELERY_WORKER_MAX_TASKS_PER_CHILD,
    worker_log_format=CELERY_WORKER_LOG_FORMAT,
    worker_task_log_format=CELERY_WORKER_TASK_LOG_FORMAT,
    result_expires=CELERY_RESULT_EXPIRES,
    broker_transport_options=BROKER_TRANSPORT_OPTIONS,
)

setup_celery_logging()

celery_app.autodiscover_tasks(["services.audit_service.tasks"], related_name="audit_tasks")
