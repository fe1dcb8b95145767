# celery_config.py

from kombu import Queue, Exchange

RUN_AUDIT_TASK = 'services.audit_service.tasks.audit_tasks.run_audit_task'
RUN_CHECK_TASK = 'services.audit_service.tasks.audit_tasks.run_check_task'

default_exchange = Exchange('default', type='direct')

CELERY_QUEUES = (
    Queue(
        'audit_orchestration',
        exchange=default_exchange,
        routing_key='audit.orchestration',
        queue_arguments={'x-max-priority': 5}
    ),

    Queue(
        'check_execution',
        exchange=default_exchange,
        routing_key='audit.check',
        queue_arguments={'x-max-priority': 3}
    ),
)

CELERY_ROUTES = {
    RUN_AUDIT_TASK: {
        'queue': 'audit_orchestration',
        'routing_key': 'audit.orchestration'
    },
    RUN_CHECK_TASK: {
        'queue': 'check_execution',
        'routing_key': 'audit.check'
    },
}

CELERY_TASK_ANNOTATIONS = {
    RUN_AUDIT_TASK: {
        'time_limit': 3600,
        'soft_time_limit': 3500,
        'max_retries': 0,
        'ignore_result': False,
    },

    RUN_CHECK_TASK: {
        'rate_limit': '120/m',
        'time_limit': 300,
        'soft_time_limit': 280,
        'max_retries': 0,
    },
}

CELERY_WORKER_PREFETCH_MULTIPLIER = 1

CELERY_TASK_ACKS_LATE = True

CELERY_WORKER_MAX_TASKS_PER_CHILD = 1000

CELERY_RESULT_EXPIRES = 86400

CELERY_WORKER_LOG_FORMAT = '[%(asctime)s: %(levelname)s/%(processName)s] %(message)s'
CELERY_WORKER_TASK_LOG_FORMAT = '[%(asctime)s: %(levelname)s/%(processName)s][%(task_name)s(%(task_id)s)] %(message)s'

BROKER_TRANSPORT_OPTIONS = {
    'visibility_timeout': 43200,
    'max_retries': 5,
    'interval_start': 0,
    'interval_step': 0.2,
    'interval_max': 0.5,
}
