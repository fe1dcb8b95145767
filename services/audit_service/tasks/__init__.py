from services.audit_service.tasks.celery_app import celery_app
from services.audit_service.tasks.audit_tasks import (
    run_audit_task,
    run_check_task,
    build_orchestrator,
)

__all__ = [
    "celery_app",
    "run_audit_task",
    "run_check_task",
    "build_orchestrator",
]
