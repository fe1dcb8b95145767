import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session, sessionmaker

from services.audit_service.crawler.page_collector import PageCollector
from services.audit_service.crawler.site_crawler import SiteCrawler
from services.audit_service.db.session import get_sessionmaker, session_scope
from services.audit_service.integrations.ai_client import get_ai_client
from services.audit_service.pipeline.barrier import CompletionBarrier
from services.audit_service.pipeline.executor import CheckExecutor
from services.audit_service.pipeline.orchestrator import AuditOrchestrator
from services.audit_service.pipeline.registry import CheckRegistry, load_registry
from services.audit_service.prioritizer import PagePrioritizer
from config.celery_config import RUN_AUDIT_TASK, RUN_CHECK_TASK
from config.logging_config import get_logger, log_task_execution

from services.audit_service.tasks.celery_app import celery_app

logger = get_logger(__name__)

_registry: Optional[CheckRegistry] = None
_registry_lock = threading.Lock()


def get_registry(session: Session) -> CheckRegistry:
    """Registry for this worker process, built on first use and never mutated."""
    global _registry
    with _registry_lock:
        if _registry is None:
            _registry = load_registry(session)
        return _registry


def submit_check(page_id: str, check_key: str) -> None:
    run_check_task.apply_async(args=[page_id, check_key])


def build_orchestrator(session_factory: Optional[sessionmaker] = None) -> AuditOrchestrator:
    factory = session_factory or get_sessionmaker()
    ai_client = get_ai_client()
    with factory() as session:
        registry = get_registry(session)

    return AuditOrchestrator(
        session_factory=factory,
        crawler=SiteCrawler(),
        prioritizer=PagePrioritizer(ai_client=ai_client),
        collector=PageCollector(),
        submit=submit_check,
        barrier=CompletionBarrier(factory),
        registry=registry,
        ai_client=ai_client,
    )


@celery_app.task(name=RUN_AUDIT_TASK, bind=True)
def run_audit_task(self, audit_id: str) -> Dict[str, Any]:
    started_at = datetime.now(timezone.utc).isoformat()
    started = time.monotonic()
    logger.info("Starting audit task", extra={"audit_id": audit_id, "task_id": self.request.id})

    try:
        status = build_orchestrator().run(audit_id)
    except Exception as exc:
        log_task_execution(logger, "run_audit_task", self.request.id, time.monotonic() - started, "error", exc)
        return {
            "status": "error",
            "audit_id": audit_id,
            "started_at": started_at,
            "completed_at": datetime.now(timezone.utc).isoformat(),
            "error": str(exc),
        }

    log_task_execution(logger, "run_audit_task", self.request.id, time.monotonic() - started, status)
    return {
        "status": status,
        "audit_id": audit_id,
        "started_at": started_at,
        "completed_at": datetime.now(timezone.utc).isoformat(),
    }


@celery_app.task(name=RUN_CHECK_TASK, bind=True)
def run_check_task(self, page_id: str, check_key: str) -> Dict[str, Any]:
    started = time.monotonic()

    with session_scope() as session:
        executor = CheckExecutor(session, get_registry(session), get_ai_client())
        result = executor.execute_by_key(page_id, check_key)
        status = result.status if result is not None else "skipped"

    log_task_execution(logger, "run_check_task", self.request.id, time.monotonic() - started, status)
    return {
        "status": status,
        "page_id": page_id,
        "check_key": check_key,
        "completed_at": datetime.now(timezone.utc).isoformat(),
    }
