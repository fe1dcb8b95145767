from datetime import datetime, timezone
from typing import List

from fastapi import Depends, FastAPI, HTTPException
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from services.audit_service.checks.catalog import seed_checks
from services.audit_service.config import settings
from services.audit_service.db.models import Audit, CheckDefinition, CheckResult
from services.audit_service.db.session import get_db, get_db_health, init_db, session_scope
from services.audit_service.pipeline.synthesizer import status_counts
from services.audit_service.schemas.audit import (
    AuditCreate,
    AuditCreatedResponse,
    AuditStatusResponse,
    CheckDefinitionResponse,
    CheckResultResponse,
    PageProgress,
)
from config.logging_config import get_logger, setup_logging

logger = get_logger(__name__)

app = FastAPI(title="Audit Service", version="0.2.0")


def enqueue_audit(audit_id: str) -> None:
    from services.audit_service.tasks.audit_tasks import run_audit_task

    run_audit_task.delay(audit_id)


@app.on_event("startup")
def _startup() -> None:
    setup_logging("audit_service")
    init_db()
    with session_scope() as session:
        seed_checks(session)


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "service": "audit_service", "ts": datetime.now(timezone.utc).isoformat()}


@app.get("/health/db")
def health_db() -> dict:
    return get_db_health()


@app.get("/checks", response_model=List[CheckDefinitionResponse])
def list_checks(db: Session = Depends(get_db)) -> List[CheckDefinition]:
    return list(db.scalars(select(CheckDefinition).order_by(CheckDefinition.ordering, CheckDefinition.name)))


@app.post("/audits", response_model=AuditCreatedResponse, status_code=202)
def create_audit(payload: AuditCreate, db: Session = Depends(get_db)) -> AuditCreatedResponse:
    audit = Audit(
        url=payload.url,
        mode=payload.mode.value,
        selected_check_ids=payload.selected_check_ids,
        ai_config=payload.ai_config.model_dump(exclude_none=True),
    )
    db.add(audit)
    db.commit()

    enqueue_audit(audit.id)
    logger.info("Audit submitted", extra={"audit_id": audit.id, "url": audit.url, "mode": audit.mode})
    return AuditCreatedResponse(audit_id=audit.id, status=audit.status)


def _get_audit(db: Session, audit_id: str) -> Audit:
    audit = db.get(Audit, audit_id)
    if audit is None:
        raise HTTPException(status_code=404, detail="Audit not found")
    return audit


@app.get("/audits/{audit_id}", response_model=AuditStatusResponse)
def get_audit(audit_id: str, db: Session = Depends(get_db)) -> AuditStatusResponse:
    audit = _get_audit(db, audit_id)
    results = list(db.scalars(select(CheckResult).where(CheckResult.audit_id == audit.id)))

    completed = dict(
        db.execute(
            select(CheckResult.page_id, func.count())
            .where(CheckResult.audit_id == audit.id)
            .group_by(CheckResult.page_id)
        ).all()
    )
    pages = [
        PageProgress(
            page_id=page.id,
            url=page.url,
            is_priority=page.is_priority,
            page_type=page.page_type,
            data_collection_status=page.data_collection_status,
            testing_status=page.testing_status,
            expected_checks=page.expected_check_count,
            completed_checks=completed.get(page.id, 0),
        )
        for page in audit.pages
        if page.is_priority or audit.is_single_page
    ]

    return AuditStatusResponse(
        audit_id=audit.id,
        url=audit.url,
        mode=audit.mode,
        status=audit.status,
        current_phase=audit.current_phase,
        overall_score=audit.overall_score,
        category_scores=audit.category_scores or {},
        category_counts=status_counts(results),
        ai_summary=audit.ai_summary,
        error_message=audit.error_message,
        pages=pages,
        created_at=audit.created_at,
        completed_at=audit.completed_at,
    )


@app.get("/audits/{audit_id}/results", response_model=List[CheckResultResponse])
def list_results(audit_id: str, db: Session = Depends(get_db)) -> List[CheckResult]:
    audit = _get_audit(db, audit_id)
    return list(
        db.scalars(
            select(CheckResult)
            .where(CheckResult.audit_id == audit.id)
            .order_by(CheckResult.category, CheckResult.check_key)
        )
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("services.audit_service.main:app", host="0.0.0.0", port=settings.port)
