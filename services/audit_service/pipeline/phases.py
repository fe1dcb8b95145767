from datetime import datetime, timezone
from typing import Tuple

from services.audit_service.db.models import Audit, AuditMode, AuditStatus
from services.audit_service.pipeline.exceptions import PhaseTransitionError

FULL_CRAWL_PHASES: Tuple[AuditStatus, ...] = (
    AuditStatus.PENDING,
    AuditStatus.CRAWLING,
    AuditStatus.PRIORITIZING,
    AuditStatus.COLLECTING,
    AuditStatus.TESTING,
    AuditStatus.SYNTHESIZING,
    AuditStatus.COMPLETE,
)

SINGLE_PAGE_PHASES: Tuple[AuditStatus, ...] = (
    AuditStatus.PENDING,
    AuditStatus.COLLECTING,
    AuditStatus.TESTING,
    AuditStatus.SYNTHESIZING,
    AuditStatus.COMPLETE,
)

_RANK = {status.value: index for index, status in enumerate(FULL_CRAWL_PHASES)}


def phases_for(mode: str) -> Tuple[AuditStatus, ...]:
    if mode == AuditMode.FULL_CRAWL.value:
        return FULL_CRAWL_PHASES
    return SINGLE_PAGE_PHASES


def is_terminal(status: str) -> bool:
    return status in (AuditStatus.COMPLETE.value, AuditStatus.FAILED.value)


def can_advance(current: str, requested: str) -> bool:
    """Forward-only ordering; ``failed`` is reachable from any non-terminal state and never left."""
    if current == AuditStatus.FAILED.value:
        return False
    if requested == AuditStatus.FAILED.value:
        return current != AuditStatus.COMPLETE.value
    return _RANK[requested] >= _RANK[current]


def advance(audit: Audit, requested: AuditStatus) -> None:
    current = audit.status
    if not can_advance(current, requested.value):
        raise PhaseTransitionError(current, requested.value)

    audit.status = requested.value
    if requested != AuditStatus.FAILED:
        audit.current_phase = requested.value
    if requested in (AuditStatus.COMPLETE, AuditStatus.FAILED):
        audit.completed_at = datetime.now(timezone.utc)
