import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from prometheus_client import Counter, Histogram
from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from services.audit_service.config import settings
from services.audit_service.db.models import Audit, AuditStatus, CheckResult, Page, TestingStatus
from services.audit_service.pipeline import phases
from config.logging_config import PipelineLogger, get_logger

logger = get_logger(__name__)
pipeline_logger = PipelineLogger()

barrier_wait_seconds = Histogram(
    'audit_barrier_wait_seconds',
    'Time spent waiting for dispatched checks of a page'
)

barrier_outcomes_total = Counter(
    'audit_barrier_outcomes_total',
    'Barrier waits by outcome',
    ['outcome']
)


@dataclass(frozen=True)
class BarrierPolicy:
    idle_interval: float = 1.0
    active_interval: float = 0.5
    max_attempts: int = 120
    max_wait: Optional[float] = 120.0

    @classmethod
    def from_settings(cls) -> "BarrierPolicy":
        return cls(
            idle_interval=settings.barrier_idle_interval_s,
            active_interval=settings.barrier_active_interval_s,
            max_attempts=settings.barrier_max_attempts,
            max_wait=settings.barrier_max_wait_s,
        )


class CompletionBarrier:
    """
    Waits for a page's dispatched checks by polling persisted result counts.

    Workers never signal back; the barrier converges when the count reaches
    the expected number or gives up after the attempt budget. Either way the
    page is marked ``complete`` so a lost job cannot stall the audit.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        policy: Optional[BarrierPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session_factory = session_factory
        self.policy = policy or BarrierPolicy.from_settings()
        self.sleep = sleep
        self.clock = clock

    def result_count(self, page_id: str) -> int:
        with self.session_factory() as session:
            return session.scalar(
                select(func.count()).select_from(CheckResult).where(CheckResult.page_id == page_id)
            ) or 0

    def wait(
        self,
        page_id: str,
        expected_count: int,
        max_wait: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
        finalize_audit: bool = True,
    ) -> bool:
        """Return True when every expected result arrived, False on timeout or cancellation."""
        started = self.clock()
        deadline = max_wait if max_wait is not None else self.policy.max_wait
        converged = False
        last_count = -1
        completed = 0

        for attempt in range(1, self.policy.max_attempts + 1):
            completed = self.result_count(page_id)
            if completed != last_count:
                pipeline_logger.log_barrier_progress(page_id, completed, expected_count, attempt)
                last_count = completed

            if completed >= expected_count:
                converged = True
                pipeline_logger.log_barrier_converged(page_id, expected_count, attempt)
                break

            if cancel_event is not None and cancel_event.is_set():
                logger.warning("Barrier wait cancelled", extra={"page_id": page_id})
                break

            if deadline is not None and self.clock() - started >= deadline:
                break

            if attempt < self.policy.max_attempts:
                self.sleep(self.policy.active_interval if completed > 0 else self.policy.idle_interval)

        if not converged:
            pipeline_logger.log_barrier_timeout(page_id, completed, expected_count)

        barrier_outcomes_total.labels(outcome='converged' if converged else 'timeout').inc()
        barrier_wait_seconds.observe(self.clock() - started)

        self._finalize(page_id, finalize_audit)
        return converged

    def _finalize(self, page_id: str, finalize_audit: bool) -> None:
        with self.session_factory() as session:
            page = session.get(Page, page_id)
            if page is None:
                return
            page.testing_status = TestingStatus.COMPLETE.value

            if finalize_audit:
                audit = session.get(Audit, page.audit_id)
                if audit is not None and phases.can_advance(audit.status, AuditStatus.COMPLETE.value):
                    phases.advance(audit, AuditStatus.COMPLETE)
            session.commit()
