import threading
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from services.audit_service.config import settings as default_settings
from services.audit_service.db.models import (
    Audit,
    AuditMode,
    AuditStatus,
    CollectionStatus,
    Page,
)
from services.audit_service.pipeline import phases
from services.audit_service.pipeline.barrier import CompletionBarrier
from services.audit_service.pipeline.dispatcher import CheckDispatcher, SubmitFn
from services.audit_service.pipeline.exceptions import AuditNotFoundError
from services.audit_service.pipeline.registry import CheckRegistry
from services.audit_service.pipeline.summary import ExecutiveSummarizer
from services.audit_service.pipeline.synthesizer import ResultAggregator
from config.logging_config import PipelineLogger, get_logger

logger = get_logger(__name__)
pipeline_logger = PipelineLogger()


class AuditOrchestrator:
    """
    Phase state machine for one audit.

    Full crawl: pending -> crawling -> prioritizing -> collecting -> testing
    -> synthesizing -> complete. Single page skips crawling and prioritizing.
    Any collaborator error moves the audit to ``failed`` and stops the run;
    a failed executive summary is the only tolerated error.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        crawler,
        prioritizer,
        collector,
        submit: SubmitFn,
        barrier: CompletionBarrier,
        registry: Optional[CheckRegistry] = None,
        ai_client=None,
        settings=default_settings,
        aggregator_factory: Callable[[Session], ResultAggregator] = ResultAggregator,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.session_factory = session_factory
        self.crawler = crawler
        self.prioritizer = prioritizer
        self.collector = collector
        self.submit = submit
        self.barrier = barrier
        self.registry = registry
        self.ai_client = ai_client
        self.settings = settings
        self.aggregator_factory = aggregator_factory
        self.cancel_event = cancel_event

    def run(self, audit_id: str) -> str:
        with self.session_factory() as session:
            if not self._claim(session, audit_id):
                audit = session.get(Audit, audit_id)
                if audit is None:
                    raise AuditNotFoundError(f"Audit {audit_id} not found")
                pipeline_logger.log_audit_rejected(audit_id, audit.status)
                return audit.status

            audit = session.get(Audit, audit_id, populate_existing=True)
            pipeline_logger.log_audit_started(audit.id, audit.url, audit.mode)
            started = time.monotonic()

            try:
                if audit.mode == AuditMode.FULL_CRAWL.value:
                    self._run_full_crawl(session, audit)
                else:
                    self._run_single_page(session, audit)
            except Exception as e:
                session.rollback()
                self._fail(session, audit_id, e)
                return AuditStatus.FAILED.value

            pipeline_logger.log_audit_completed(audit.id, time.monotonic() - started)
            return audit.status

    def _claim(self, session: Session, audit_id: str) -> bool:
        """Move the audit out of ``pending`` atomically; a second run finds nothing to claim."""
        mode = session.scalar(select(Audit.mode).where(Audit.id == audit_id))
        first_phase = phases.phases_for(mode)[1].value

        claimed = session.execute(
            update(Audit)
            .where(Audit.id == audit_id, Audit.status == AuditStatus.PENDING.value)
            .values(
                status=first_phase,
                current_phase=first_phase,
                started_at=datetime.now(timezone.utc),
            )
        ).rowcount
        session.commit()
        if claimed:
            pipeline_logger.log_phase_started(audit_id, first_phase)
        return claimed == 1

    def _enter(self, session: Session, audit: Audit, status: AuditStatus) -> None:
        phases.advance(audit, status)
        session.commit()
        pipeline_logger.log_phase_started(audit.id, status.value)

    def _fail(self, session: Session, audit_id: str, error: Exception) -> None:
        audit = session.get(Audit, audit_id, populate_existing=True)
        phase = audit.current_phase
        if not phases.is_terminal(audit.status):
            phases.advance(audit, AuditStatus.FAILED)
        audit.error_message = str(error)[:2000]
        session.commit()
        pipeline_logger.log_audit_failed(audit_id, phase, error)

    def _run_single_page(self, session: Session, audit: Audit) -> None:
        page = self._single_page(session, audit)
        self._collect(session, page)

        self._enter(session, audit, AuditStatus.TESTING)
        queued = self._dispatcher(session).dispatch(page)
        if queued:
            self.barrier.wait(page.id, queued, cancel_event=self.cancel_event, finalize_audit=False)
            session.expire_all()

        self._enter(session, audit, AuditStatus.SYNTHESIZING)
        self.aggregator_factory(session).synthesize(audit)
        if queued:
            self._summarize(session, audit)

        self._enter(session, audit, AuditStatus.COMPLETE)

    def _run_full_crawl(self, session: Session, audit: Audit) -> None:
        urls = self.crawler.crawl(audit.url)
        known = {page.url for page in audit.pages}
        for url in urls:
            if url not in known:
                session.add(Page(audit_id=audit.id, url=url, is_priority=False))
                known.add(url)
        session.flush()
        session.refresh(audit)
        audit.discovered_pages_count = len(audit.pages)
        session.commit()

        self._enter(session, audit, AuditStatus.PRIORITIZING)
        priorities = self.prioritizer.identify_priority(audit)
        by_url = {page.url: page for page in audit.pages}
        for item in priorities:
            page = by_url.get(item["url"])
            if page is None:
                continue
            page.is_priority = True
            page.page_type = item.get("page_type")
            page.priority_score = item.get("priority_score")
        audit.priority_pages_count = sum(1 for page in audit.pages if page.is_priority)
        session.commit()

        self._enter(session, audit, AuditStatus.COLLECTING)
        priority_pages = self._priority_pages(session, audit)
        for page in priority_pages:
            self._collect(session, page)

        self._enter(session, audit, AuditStatus.TESTING)
        dispatcher = self._dispatcher(session)
        for page in priority_pages:
            if page.data_collection_status != CollectionStatus.COMPLETE.value:
                continue
            queued = dispatcher.dispatch(page)
            if queued and self.settings.full_crawl_wait_for_checks:
                self.barrier.wait(page.id, queued, cancel_event=self.cancel_event, finalize_audit=False)
        session.expire_all()

        self._enter(session, audit, AuditStatus.SYNTHESIZING)
        self.aggregator_factory(session).synthesize(audit)

        self._enter(session, audit, AuditStatus.COMPLETE)

    def _single_page(self, session: Session, audit: Audit) -> Page:
        page = session.scalar(select(Page).where(Page.audit_id == audit.id, Page.url == audit.url))
        if page is None:
            page = Page(audit_id=audit.id, url=audit.url, is_priority=True)
            session.add(page)
            session.commit()
        return page

    def _priority_pages(self, session: Session, audit: Audit) -> List[Page]:
        return list(
            session.scalars(
                select(Page)
                .where(Page.audit_id == audit.id, Page.is_priority.is_(True))
                .order_by(Page.priority_score.desc(), Page.url)
            )
        )

    def _collect(self, session: Session, page: Page) -> None:
        page.data_collection_status = CollectionStatus.COLLECTING.value
        session.commit()

        try:
            artifact = self.collector.collect(page)
        except Exception:
            page.data_collection_status = CollectionStatus.FAILED.value
            session.commit()
            raise

        page.artifact = artifact
        page.data_collection_status = CollectionStatus.COMPLETE.value
        session.commit()

    def _dispatcher(self, session: Session) -> CheckDispatcher:
        return CheckDispatcher(session, self.submit, self.registry)

    def _summarize(self, session: Session, audit: Audit) -> None:
        if self.ai_client is None:
            return
        try:
            ExecutiveSummarizer(session, self.ai_client, self.settings).summarize(audit)
        except Exception as e:
            session.rollback()
            logger.warning(
                f"Executive summary failed, completing without it: {e}",
                extra={"audit_id": audit.id},
                exc_info=True,
            )
