from typing import Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from services.audit_service.db.models import (
    Audit,
    CheckDefinition,
    CollectionStatus,
    Page,
    TestingStatus,
)
from services.audit_service.pipeline.exceptions import PageNotReadyError
from services.audit_service.pipeline.registry import CheckRegistry, unregistered
from config.logging_config import PipelineLogger, get_logger

logger = get_logger(__name__)
pipeline_logger = PipelineLogger()

SubmitFn = Callable[[str, str], None]


def applicable_checks(session: Session, audit: Audit) -> List[CheckDefinition]:
    """
    Checks to run for every page of ``audit``.

    ``selected_check_ids`` of ``None`` means every active check, an empty list
    means none, anything else is intersected with the active checks.
    """
    selection = audit.selected_check_ids
    if selection is not None and len(selection) == 0:
        return []

    query = select(CheckDefinition).where(CheckDefinition.active.is_(True))
    if selection:
        query = query.where(CheckDefinition.id.in_([int(check_id) for check_id in selection]))
    query = query.order_by(CheckDefinition.ordering, CheckDefinition.name)
    return list(session.scalars(query))


class CheckDispatcher:
    """Fans out one fire-and-forget unit of work per applicable check of a page."""

    def __init__(self, session: Session, submit: SubmitFn, registry: Optional[CheckRegistry] = None):
        self.session = session
        self.submit = submit
        self.registry = registry

    def dispatch(self, page: Page) -> int:
        if page.data_collection_status != CollectionStatus.COMPLETE.value:
            raise PageNotReadyError(page.id, page.data_collection_status)

        checks = applicable_checks(self.session, page.audit)
        keys = [check.key for check in checks]

        if self.registry is not None:
            missing = unregistered(self.registry, keys)
            if missing:
                logger.warning(
                    "Dispatching checks without a registered strategy",
                    extra={"page_id": page.id, "check_keys": missing},
                )

        page.expected_check_count = len(keys)
        page.testing_status = (
            TestingStatus.TESTING.value if keys else TestingStatus.COMPLETE.value
        )
        self.session.commit()

        for key in keys:
            self.submit(page.id, key)

        pipeline_logger.log_checks_dispatched(page.audit_id, page.id, keys)
        return len(keys)
