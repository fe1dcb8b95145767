from collections import defaultdict
from typing import Dict, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from services.audit_service.db.models import Audit, CheckResult, CheckStatus
from config.logging_config import get_logger

logger = get_logger(__name__)


def score(results: Iterable[CheckResult]) -> Optional[int]:
    """Share of passed results among the applicable ones, 0-100."""
    applicable = [result for result in results if result.status != CheckStatus.NOT_APPLICABLE.value]
    if not applicable:
        return None
    passed = sum(1 for result in applicable if result.status == CheckStatus.PASSED.value)
    return round(passed / len(applicable) * 100)


def status_counts(results: Iterable[CheckResult]) -> Dict[str, Dict[str, int]]:
    counts: Dict[str, Dict[str, int]] = defaultdict(lambda: {status.value: 0 for status in CheckStatus})
    for result in results:
        counts[result.category][result.status] += 1
    return dict(counts)


class ResultAggregator:

    def __init__(self, session: Session):
        self.session = session

    def synthesize(self, audit: Audit) -> Dict[str, Optional[int]]:
        results = list(self.session.scalars(select(CheckResult).where(CheckResult.audit_id == audit.id)))

        by_category = defaultdict(list)
        for result in results:
            by_category[result.category].append(result)

        category_scores = {category: score(items) for category, items in sorted(by_category.items())}
        audit.category_scores = category_scores
        audit.overall_score = score(results)
        self.session.commit()

        logger.info(
            "Audit scores calculated",
            extra={
                "audit_id": audit.id,
                "overall_score": audit.overall_score,
                "categories": len(category_scores),
                "results": len(results),
            },
        )
        return category_scores
