import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from prometheus_client import Counter
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from services.audit_service.config import settings as default_settings
from services.audit_service.db.models import CheckDefinition, CheckResult, CheckStatus, Page
from services.audit_service.pipeline import ai_contract, data_context
from services.audit_service.pipeline.exceptions import AIResponseParseError
from services.audit_service.pipeline.registry import AIStrategy, CheckRegistry, DeterministicStrategy
from config.logging_config import PipelineLogger, get_logger

logger = get_logger(__name__)
pipeline_logger = PipelineLogger()

RECORD_ERROR_LIMIT = 500

checks_executed_total = Counter(
    'audit_checks_executed_total',
    'Check results recorded, by strategy and status',
    ['strategy', 'status']
)


@dataclass
class Evaluation:
    status: CheckStatus
    summary: str
    score: Optional[int] = None
    details: Optional[Dict[str, Any]] = None
    ai_prompt: Optional[str] = None
    ai_response: Optional[str] = None
    data_context: Optional[Dict[str, Any]] = None
    strategy: str = "none"


def _not_applicable(summary: str, **kwargs) -> Evaluation:
    return Evaluation(status=CheckStatus.NOT_APPLICABLE, summary=summary, **kwargs)


class CheckExecutor:
    """
    Runs one check against one page and records exactly one CheckResult.

    Nothing raised while evaluating a check escapes ``execute``: every failure
    is recorded as a ``not_applicable`` result carrying the reason.
    """

    def __init__(self, session: Session, registry: CheckRegistry, ai_client, settings=default_settings):
        self.session = session
        self.registry = registry
        self.ai_client = ai_client
        self.settings = settings

    def execute_by_key(self, page_id: str, check_key: str) -> Optional[CheckResult]:
        page = self.session.get(Page, page_id)
        if page is None:
            logger.warning("Page not found for check", extra={"page_id": page_id, "check_key": check_key})
            return None

        check = self.session.scalar(select(CheckDefinition).where(CheckDefinition.key == check_key))
        if check is None:
            return self._record(page, check_key, "general", _not_applicable("Check definition not found"), time.monotonic())
        return self.execute(page, check)

    def execute(self, page: Page, check: CheckDefinition) -> Optional[CheckResult]:
        started = time.monotonic()

        existing = self._existing(page.id, check.key)
        if existing is not None:
            logger.info(
                "Check already recorded, skipping duplicate delivery",
                extra={"page_id": page.id, "check_key": check.key},
            )
            return existing

        try:
            evaluation = self._evaluate(page, check)
        except Exception as e:
            logger.error(
                f"Check execution failed: {e}",
                extra={"page_id": page.id, "check_key": check.key},
                exc_info=True,
            )
            self.session.rollback()
            evaluation = _not_applicable(f"Check execution failed: {e}")

        return self._record(page, check.key, check.category, evaluation, started)

    def _evaluate(self, page: Page, check: CheckDefinition) -> Evaluation:
        if not check.active:
            return _not_applicable("Check is not currently active")

        strategy = self.registry.strategy_for(check.key)
        if strategy is None:
            return _not_applicable("No execution strategy registered for this check")

        artifact = page.artifact
        sources = list(check.data_sources or [])
        context = data_context.resolve(artifact, sources, page.url)
        if sources and not data_context.has_data(context):
            return _not_applicable("Required data sources not available for this page")

        logger.info(
            f"Data for {check.key}: {data_context.describe(context) or 'no declared sources'}",
            extra={"page_id": page.id, "check_key": check.key},
        )

        if isinstance(strategy, DeterministicStrategy):
            if artifact is None:
                return _not_applicable("Page data has not been collected")
            outcome = strategy.rule(artifact, page.url)
            return Evaluation(
                status=outcome.status,
                summary=outcome.summary,
                score=outcome.score,
                details=outcome.details or None,
                strategy=strategy.kind,
            )

        return self._evaluate_with_ai(page, check, strategy, context)

    def _evaluate_with_ai(
        self,
        page: Page,
        check: CheckDefinition,
        strategy: AIStrategy,
        context: Dict[str, Any],
    ) -> Evaluation:
        ai_config = page.audit.ai_config or {}
        model = ai_config.get("model") or self.settings.ai_default_model
        temperature = _temperature(ai_config.get("temperature"), self.settings.ai_default_temperature)

        system_prompt = ai_contract.build_system_prompt(ai_config)
        user_prompt = ai_contract.build_user_prompt(page.url, context, strategy.instructions or check.instructions)
        trace = {"ai_prompt": user_prompt, "data_context": {"url": page.url, **context}, "strategy": strategy.kind}

        logger.info(
            f"Requesting AI verdict for {check.key}",
            extra={"page_id": page.id, "check_key": check.key, "model": model},
        )
        response = self.ai_client.chat(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            model=model,
            temperature=temperature,
            max_tokens=self.settings.check_ai_max_tokens,
        )
        if not response:
            return _not_applicable("AI analysis unavailable", **trace)

        try:
            verdict = ai_contract.parse_verdict(response)
        except AIResponseParseError as e:
            logger.warning(
                f"Unparseable AI response for {check.key}: {response[:500]}",
                extra={"page_id": page.id, "check_key": check.key, "error": str(e)},
            )
            return _not_applicable(
                ai_contract.truncated_summary(response),
                details={"parse_error": str(e)},
                ai_response=response,
                **trace,
            )

        return Evaluation(
            status=CheckStatus(verdict.status),
            summary=verdict.summary,
            score=verdict.score,
            details=verdict.result_details(),
            ai_response=response,
            **trace,
        )

    def _existing(self, page_id: str, check_key: str) -> Optional[CheckResult]:
        return self.session.scalar(
            select(CheckResult).where(CheckResult.page_id == page_id, CheckResult.check_key == check_key)
        )

    def _record(
        self,
        page: Page,
        check_key: str,
        category: Optional[str],
        evaluation: Evaluation,
        started: float,
        retry: bool = True,
    ) -> Optional[CheckResult]:
        result = CheckResult(
            page_id=page.id,
            audit_id=page.audit_id,
            check_key=check_key,
            category=category or "general",
            status=evaluation.status.value,
            score=evaluation.score,
            summary=evaluation.summary or "",
            details=evaluation.details,
            ai_prompt=evaluation.ai_prompt,
            ai_response=evaluation.ai_response,
            data_context=evaluation.data_context,
        )

        try:
            self.session.add(result)
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            logger.warning(
                "Result already recorded by another delivery",
                extra={"page_id": page.id, "check_key": check_key},
            )
            return self._existing(page.id, check_key)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(
                f"Failed to record check result: {e}",
                extra={"page_id": page.id, "check_key": check_key},
                exc_info=True,
            )
            if not retry:
                return None
            fallback = _not_applicable(f"Failed to record check result: {e}"[:RECORD_ERROR_LIMIT])
            return self._record(page, check_key, category, fallback, started, retry=False)

        checks_executed_total.labels(strategy=evaluation.strategy, status=evaluation.status.value).inc()
        if evaluation.status == CheckStatus.NOT_APPLICABLE:
            pipeline_logger.log_check_fallback(page.id, check_key, evaluation.summary)
        pipeline_logger.log_check_recorded(page.id, check_key, evaluation.status.value, time.monotonic() - started)
        return result


def _temperature(value: Any, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default
