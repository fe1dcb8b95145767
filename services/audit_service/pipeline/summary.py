from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from services.audit_service.config import settings as default_settings
from services.audit_service.db.models import Audit, CheckResult, CheckStatus
from config.logging_config import get_logger

logger = get_logger(__name__)

MAX_FINDINGS = 5
FINDING_LIMIT = 150

SUMMARY_SYSTEM_PROMPT = (
    "You are a concise website audit expert. Write a short executive summary "
    "(3-4 sentences) of the audit results for a site owner: state the overall "
    "health of the page, name the most important problems, and suggest where to "
    "start. Plain text, no lists, no Markdown."
)


class ExecutiveSummarizer:

    def __init__(self, session: Session, ai_client, settings=default_settings):
        self.session = session
        self.ai_client = ai_client
        self.settings = settings

    def key_findings(self, results: List[CheckResult]) -> List[str]:
        findings = []
        for result in results:
            if result.status not in (CheckStatus.FAILED.value, CheckStatus.WARNING.value):
                continue
            findings.append(f"{result.check_key} ({result.status}): {(result.summary or '')[:FINDING_LIMIT]}")
            if len(findings) >= MAX_FINDINGS:
                break
        return findings

    def build_prompt(self, audit: Audit, results: List[CheckResult]) -> str:
        passed = sum(1 for result in results if result.status == CheckStatus.PASSED.value)
        failed = sum(1 for result in results if result.status == CheckStatus.FAILED.value)
        warning = sum(1 for result in results if result.status == CheckStatus.WARNING.value)

        lines = [
            f"Audited page: {audit.url}",
            f"Checks run: {len(results)} ({passed} passed, {warning} warnings, {failed} failed)",
        ]
        findings = self.key_findings(results)
        if findings:
            lines.append("Key findings:")
            lines.extend(f"- {finding}" for finding in findings)
        else:
            lines.append("No failed or warning checks.")
        return "\n".join(lines)

    def summarize(self, audit: Audit) -> Optional[str]:
        results = list(
            self.session.scalars(
                select(CheckResult).where(CheckResult.audit_id == audit.id).order_by(CheckResult.created_at)
            )
        )
        if not results:
            return None

        ai_config = audit.ai_config or {}
        summary = self.ai_client.chat(
            [
                {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
                {"role": "user", "content": self.build_prompt(audit, results)},
            ],
            model=ai_config.get("model") or self.settings.ai_default_model,
            temperature=self.settings.ai_default_temperature,
            max_tokens=self.settings.summary_ai_max_tokens,
        )
        if not summary:
            logger.warning("Executive summary unavailable", extra={"audit_id": audit.id})
            return None

        audit.ai_summary = summary.strip()
        self.session.commit()
        return audit.ai_summary
