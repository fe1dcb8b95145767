import json
import re
from datetime import date
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from services.audit_service.pipeline.exceptions import AIResponseParseError

STRING_LIMIT = 1000
LIST_LIMIT = 10
DICT_LINE_LIMIT = 20
RAW_SUMMARY_LIMIT = 200

DEFAULT_SYSTEM_PROMPT = (
    "You are an expert website auditor specialising in conversion rate optimisation, "
    "usability, accessibility and technical quality. You evaluate a single web page "
    "against one specific check and give a clear, evidence-based verdict."
)

EVALUATION_GUIDELINES = """Evaluation guidelines:
- Judge only from the data provided; do not assume content you cannot see.
- "passed": the page clearly meets the check.
- "warning": partially meets the check or has minor issues.
- "failed": clearly does not meet the check.
- "not_applicable": the check does not apply to this page or the data is insufficient.
- Keep the summary to one or two sentences a site owner can act on.
- Respond with JSON only."""

RESPONSE_FORMAT = """Respond with a JSON object:
{
  "status": "passed" | "failed" | "warning" | "not_applicable",
  "summary": "one or two sentence verdict",
  "score": 0-100 (optional),
  "details": {} (optional, supporting evidence),
  "recommendation": "what to change" (optional)
}"""

_FENCED_BODY = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.IGNORECASE | re.DOTALL)


class AIVerdict(BaseModel):
    status: Literal["passed", "failed", "warning", "not_applicable"]
    summary: str = ""
    score: Optional[int] = Field(default=None, ge=0, le=100)
    details: Optional[Dict[str, Any]] = None
    reasoning: Optional[str] = None
    recommendation: Optional[str] = None

    def result_details(self) -> Optional[Dict[str, Any]]:
        details = dict(self.details or {})
        if self.reasoning:
            details["reasoning"] = self.reasoning
        if self.recommendation:
            details["recommendation"] = self.recommendation
        return details or None


def build_system_prompt(ai_config: Optional[Dict[str, Any]], today: Optional[date] = None) -> str:
    ai_config = ai_config or {}
    custom = ai_config.get("system_prompt") or ai_config.get("systemPrompt")
    base = custom.strip() if custom and custom.strip() else DEFAULT_SYSTEM_PROMPT
    today = today or date.today()
    return f"{base}\n\nCurrent date: {today.isoformat()}\n\n{EVALUATION_GUIDELINES}"


def humanize(name: str) -> str:
    return name.replace("_", " ").strip().capitalize()


def format_value(value: Any) -> str:
    if value is None:
        return "Not available"
    if isinstance(value, str):
        return value if len(value) <= STRING_LIMIT else value[:STRING_LIMIT] + "..."
    if isinstance(value, (list, tuple)):
        shown = json.dumps(list(value[:LIST_LIMIT]), ensure_ascii=False, default=str)
        if len(value) > LIST_LIMIT:
            shown += f"\n({len(value) - LIST_LIMIT} more items not shown)"
        return shown
    if isinstance(value, dict):
        lines = json.dumps(value, indent=2, ensure_ascii=False, default=str).splitlines()
        shown = "\n".join(lines[:DICT_LINE_LIMIT])
        if len(lines) > DICT_LINE_LIMIT:
            shown += "\n..."
        return shown
    return str(value)


def format_data_context(context: Dict[str, Any]) -> str:
    sections: List[str] = []
    for name, value in context.items():
        sections.append(f"### {humanize(name)}\n{format_value(value)}")
    return "\n\n".join(sections)


def build_user_prompt(page_url: str, context: Dict[str, Any], instructions: Optional[str]) -> str:
    return (
        f"## Page URL\n{page_url}\n\n"
        f"## AVAILABLE DATA\n{format_data_context(context)}\n\n"
        f"## TEST INSTRUCTIONS\n{(instructions or '').strip()}\n\n"
        f"## RESPONSE FORMAT\n{RESPONSE_FORMAT}"
    )


def strip_code_fences(text: str) -> str:
    """Return the body of the first fenced block, or the whole text when there is none."""
    match = _FENCED_BODY.search(text)
    return match.group(1).strip() if match else text.strip()


def parse_verdict(raw_response: str) -> AIVerdict:
    cleaned = strip_code_fences(raw_response)
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise AIResponseParseError(f"Response is not valid JSON: {e}", raw_response) from e

    if not isinstance(payload, dict):
        raise AIResponseParseError("Response JSON is not an object", raw_response)

    try:
        return AIVerdict.model_validate(payload)
    except ValidationError as e:
        raise AIResponseParseError(f"Response does not match the verdict schema: {e}", raw_response) from e


def truncated_summary(raw_response: str) -> str:
    return raw_response[:RAW_SUMMARY_LIMIT]
