from datetime import datetime
from types import SimpleNamespace

from sqlalchemy import select

from services.audit_service.checks.rules import RuleOutcome
from services.audit_service.db.models import CheckResult, CheckStatus
from services.audit_service.pipeline.executor import CheckExecutor
from services.audit_service.pipeline.registry import CheckRegistry

SETTINGS = SimpleNamespace(
    ai_default_model="gpt-4o",
    ai_default_temperature=0.3,
    check_ai_max_tokens=2000,
)


class StubAIClient:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def chat(self, messages, model, temperature, max_tokens):
        self.calls.append({"messages": messages, "model": model, "temperature": temperature, "max_tokens": max_tokens})
        if self.error:
            raise self.error
        return self.response


def _passing_rule(artifact, url):
    return RuleOutcome(CheckStatus.PASSED, "Heading found", 100, {"h1": artifact.headings["h1"]})


def _exploding_rule(artifact, url):
    raise RuntimeError("boom")


def _executor(db, ai_client=None, rules=None, ai_checks=None):
    registry = CheckRegistry.build(ai_checks=ai_checks, rules=rules)
    return CheckExecutor(db, registry, ai_client or StubAIClient(), settings=SETTINGS)


def _results(db, page):
    return list(db.scalars(select(CheckResult).where(CheckResult.page_id == page.id)))


def test_deterministic_rule_result_is_recorded(db, make_audit, make_page, make_check):
    page = make_page(make_audit())
    check = make_check("single_h1", category="structure", data_sources=["headings"])

    result = _executor(db, rules={"single_h1": _passing_rule}).execute(page, check)

    assert result.status == "passed"
    assert result.score == 100
    assert result.category == "structure"
    assert result.audit_id == page.audit_id
    assert result.details == {"h1": ["Running shoes"]}


def test_inactive_check_is_not_applicable(db, make_audit, make_page, make_check):
    page = make_page(make_audit())
    check = make_check("single_h1", active=False)

    result = _executor(db, rules={"single_h1": _passing_rule}).execute(page, check)

    assert result.status == "not_applicable"
    assert result.summary == "Check is not currently active"


def test_unregistered_check_is_not_applicable(db, make_audit, make_page, make_check):
    page = make_page(make_audit())
    check = make_check("mystery_check")

    result = _executor(db).execute(page, check)

    assert result.status == "not_applicable"
    assert result.summary == "No execution strategy registered for this check"


def test_missing_data_sources_are_not_applicable(db, make_audit, make_page, make_check):
    page = make_page(make_audit(), page_content=None)
    check = make_check("content_typos", instructions="Find typos", data_sources=["page_content", "fonts"])
    ai_client = StubAIClient(response='{"status": "passed", "summary": "No typos"}')

    result = _executor(db, ai_client=ai_client, ai_checks={"content_typos": None}).execute(page, check)

    assert result.status == "not_applicable"
    assert result.summary == "Required data sources not available for this page"
    assert ai_client.calls == []


def test_ai_check_records_verdict_and_trace(db, make_audit, make_page, make_check):
    page = make_page(make_audit(ai_config={"model": "gpt-4o-mini", "temperature": "0.1"}))
    check = make_check("content_typos", instructions="Find typos", data_sources=["page_content"])
    response = '{"status": "warning", "summary": "One typo found", "score": 80, "recommendation": "Fix teh"}'
    ai_client = StubAIClient(response=response)

    result = _executor(db, ai_client=ai_client, ai_checks={"content_typos": None}).execute(page, check)

    assert result.status == "warning"
    assert result.score == 80
    assert result.details == {"recommendation": "Fix teh"}
    assert result.ai_response == response
    assert "## TEST INSTRUCTIONS\nFind typos" in result.ai_prompt
    assert result.data_context == {"url": page.url, "page_content": "Running shoes Built for distance."}

    call = ai_client.calls[0]
    assert call["model"] == "gpt-4o-mini"
    assert call["temperature"] == 0.1
    assert call["max_tokens"] == 2000
    assert call["messages"][0]["role"] == "system"


def test_malformed_ai_response_falls_back_with_truncated_summary(db, make_audit, make_page, make_check):
    page = make_page(make_audit())
    check = make_check("content_typos", instructions="Find typos", data_sources=["page_content"])
    rambling = "The page looks mostly fine to me. " * 20

    result = _executor(db, ai_client=StubAIClient(response=rambling), ai_checks={"content_typos": None}).execute(page, check)

    assert result.status == "not_applicable"
    assert result.summary == rambling[:200]
    assert result.ai_response == rambling
    assert "parse_error" in result.details


def test_ai_unavailable_is_not_applicable(db, make_audit, make_page, make_check):
    page = make_page(make_audit())
    check = make_check("content_typos", instructions="Find typos", data_sources=["page_content"])

    result = _executor(db, ai_client=StubAIClient(response=None), ai_checks={"content_typos": None}).execute(page, check)

    assert result.status == "not_applicable"
    assert result.summary == "AI analysis unavailable"


def test_strategy_exception_is_recorded_not_raised(db, make_audit, make_page, make_check):
    page = make_page(make_audit())
    check = make_check("explodes")

    result = _executor(db, rules={"explodes": _exploding_rule}).execute(page, check)

    assert result.status == "not_applicable"
    assert result.summary == "Check execution failed: boom"


def test_ai_client_exception_is_recorded_not_raised(db, make_audit, make_page, make_check):
    page = make_page(make_audit())
    check = make_check("content_typos", instructions="Find typos")

    executor = _executor(db, ai_client=StubAIClient(error=ValueError("socket closed")), ai_checks={"content_typos": None})
    result = executor.execute(page, check)

    assert result.summary == "Check execution failed: socket closed"


def test_deterministic_check_without_artifact(db, make_audit, make_page, make_check):
    page = make_page(make_audit(), collected=False)
    check = make_check("single_h1")

    result = _executor(db, rules={"single_h1": _passing_rule}).execute(page, check)

    assert result.summary == "Page data has not been collected"


def test_duplicate_delivery_keeps_single_result(db, make_audit, make_page, make_check):
    page = make_page(make_audit())
    check = make_check("single_h1")
    executor = _executor(db, rules={"single_h1": _passing_rule})

    first = executor.execute(page, check)
    second = executor.execute(page, check)

    assert first.id == second.id
    assert len(_results(db, page)) == 1


def test_execute_by_key_records_missing_definition(db, make_audit, make_page):
    page = make_page(make_audit())

    result = _executor(db).execute_by_key(page.id, "deleted_check")

    assert result.status == "not_applicable"
    assert result.summary == "Check definition not found"
    assert result.category == "general"


def test_execute_by_key_unknown_page_returns_none(db):
    assert _executor(db).execute_by_key("missing-page", "single_h1") is None


def _unstorable_rule(artifact, url):
    return RuleOutcome(CheckStatus.PASSED, "Heading found", 100, {"checked_at": datetime(2026, 1, 5, 12, 0)})


def test_unstorable_result_is_replaced_with_minimal_row(db, make_audit, make_page, make_check):
    page = make_page(make_audit())
    check = make_check("single_h1", category="structure")

    result = _executor(db, rules={"single_h1": _unstorable_rule}).execute(page, check)

    assert result is not None
    assert result.status == "not_applicable"
    assert result.summary.startswith("Failed to record check result:")
    assert len(result.summary) <= 500
    assert result.details is None
    assert result.category == "structure"
    rows = _results(db, page)
    assert len(rows) == 1
    assert rows[0].id == result.id
