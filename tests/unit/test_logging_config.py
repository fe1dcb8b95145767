import json
import logging

from config.logging_config import CustomJsonFormatter, MetricsLogger, PipelineLogger, SensitiveDataFilter


def _record(msg, **extra):
    record = logging.LogRecord("audit", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_sensitive_values_are_masked():
    record = _record("calling with api_key=sk-abcdefghijklmnopqrstuvwxyz and Bearer abc.def")
    SensitiveDataFilter().filter(record)
    assert "sk-abcdefghijklmnopqrstuvwxyz" not in record.msg
    assert "abc.def" not in record.msg


def test_database_password_in_url_is_masked():
    record = _record("connecting to postgresql://audit:hunter2@db:5432/audit")
    SensitiveDataFilter().filter(record)
    assert "hunter2" not in record.msg


def test_json_formatter_carries_pipeline_context():
    formatter = CustomJsonFormatter("%(message)s")
    payload = json.loads(formatter.format(_record("Check recorded", audit_id="a-1", check_key="structure_https")))
    assert payload["audit_id"] == "a-1"
    assert payload["check_key"] == "structure_https"
    assert payload["level"] == "INFO"


def test_pipeline_logger_updates_counters():
    MetricsLogger.reset_metrics()
    pipeline_logger = PipelineLogger()

    pipeline_logger.log_check_fallback("page-1", "structure_https", "AI analysis unavailable")
    pipeline_logger.log_barrier_timeout("page-1", 2, 3)

    metrics = MetricsLogger.get_metrics()
    assert metrics["checks_fallback"] == 1
    assert metrics["barrier_timeouts"] == 1
