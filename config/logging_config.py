# logging_config.py

import os
import re
import sys
import logging
import logging.handlers
from pathlib import Path
from pythonjsonlogger import jsonlogger
from typing import Dict, Optional

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = Path(os.getenv("LOG_DIR", "logs"))

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

PLAIN_FORMAT = '[%(asctime)s] %(levelname)-8s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
JSON_FORMAT = '%(timestamp)s %(level)s %(name)s %(message)s'


class SensitiveDataFilter(logging.Filter):

    SENSITIVE_KEYS = [
        'password', 'token', 'api_key', 'secret', 'authorization',
        'bearer', 'openai_api_key', 'audit_openai_api_key',
        'postgres_password', 'redis_password',
    ]

    PATTERNS = [
        (r'(api[_-]?key\s*[=:]\s*)[^\s&]+', r'\1***MASKED***'),
        (r'(token\s*[=:]\s*)[^\s&]+', r'\1***MASKED***'),
        (r'(password\s*[=:]\s*)[^\s&]+', r'\1***MASKED***'),
        (r'(sk-[a-zA-Z0-9_\-]{20,})', r'sk-***MASKED***'),
        (r'(Bearer\s+)[^\s]+', r'\1***MASKED***'),
        (r'(://[^:/\s]+:)[^@\s]+(@)', r'\1***MASKED***\2'),
    ]

    def filter(self, record):
        if hasattr(record, 'msg'):
            msg = str(record.msg)
            lowered = msg.lower()
            if any(key in lowered for key in self.SENSITIVE_KEYS) or 'sk-' in msg or '://' in msg:
                record.msg = self._mask_sensitive_data(msg)

        if hasattr(record, 'args') and record.args and isinstance(record.args, tuple):
            record.args = tuple(
                self._mask_if_sensitive(arg) for arg in record.args
            )

        return True

    def _mask_sensitive_data(self, text):
        for pattern, replacement in self.PATTERNS:
            text = re.sub(pattern, replacement, text, flags=re.IGNORECASE)
        return text

    def _mask_if_sensitive(self, value):
        if isinstance(value, str):
            return self._mask_sensitive_data(value)
        return value


class CustomJsonFormatter(jsonlogger.JsonFormatter):

    CONTEXT_FIELDS = ('audit_id', 'page_id', 'check_key', 'phase', 'task_id')

    def add_fields(self, log_record, record, message_dict):
        super(CustomJsonFormatter, self).add_fields(log_record, record, message_dict)

        log_record['timestamp'] = self.formatTime(record, self.datefmt)
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['module'] = record.module
        log_record['function'] = record.funcName
        log_record['line'] = record.lineno

        if hasattr(record, 'service_name'):
            log_record['service'] = record.service_name

        for field in self.CONTEXT_FIELDS:
            if hasattr(record, field):
                log_record[field] = getattr(record, field)

        if record.exc_info:
            log_record['exception'] = self.formatException(record.exc_info)


class MetricsLogger:

    _metrics = {
        'audits_started': 0,
        'audits_completed': 0,
        'audits_failed': 0,
        'checks_dispatched': 0,
        'checks_recorded': 0,
        'checks_fallback': 0,
        'barrier_timeouts': 0,
        'ai_calls_success': 0,
        'ai_calls_failed': 0,
    }

    @classmethod
    def increment(cls, metric_name: str, value: int = 1):
        if metric_name in cls._metrics:
            cls._metrics[metric_name] += value

    @classmethod
    def get_metrics(cls) -> Dict[str, int]:
        return cls._metrics.copy()

    @classmethod
    def reset_metrics(cls):
        for key in cls._metrics:
            cls._metrics[key] = 0


def _build_formatter():
    if ENVIRONMENT == "production":
        return CustomJsonFormatter(JSON_FORMAT)
    return logging.Formatter(PLAIN_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')


def setup_logging(service_name="audit_service", log_to_files=True):

    logger = logging.getLogger()
    logger.setLevel(LOG_LEVEL)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    sensitive_filter = SensitiveDataFilter()
    formatter = _build_formatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(LOG_LEVEL)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(sensitive_filter)
    logger.addHandler(console_handler)

    if log_to_files:
        LOG_DIR.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            LOG_DIR / f"{service_name}.log",
            maxBytes=50 * 1024 * 1024,
            backupCount=10,
            encoding='utf-8'
        )
        file_handler.setLevel(LOG_LEVEL)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(sensitive_filter)
        logger.addHandler(file_handler)

        error_handler = logging.handlers.RotatingFileHandler(
            LOG_DIR / f"{service_name}_error.log",
            maxBytes=50 * 1024 * 1024,
            backupCount=10,
            encoding='utf-8'
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)
        error_handler.addFilter(sensitive_filter)
        logger.addHandler(error_handler)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("celery").setLevel(logging.INFO)
    logging.getLogger("kombu").setLevel(logging.WARNING)
    logging.getLogger("amqp").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("playwright").setLevel(logging.WARNING)

    return logger


class ServiceLoggerAdapter(logging.LoggerAdapter):

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_logger(name, service_name=None):
    logger = logging.getLogger(name)

    if service_name:
        logger = ServiceLoggerAdapter(logger, {'service_name': service_name})

    return logger


def setup_celery_logging():
    from celery.signals import after_setup_logger, after_setup_task_logger

    @after_setup_logger.connect(weak=False)
    def setup_loggers(logger, *args, **kwargs):
        for handler in logger.handlers:
            handler.addFilter(SensitiveDataFilter())

    @after_setup_task_logger.connect(weak=False)
    def setup_task_loggers(logger, *args, **kwargs):
        for handler in logger.handlers:
            handler.addFilter(SensitiveDataFilter())


def log_task_execution(logger, task_name, task_id, duration, status, error=None):
    extra = {
        'task_name': task_name,
        'task_id': task_id,
        'duration_seconds': round(duration, 2),
        'status': status,
    }

    if error:
        logger.error(
            f"Task failed: {task_name} ({task_id})",
            extra={**extra, 'error': str(error)},
            exc_info=error
        )
    else:
        logger.info(
            f"Task completed: {task_name} ({task_id})",
            extra=extra
        )


class PipelineLogger:

    def __init__(self):
        self.logger = get_logger('audit_pipeline', service_name='audit')

    def log_audit_started(self, audit_id, url, mode):
        self.logger.info(
            f"Audit started: {url} ({mode})",
            extra={'audit_id': audit_id, 'url': url, 'mode': mode}
        )
        MetricsLogger.increment('audits_started')

    def log_audit_rejected(self, audit_id, status):
        self.logger.warning(
            f"Audit run rejected, status is {status}",
            extra={'audit_id': audit_id, 'status': status}
        )

    def log_phase_started(self, audit_id, phase):
        self.logger.info(
            f"Phase started: {phase}",
            extra={'audit_id': audit_id, 'phase': phase}
        )

    def log_audit_completed(self, audit_id, duration):
        self.logger.info(
            f"Audit completed in {duration:.2f}s",
            extra={'audit_id': audit_id, 'duration_seconds': round(duration, 2)}
        )
        MetricsLogger.increment('audits_completed')

    def log_audit_failed(self, audit_id, phase, error):
        self.logger.error(
            f"Audit failed during {phase}: {error}",
            extra={'audit_id': audit_id, 'phase': phase},
            exc_info=error
        )
        MetricsLogger.increment('audits_failed')

    def log_checks_dispatched(self, audit_id, page_id, check_keys):
        self.logger.info(
            f"Dispatched {len(check_keys)} checks",
            extra={'audit_id': audit_id, 'page_id': page_id, 'check_keys': list(check_keys)}
        )
        MetricsLogger.increment('checks_dispatched', len(check_keys))

    def log_barrier_progress(self, page_id, completed, expected, attempt):
        self.logger.info(
            f"Check progress: {completed}/{expected}",
            extra={'page_id': page_id, 'completed': completed, 'expected': expected, 'attempt': attempt}
        )

    def log_barrier_converged(self, page_id, expected, attempts):
        self.logger.info(
            f"All {expected} checks completed after {attempts} polls",
            extra={'page_id': page_id, 'expected': expected, 'attempts': attempts}
        )

    def log_barrier_timeout(self, page_id, completed, expected):
        self.logger.warning(
            f"Timed out waiting for checks: {completed}/{expected} completed",
            extra={'page_id': page_id, 'completed': completed, 'expected': expected}
        )
        MetricsLogger.increment('barrier_timeouts')

    def log_check_recorded(self, page_id, check_key, status, duration):
        self.logger.info(
            f"Check {check_key}: {status}",
            extra={
                'page_id': page_id,
                'check_key': check_key,
                'status': status,
                'duration_ms': round(duration * 1000, 2)
            }
        )
        MetricsLogger.increment('checks_recorded')

    def log_check_fallback(self, page_id, check_key, reason):
        self.logger.warning(
            f"Check {check_key} recorded as not applicable: {reason}",
            extra={'page_id': page_id, 'check_key': check_key, 'reason': reason}
        )
        MetricsLogger.increment('checks_fallback')

    def log_ai_call(self, model, duration, success):
        extra = {
            'model': model,
            'duration_ms': round(duration * 1000, 2),
            'success': success,
        }
        if success:
            self.logger.info(f"AI call completed: {model}", extra=extra)
            MetricsLogger.increment('ai_calls_success')
        else:
            self.logger.warning(f"AI call returned no content: {model}", extra=extra)
            MetricsLogger.increment('ai_calls_failed')
