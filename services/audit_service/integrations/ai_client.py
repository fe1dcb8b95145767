import time
from typing import Dict, List, Optional

import openai
from openai import OpenAI
from prometheus_client import Counter, Histogram
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from services.audit_service.config import settings
from config.logging_config import PipelineLogger, get_logger

logger = get_logger(__name__)
pipeline_logger = PipelineLogger()

ai_requests_total = Counter(
    'audit_ai_requests_total',
    'Chat completion requests issued by the audit pipeline',
    ['model', 'outcome']
)

ai_request_duration_seconds = Histogram(
    'audit_ai_request_duration_seconds',
    'Chat completion latency',
    ['model']
)

TRANSIENT_ERRORS = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class OpenAIChatClient:
    """Chat completion invoker that returns ``None`` instead of raising."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[OpenAI] = None,
    ):
        self.api_key = api_key or settings.openai_api_key
        self.base_url = base_url or settings.openai_base_url
        self.timeout = timeout or settings.ai_request_timeout_s
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    @retry(
        stop=stop_after_attempt(settings.ai_max_retries),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        reraise=True,
    )
    def _complete(self, messages: List[Dict[str, str]], model: str, temperature: float, max_tokens: int) -> str:
        response = self.client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return response.choices[0].message.content

    def chat(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> Optional[str]:
        model = model or settings.ai_default_model
        temperature = settings.ai_default_temperature if temperature is None else temperature
        max_tokens = max_tokens or settings.check_ai_max_tokens

        if not self.api_key and self._client is None:
            logger.warning("OpenAI API key is not configured, skipping AI call", extra={"model": model})
            ai_requests_total.labels(model=model, outcome='unconfigured').inc()
            return None

        started = time.monotonic()
        try:
            content = self._complete(messages, model, temperature, max_tokens)
        except Exception as e:
            logger.error(
                f"OpenAI chat completion failed: {e}",
                extra={"model": model, "error_type": type(e).__name__},
            )
            ai_requests_total.labels(model=model, outcome='error').inc()
            pipeline_logger.log_ai_call(model, time.monotonic() - started, False)
            return None
        finally:
            ai_request_duration_seconds.labels(model=model).observe(time.monotonic() - started)

        ai_requests_total.labels(model=model, outcome='success' if content else 'empty').inc()
        pipeline_logger.log_ai_call(model, time.monotonic() - started, bool(content))
        return content


_default_client: Optional[OpenAIChatClient] = None


def get_ai_client() -> OpenAIChatClient:
    global _default_client
    if _default_client is None:
        _default_client = OpenAIChatClient()
    return _default_client
