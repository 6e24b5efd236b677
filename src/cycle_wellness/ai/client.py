"""OpenAI chat completion client.

All AI features (event suggestions, chat, predictions, week planning, email
drafting and reply analysis) go through `LLMClient.complete`.

## Retries

Transient failures are retried with tenacity, the same policy the HTTP
clients use: 3 attempts, exponential backoff between 2 and 10 seconds.

| Error                                  | Retried |
|----------------------------------------|---------|
| 429 rate limit (`openai.RateLimitError`) | yes   |
| 5xx (`openai.InternalServerError`)     | yes     |
| connection / timeout errors            | yes     |
| other 4xx, malformed requests          | no      |

Each retry is written to `ai_retry_logs` when the client has an `AIMonitor`.
After the last attempt the error surfaces as `LLMError`; callers decide on a
deterministic fallback.
"""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any

import openai
from openai import AsyncOpenAI
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cycle_wellness.config import get_settings

if TYPE_CHECKING:
    from cycle_wellness.monitoring.ai_logging import AIMonitor

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (
    openai.RateLimitError,
    openai.InternalServerError,
    openai.APIConnectionError,
)

_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


class LLMError(Exception):
    """Raised when the language model cannot produce a usable answer."""


def strip_code_fences(text: str) -> str:
    """Remove Markdown code fences the model sometimes wraps JSON in."""
    return _FENCE_RE.sub("", text).strip()


def parse_json_reply(text: str) -> Any:
    """Parse a JSON answer, tolerating ```json fences.

    Raises:
        LLMError: If the reply is not valid JSON
    """
    cleaned = strip_code_fences(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise LLMError(f"Model returned invalid JSON: {cleaned[:200]}") from e


class LLMClient:
    """Thin async wrapper around the OpenAI chat completions API.

    Example:
        ```python
        llm = LLMClient(monitor=AIMonitor(db, user.id))
        text = await llm.complete(
            [{"role": "user", "content": "Hello"}],
            operation="ai-chat",
            temperature=0.7,
            max_tokens=500,
        )
        ```
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        client: AsyncOpenAI | None = None,
        monitor: AIMonitor | None = None,
        max_attempts: int = 3,
    ):
        settings = get_settings()

        self.api_key = api_key or settings.openai_api_key
        self.model = model or settings.openai_model
        self.timeout = timeout or settings.openai_timeout_seconds
        self.monitor = monitor
        self.max_attempts = max_attempts
        self._client = client

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key or self._client)

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise LLMError("OpenAI API key not configured")
            # Retries are handled here, not by the SDK
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        operation: str = "llm",
        temperature: float | None = None,
        max_tokens: int | None = None,
        json_mode: bool = False,
    ) -> str:
        """Run a chat completion and return the reply text.

        Args:
            messages: Chat messages (role/content dicts)
            operation: Operation name used in retry logs
            temperature: Sampling temperature (model default if None)
            max_tokens: Reply length limit
            json_mode: Ask the model for a JSON object

        Returns:
            Reply text, stripped

        Raises:
            LLMError: If the API is not configured or keeps failing
        """
        client = self._get_client()

        params: dict[str, Any] = {"model": self.model, "messages": messages}
        if temperature is not None:
            params["temperature"] = temperature
        if max_tokens is not None:
            params["max_tokens"] = max_tokens
        if json_mode:
            params["response_format"] = {"type": "json_object"}

        last_error: str | None = None
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=1, min=2, max=10),
                retry=retry_if_exception_type(RETRYABLE_ERRORS),
                reraise=True,
            ):
                with attempt:
                    number = attempt.retry_state.attempt_number
                    if number > 1:
                        logger.warning(
                            f"Retrying {operation} (attempt {number}): {last_error}"
                        )
                        if self.monitor:
                            await self.monitor.log_retry_attempt(
                                operation, number, last_error
                            )
                    try:
                        response = await client.chat.completions.create(**params)
                    except RETRYABLE_ERRORS as e:
                        last_error = str(e)
                        raise
        except openai.OpenAIError as e:
            logger.error(f"OpenAI request for {operation} failed: {e}")
            raise LLMError(f"AI request failed: {e}") from e

        if not response.choices:
            raise LLMError("AI returned no choices")

        content = response.choices[0].message.content or ""
        return content.strip()

    async def complete_json(
        self,
        messages: list[dict[str, str]],
        **kwargs: Any,
    ) -> Any:
        """Like `complete`, but parse the reply as JSON."""
        text = await self.complete(messages, **kwargs)
        return parse_json_reply(text)
