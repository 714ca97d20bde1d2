"""Client for a local OpenAI-compatible chat-completions server.

This module is the only place that talks to a model over HTTP. It is used
by the classifier's optional refinement step, which always targets a local
server (Ollama, LM Studio, llama.cpp) so raw activity never leaves the
machine through this path.

Every failure is mapped onto the ``LocalModelError`` hierarchy; callers
catch the base class and fall back to rule-based results.

Example:
    >>> from dailydigest.ai.client import LocalModelClient, LocalModelError
    >>> client = LocalModelClient("http://localhost:11434", model="qwen2.5:14b")
    >>> try:
    ...     response = client.complete("Return JSON.", "Classify: ...")
    ... except LocalModelError as e:
    ...     print(f"falling back: {e}")
"""

from __future__ import annotations

import json
import logging
import random
import re
import time
from typing import Any, Callable, Literal

import requests
from pydantic import BaseModel, Field

from dailydigest.config import ClassificationConfig
from dailydigest.utils.logging import RedactingFilter

logger = logging.getLogger(__name__)
logger.addFilter(RedactingFilter())

DEFAULT_SYSTEM_PROMPT = (
    "You are a concise summarization assistant. "
    "Return only valid JSON with no markdown fences or preamble."
)


# =============================================================================
# Exception Hierarchy
# =============================================================================


class LocalModelError(Exception):
    """Base exception for all local model client errors.

    Attributes:
        message: Human-readable error description (safe to log).
        retriable: Whether the operation can be retried.
        details: Additional error context (may contain prompt data, don't log).
        original_error: The underlying exception that caused this error.
    """

    def __init__(
        self,
        message: str,
        retriable: bool = False,
        details: dict[str, Any] | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.retriable = retriable
        self.details = details or {}
        self.original_error = original_error

    def __str__(self) -> str:
        return self.message


class LocalModelUnavailableError(LocalModelError):
    """The local model cannot be used at all (not configured or not reachable).

    Attributes:
        reason: Why the model is unavailable.
    """

    def __init__(
        self,
        reason: Literal["disabled", "no_endpoint", "offline"],
        message: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        self.reason = reason
        default_messages = {
            "disabled": "Local model classification is disabled in configuration",
            "no_endpoint": "No local model endpoint configured",
            "offline": "Cannot reach the local model server",
        }
        super().__init__(
            message or default_messages.get(reason, f"Local model unavailable: {reason}"),
            retriable=False,
            original_error=original_error,
        )


class LocalModelTimeoutError(LocalModelError):
    """Request timed out. Retriable."""

    def __init__(
        self,
        timeout_seconds: float,
        message: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(
            message or f"Request timed out after {timeout_seconds} seconds",
            retriable=True,
            original_error=original_error,
        )
        self.timeout_seconds = timeout_seconds


class LocalModelServerError(LocalModelError):
    """Server-side error (5xx). Retriable."""

    def __init__(
        self,
        message: str = "Local model server error.",
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, retriable=True, original_error=original_error)
        self.status_code = status_code


class LocalModelBadRequestError(LocalModelError):
    """Client-side error (4xx). Not retriable."""

    def __init__(
        self,
        message: str = "Invalid request to local model server.",
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, retriable=False, original_error=original_error)
        self.status_code = status_code


class LocalModelResponseError(LocalModelError):
    """Response body did not have the expected shape."""

    def __init__(self, message: str = "Malformed response from local model.") -> None:
        super().__init__(message, retriable=False)


# =============================================================================
# Response Models
# =============================================================================


class ModelResponse(BaseModel):
    """Standardized response from a chat completion.

    Attributes:
        text: The generated content.
        model: Model that generated the response.
        prompt_tokens: Tokens in the input, if reported.
        completion_tokens: Tokens in the output, if reported.
        finish_reason: Why generation stopped.
        latency_ms: Round-trip time in milliseconds.
        raw_response: Decoded response body (excluded from serialization).
    """

    text: str = Field(..., description="The generated content")
    model: str = Field(default="", description="Model that generated this response")
    prompt_tokens: int | None = Field(None, description="Tokens in input prompt")
    completion_tokens: int | None = Field(None, description="Tokens in output")
    finish_reason: str | None = Field(None, description="Why generation stopped")
    latency_ms: float | None = Field(None, description="Round-trip time in ms")
    raw_response: Any = Field(None, exclude=True, description="Decoded response body")

    def is_truncated(self) -> bool:
        return self.finish_reason == "length"


_FENCE_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_JSON_BODY_PATTERN = re.compile(r"(\{[\s\S]*\}|\[[\s\S]*\])")


def parse_json_response(text: str) -> Any | None:
    """Parse JSON from model output, tolerating fences and preamble.

    Tries a direct parse, then the first fenced code block, then the widest
    ``{...}`` or ``[...]`` span. Returns None when nothing parses.
    """
    if not text:
        return None
    stripped = text.strip()
    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        pass

    fence = _FENCE_PATTERN.search(stripped)
    if fence:
        try:
            return json.loads(fence.group(1))
        except json.JSONDecodeError:
            pass

    body = _JSON_BODY_PATTERN.search(stripped)
    if body:
        try:
            return json.loads(body.group(1))
        except json.JSONDecodeError:
            return None
    return None


# =============================================================================
# Client
# =============================================================================


class LocalModelClient:
    """Minimal client for ``POST /v1/chat/completions`` on a local server.

    Attributes:
        endpoint: Server base URL without trailing slash.
        model: Model name sent with every request.
        timeout_seconds: Per-request timeout.
        max_retries: Retries for retriable errors.
        max_tokens: Completion token limit.
    """

    MAX_RETRY_DELAY = 10.0
    RETRY_BASE_DELAY = 0.5

    def __init__(
        self,
        endpoint: str,
        model: str = "",
        timeout_seconds: float = 60.0,
        max_retries: int = 2,
        max_tokens: int = 2048,
        temperature: float = 0.3,
    ) -> None:
        if not endpoint or not endpoint.strip():
            raise LocalModelUnavailableError("no_endpoint")
        self.endpoint = endpoint.strip().rstrip("/")
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.max_tokens = max_tokens
        self.temperature = temperature

    @property
    def url(self) -> str:
        return f"{self.endpoint}/v1/chat/completions"

    def complete(self, system_prompt: str | None, user_prompt: str) -> ModelResponse:
        """Send one chat completion and return the assistant message.

        Requests JSON output via ``response_format``. Servers that reject the
        field with HTTP 400 get one more attempt without it.

        Raises:
            LocalModelError: On any failure after retries.
        """
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt or DEFAULT_SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "response_format": {"type": "json_object"},
        }

        try:
            return self._execute_with_retry(self._post, payload)
        except LocalModelBadRequestError as e:
            if e.status_code != 400:
                raise
            logger.debug("Server rejected response_format, retrying without it")
            fallback = {k: v for k, v in payload.items() if k != "response_format"}
            return self._execute_with_retry(self._post, fallback)

    def _post(self, payload: dict[str, Any]) -> ModelResponse:
        start = time.perf_counter()
        try:
            response = requests.post(self.url, json=payload, timeout=self.timeout_seconds)
        except requests.Timeout as e:
            raise LocalModelTimeoutError(self.timeout_seconds, original_error=e) from e
        except requests.ConnectionError as e:
            raise LocalModelUnavailableError("offline", original_error=e) from e
        except requests.RequestException as e:
            raise LocalModelError(f"Request failed: {type(e).__name__}", original_error=e) from e
        latency_ms = (time.perf_counter() - start) * 1000

        if response.status_code >= 500:
            raise LocalModelServerError(
                f"Local model server returned {response.status_code}",
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            raise LocalModelBadRequestError(
                f"Local model server returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
            choice = body["choices"][0]
            content = choice["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise LocalModelResponseError(f"Unexpected response shape: {type(e).__name__}") from e
        if not isinstance(content, str):
            raise LocalModelResponseError("Response content is not text")

        usage = body.get("usage") or {}
        return ModelResponse(
            text=content,
            model=str(body.get("model") or self.model),
            prompt_tokens=usage.get("prompt_tokens"),
            completion_tokens=usage.get("completion_tokens"),
            finish_reason=choice.get("finish_reason"),
            latency_ms=latency_ms,
            raw_response=body,
        )

    def _execute_with_retry(self, func: Callable[..., ModelResponse], *args: Any) -> ModelResponse:
        """Call ``func`` with exponential backoff and jitter on retriable errors."""
        for attempt in range(self.max_retries + 1):
            try:
                return func(*args)
            except LocalModelError as e:
                if not e.retriable or attempt >= self.max_retries:
                    raise
                delay = min(self.RETRY_BASE_DELAY * (2**attempt), self.MAX_RETRY_DELAY)
                delay += random.uniform(0, self.RETRY_BASE_DELAY)
                logger.warning(
                    f"Retry {attempt + 1}/{self.max_retries} after {delay:.1f}s: {type(e).__name__}"
                )
                time.sleep(delay)
        raise LocalModelError("Retry loop exited without a result")


def get_client(config: ClassificationConfig) -> LocalModelClient:
    """Build a client from classification settings.

    Raises:
        LocalModelUnavailableError: If refinement is disabled or no endpoint
            is configured.
    """
    if not config.enabled:
        raise LocalModelUnavailableError("disabled")
    return LocalModelClient(
        config.endpoint,
        model=config.model,
        timeout_seconds=config.timeout_seconds,
        max_retries=config.max_retries,
        max_tokens=config.max_tokens,
    )
