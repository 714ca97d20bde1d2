"""AI module for the daily digest core.

The client.py module is the only place that talks to a model endpoint.

Exports:
    - LocalModelClient: OpenAI-compatible chat-completions client
    - get_client: Factory building a client from ClassificationConfig
    - classify_events / classify_rule_only: Event classification
    - render_prompt: Jinja2 prompt templates
    - Exception hierarchy for typed error handling
"""

from dailydigest.ai.classifier import classify_events, classify_rule_only
from dailydigest.ai.client import (
    LocalModelBadRequestError,
    LocalModelClient,
    LocalModelError,
    LocalModelResponseError,
    LocalModelServerError,
    LocalModelTimeoutError,
    LocalModelUnavailableError,
    ModelResponse,
    get_client,
    parse_json_response,
)
from dailydigest.ai.prompts import PromptCapability, PromptName, render_prompt

__all__ = [
    "LocalModelClient",
    "get_client",
    "ModelResponse",
    "parse_json_response",
    "classify_events",
    "classify_rule_only",
    "PromptCapability",
    "PromptName",
    "render_prompt",
    "LocalModelError",
    "LocalModelUnavailableError",
    "LocalModelTimeoutError",
    "LocalModelServerError",
    "LocalModelBadRequestError",
    "LocalModelResponseError",
]
