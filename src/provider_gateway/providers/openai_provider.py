"""
OpenAI-compatible chat completions providers.

``OpenAIProvider`` talks to api.openai.com; ``OpenRouterProvider`` reuses
the same wire format against OpenRouter.
"""

import logging
from typing import Any, Dict, List

from ..core.tiers import ModelTier
from ..models.request import ChatOptions, Message, to_role_dicts
from ..models.response import ChatResponse, ModelInfo
from .base import DEFAULT_MAX_TOKENS, RestProvider

logger = logging.getLogger(__name__)


def build_openai_payload(
    messages: List[Message],
    options: ChatOptions,
    model: str,
) -> Dict[str, Any]:
    """
    Build an OpenAI chat completions request body.

    The system prompt becomes a synthetic leading ``system`` turn.
    """
    turns = to_role_dicts(messages)
    if options.system_prompt:
        turns.insert(0, {"role": "system", "content": options.system_prompt})

    payload: Dict[str, Any] = {
        "model": model,
        "messages": turns,
        "max_tokens": options.max_tokens or DEFAULT_MAX_TOKENS,
    }
    if options.temperature is not None:
        payload["temperature"] = options.temperature
    return payload


class OpenAIChatMixin:
    """``_send`` for backends that speak the OpenAI chat completions format."""

    async def _send(
        self,
        messages: List[Message],
        options: ChatOptions,
        model: str,
    ) -> ChatResponse:
        response = await self._request(
            "POST",
            "/chat/completions",
            json=build_openai_payload(messages, options, model),
        )
        data = self._json(response)
        if not data.get("choices"):
            raise self._invalid_response("no choices returned")
        if data["choices"][0].get("finish_reason") == "length":
            logger.warning(f"{self.display_name} reply for {model} was truncated at max_tokens")
        return ChatResponse.from_openai(data)


class OpenAIProvider(OpenAIChatMixin, RestProvider):
    """Direct OpenAI API provider."""

    name = "openai"
    display_name = "OpenAI (GPT)"
    SETTINGS_KEY = "openai"

    MODELS = [
        ModelInfo(
            id="gpt-4o-mini",
            name="GPT-4o mini",
            context_window=128000,
            input_cost_per_1k=0.00015,
            output_cost_per_1k=0.0006,
        ),
        ModelInfo(
            id="gpt-4o",
            name="GPT-4o",
            context_window=128000,
            input_cost_per_1k=0.0025,
            output_cost_per_1k=0.01,
        ),
        ModelInfo(
            id="o1",
            name="o1",
            context_window=200000,
            input_cost_per_1k=0.015,
            output_cost_per_1k=0.06,
        ),
    ]

    TIER_TO_MODEL = {
        ModelTier.FAST: "gpt-4o-mini",
        ModelTier.STANDARD: "gpt-4o",
        ModelTier.ADVANCED: "o1",
    }

    # GPT-4o pricing
    DEFAULT_RATES = (0.0025, 0.01)

    async def _probe(self) -> None:
        await self._request("GET", "/models")


class OpenRouterProvider(OpenAIProvider):
    """OpenRouter, an OpenAI-compatible aggregator."""

    name = "openrouter"
    display_name = "OpenRouter"
    SETTINGS_KEY = "openrouter"

    MODELS = [
        ModelInfo(
            id="openai/gpt-4o-mini",
            name="GPT-4o mini (OpenRouter)",
            context_window=128000,
            input_cost_per_1k=0.00015,
            output_cost_per_1k=0.0006,
        ),
        ModelInfo(
            id="anthropic/claude-sonnet-4",
            name="Claude Sonnet 4 (OpenRouter)",
            context_window=200000,
            input_cost_per_1k=0.003,
            output_cost_per_1k=0.015,
        ),
        ModelInfo(
            id="anthropic/claude-opus-4",
            name="Claude Opus 4 (OpenRouter)",
            context_window=200000,
            input_cost_per_1k=0.015,
            output_cost_per_1k=0.075,
        ),
    ]

    TIER_TO_MODEL = {
        ModelTier.FAST: "openai/gpt-4o-mini",
        ModelTier.STANDARD: "anthropic/claude-sonnet-4",
        ModelTier.ADVANCED: "anthropic/claude-opus-4",
    }

    DEFAULT_RATES = (0.003, 0.015)
