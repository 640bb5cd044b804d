"""
Direct Anthropic API provider.

Talks to the Anthropic Messages API with an API key.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..core.tiers import ModelTier
from ..models.request import ChatOptions, Message, split_system_messages, to_role_dicts
from ..models.response import ChatResponse, ModelInfo
from .base import DEFAULT_MAX_TOKENS, RestProvider

logger = logging.getLogger(__name__)

RATE_LIMIT_HEADER_PREFIX = "anthropic-ratelimit-"


class AnthropicProvider(RestProvider):
    """
    Anthropic Messages API provider.

    The system prompt goes in the dedicated ``system`` field.
    """

    name = "anthropic"
    display_name = "Anthropic (Claude)"
    SETTINGS_KEY = "anthropic"
    ANTHROPIC_VERSION = "2023-06-01"

    MODELS = [
        ModelInfo(
            id="claude-3-5-haiku-20241022",
            name="Claude 3.5 Haiku",
            context_window=200000,
            input_cost_per_1k=0.0008,
            output_cost_per_1k=0.004,
        ),
        ModelInfo(
            id="claude-sonnet-4-20250514",
            name="Claude Sonnet 4",
            context_window=200000,
            input_cost_per_1k=0.003,
            output_cost_per_1k=0.015,
        ),
        ModelInfo(
            id="claude-3-5-sonnet-20241022",
            name="Claude 3.5 Sonnet",
            context_window=200000,
            input_cost_per_1k=0.003,
            output_cost_per_1k=0.015,
        ),
        ModelInfo(
            id="claude-opus-4-20250514",
            name="Claude Opus 4",
            context_window=200000,
            input_cost_per_1k=0.015,
            output_cost_per_1k=0.075,
        ),
    ]

    TIER_TO_MODEL = {
        ModelTier.FAST: "claude-3-5-haiku-20241022",
        ModelTier.STANDARD: "claude-sonnet-4-20250514",
        ModelTier.ADVANCED: "claude-opus-4-20250514",
    }

    # Sonnet pricing
    DEFAULT_RATES = (0.003, 0.015)

    def _auth_headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self._credential.value,
            "anthropic-version": self.ANTHROPIC_VERSION,
        }

    def _build_payload(
        self,
        messages: List[Message],
        options: ChatOptions,
        model: str,
    ) -> Dict[str, Any]:
        """Convert to Anthropic Messages API format."""
        history_system, turns = split_system_messages(messages)
        system = options.system_prompt or history_system

        payload: Dict[str, Any] = {
            "model": model,
            "messages": to_role_dicts(turns),
            "max_tokens": options.max_tokens or DEFAULT_MAX_TOKENS,
        }
        if system:
            payload["system"] = system
        if options.temperature is not None:
            payload["temperature"] = options.temperature
        return payload

    async def _send(
        self,
        messages: List[Message],
        options: ChatOptions,
        model: str,
    ) -> ChatResponse:
        response = await self._request(
            "POST", "/messages", json=self._build_payload(messages, options, model)
        )
        data = self._json(response)
        if not isinstance(data.get("content"), list):
            raise self._invalid_response("missing content blocks")
        rate_limits = self._rate_limits(response)
        if rate_limits and "requests-remaining" in rate_limits:
            logger.debug(f"Anthropic requests remaining: {rate_limits['requests-remaining']}")
        return ChatResponse.from_anthropic(data, rate_limits=rate_limits)

    @staticmethod
    def _rate_limits(response: httpx.Response) -> Optional[Dict[str, Any]]:
        """Collect ``anthropic-ratelimit-*`` headers."""
        limits = {
            key[len(RATE_LIMIT_HEADER_PREFIX):]: value
            for key, value in response.headers.items()
            if key.lower().startswith(RATE_LIMIT_HEADER_PREFIX)
        }
        return limits or None

    async def _probe(self) -> None:
        await self._request(
            "POST",
            "/messages",
            json={
                "model": self.TIER_TO_MODEL[ModelTier.FAST],
                "max_tokens": 1,
                "messages": [{"role": "user", "content": "hi"}],
            },
        )
