"""
Google Generative Language (Gemini) provider.

Authenticates with either an API key or an OAuth access token and
supports refreshing OAuth tokens.
"""

import logging
from typing import Any, Dict, List

from ..core.credentials import API_KEY
from ..core.tiers import ModelTier
from ..models.request import ChatOptions, Message, split_system_messages
from ..models.response import ChatResponse, ModelInfo, TokenRefreshResult
from .base import DEFAULT_MAX_TOKENS, RestProvider

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"


class GoogleAIProvider(RestProvider):
    """
    Google Generative Language API provider.

    The system prompt goes in ``systemInstruction``; assistant turns use
    the ``model`` role.
    """

    name = "google-ai"
    display_name = "Google AI (Gemini)"
    SETTINGS_KEY = "google_ai"

    MODELS = [
        ModelInfo(
            id="gemini-2.0-flash",
            name="Gemini 2.0 Flash",
            context_window=1048576,
            input_cost_per_1k=0.0001,
            output_cost_per_1k=0.0004,
        ),
        ModelInfo(
            id="gemini-1.5-pro",
            name="Gemini 1.5 Pro",
            context_window=2097152,
            input_cost_per_1k=0.00125,
            output_cost_per_1k=0.005,
        ),
        ModelInfo(
            id="gemini-2.5-pro",
            name="Gemini 2.5 Pro",
            context_window=1048576,
            input_cost_per_1k=0.00125,
            output_cost_per_1k=0.01,
        ),
    ]

    TIER_TO_MODEL = {
        ModelTier.FAST: "gemini-2.0-flash",
        ModelTier.STANDARD: "gemini-1.5-pro",
        ModelTier.ADVANCED: "gemini-2.5-pro",
    }

    # Gemini 1.5 Pro pricing
    DEFAULT_RATES = (0.00125, 0.005)

    def _auth_headers(self) -> Dict[str, str]:
        if self._credential.kind == API_KEY:
            return {"x-goog-api-key": self._credential.value}
        return {"Authorization": f"Bearer {self._credential.value}"}

    def _build_payload(self, messages: List[Message], options: ChatOptions) -> Dict[str, Any]:
        """Build a ``generateContent`` request body."""
        history_system, turns = split_system_messages(messages)
        system = options.system_prompt or history_system

        contents = [
            {
                "role": "user" if m.role == "user" else "model",
                "parts": [{"text": m.content}],
            }
            for m in turns
        ]

        generation_config: Dict[str, Any] = {
            "maxOutputTokens": options.max_tokens or DEFAULT_MAX_TOKENS,
        }
        if options.temperature is not None:
            generation_config["temperature"] = options.temperature

        payload: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": generation_config,
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        return payload

    async def _send(
        self,
        messages: List[Message],
        options: ChatOptions,
        model: str,
    ) -> ChatResponse:
        response = await self._request(
            "POST",
            f"/models/{model}:generateContent",
            json=self._build_payload(messages, options),
        )
        data = self._json(response)
        if not data.get("candidates"):
            feedback = data.get("promptFeedback") or {}
            block_reason = feedback.get("blockReason", "unknown")
            logger.warning(f"Gemini returned no candidates for {model} (block reason: {block_reason})")
            raise self._invalid_response(f"no candidates returned (block reason: {block_reason})")
        return ChatResponse.from_gemini(data, model)

    async def _probe(self) -> None:
        await self._request("GET", "/models")

    def supports_oauth(self) -> bool:
        return True

    async def refresh_access_token(self, refresh_token: str) -> TokenRefreshResult:
        """Refresh a Google OAuth access token."""
        return await self._refresh_with_token_endpoint(
            GOOGLE_TOKEN_URL, self._config.google_oauth, refresh_token
        )
