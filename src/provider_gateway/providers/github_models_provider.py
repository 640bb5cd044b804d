"""
GitHub Models provider.

GitHub Models serves an OpenAI-compatible chat completions endpoint and
accepts either a personal access token or a GitHub OAuth token.
"""

from ..core.tiers import ModelTier
from ..models.response import ModelInfo, TokenRefreshResult
from .base import RestProvider
from .openai_provider import OpenAIChatMixin

GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"


class GitHubModelsProvider(OpenAIChatMixin, RestProvider):
    """GitHub Models inference provider."""

    name = "github-models"
    display_name = "GitHub Models"
    SETTINGS_KEY = "github_models"

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
            id="o1-preview",
            name="o1-preview",
            context_window=128000,
            input_cost_per_1k=0.015,
            output_cost_per_1k=0.06,
        ),
    ]

    TIER_TO_MODEL = {
        ModelTier.FAST: "gpt-4o-mini",
        ModelTier.STANDARD: "gpt-4o",
        ModelTier.ADVANCED: "o1-preview",
    }

    # Free-tier usage is rate limited rather than metered; paid usage
    # follows the underlying model's list price.
    DEFAULT_RATES = (0.0025, 0.01)

    async def _probe(self) -> None:
        await self._request(
            "POST",
            "/chat/completions",
            json={
                "model": self.TIER_TO_MODEL[ModelTier.FAST],
                "messages": [{"role": "user", "content": "hi"}],
                "max_tokens": 1,
            },
        )

    def supports_oauth(self) -> bool:
        return True

    async def refresh_access_token(self, refresh_token: str) -> TokenRefreshResult:
        """Refresh a GitHub App user access token."""
        return await self._refresh_with_token_endpoint(
            GITHUB_TOKEN_URL,
            self._config.github_oauth,
            refresh_token,
            headers={"Accept": "application/json"},
        )
