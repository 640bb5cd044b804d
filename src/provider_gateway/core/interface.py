"""
Abstract provider interface definition.

Defines the contract that every chat provider must implement.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Union

from opentelemetry import trace

from .errors import AIProviderError, ProviderErrorCode
from .tiers import Category, category_to_model_tier, ModelTier
from ..models.request import ChatOptions, Message
from ..models.response import ChatResponse, ModelInfo, TokenRefreshResult

tracer = trace.get_tracer("provider_gateway")


class AbstractProvider(ABC):
    """
    Abstract base class for chat providers.

    Callers obtain instances from the registry and only rely on this
    interface; provider-specific errors never escape ``chat``.
    """

    #: Registry name, e.g. "anthropic" or "claude-max"
    name: str = ""
    #: Human readable name
    display_name: str = ""
    #: Provider-owned tier table; every tier must map to a model id
    TIER_TO_MODEL: dict = {}

    @abstractmethod
    async def chat(
        self,
        messages: List[Message],
        options: Optional[ChatOptions] = None,
    ) -> ChatResponse:
        """
        Send a conversation and return the normalized reply.

        Args:
            messages: Ordered conversation turns
            options: Optional model / sampling overrides

        Returns:
            Normalized chat response

        Raises:
            AIProviderError: On any failure
        """
        pass

    @abstractmethod
    def get_available_models(self) -> List[ModelInfo]:
        """
        Static catalog of models this provider exposes.

        Returns:
            List of ModelInfo entries
        """
        pass

    def get_default_model(self, category: Union[Category, str, None]) -> str:
        """
        Model id to use for a task category.

        Args:
            category: Task category

        Returns:
            Model id from this provider's tier table
        """
        tier = category_to_model_tier(category)
        return self.TIER_TO_MODEL[tier]

    @abstractmethod
    async def validate_credentials(self) -> bool:
        """
        Check credentials with the cheapest authenticated call.

        Never raises.

        Returns:
            True if the backend accepted the credentials
        """
        pass

    @abstractmethod
    def calculate_cost(self, model: str, input_tokens: int, output_tokens: int) -> float:
        """
        Cost in USD of a call.

        Args:
            model: Model id
            input_tokens: Prompt tokens
            output_tokens: Completion tokens

        Returns:
            Cost in USD
        """
        pass

    def supports_oauth(self) -> bool:
        """Whether ``refresh_access_token`` is available."""
        return False

    async def refresh_access_token(self, refresh_token: str) -> TokenRefreshResult:
        """
        Exchange a refresh token for a new access token.

        Only OAuth-capable providers override this.
        """
        raise AIProviderError(
            f"{self.name} does not support OAuth token refresh",
            self.name,
            ProviderErrorCode.INVALID_CREDENTIALS,
        )

    async def aclose(self) -> None:
        """Release any network resources held by the provider."""
        return None

    def _default_model(self) -> str:
        return self.TIER_TO_MODEL[ModelTier.STANDARD]

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


def record_response(span: trace.Span, response: ChatResponse) -> None:
    """Attach response attributes to a ``provider.chat`` span."""
    span.set_attribute("model", response.model)
    span.set_attribute("input_tokens", response.usage.input_tokens)
    span.set_attribute("output_tokens", response.usage.output_tokens)
    span.set_attribute("finish_reason", response.finish_reason)
