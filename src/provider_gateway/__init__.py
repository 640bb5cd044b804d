"""
Provider Gateway

A uniform chat interface over several LLM backends:
- Anthropic, OpenAI, OpenRouter, Google AI and GitHub Models REST APIs
- The claude.ai web session ("Claude Max"), with conversation reuse
- Category-based model selection through fast / standard / advanced tiers
"""

from .core.errors import AIProviderError, ProviderErrorCode, ProviderNotFoundError
from .core.interface import AbstractProvider
from .core.registry import ProviderName, ProviderRegistry, create_provider, get_registry
from .core.tiers import Category, ModelTier, category_to_model_tier
from .models.request import ChatOptions, Message
from .models.response import ChatResponse, ModelInfo, Usage

__all__ = [
    "AbstractProvider",
    "AIProviderError",
    "ProviderErrorCode",
    "ProviderNotFoundError",
    "ProviderName",
    "ProviderRegistry",
    "create_provider",
    "get_registry",
    "Category",
    "ModelTier",
    "category_to_model_tier",
    "ChatOptions",
    "Message",
    "ChatResponse",
    "ModelInfo",
    "Usage",
]
