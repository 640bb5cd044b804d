"""
Chat provider implementations.
"""

from .anthropic_provider import AnthropicProvider
from .claude_max import ClaudeMaxProvider
from .github_models_provider import GitHubModelsProvider
from .google_provider import GoogleAIProvider
from .openai_provider import OpenAIProvider, OpenRouterProvider

__all__ = [
    "AnthropicProvider",
    "ClaudeMaxProvider",
    "GitHubModelsProvider",
    "GoogleAIProvider",
    "OpenAIProvider",
    "OpenRouterProvider",
]
