"""
Core provider gateway components.
"""

from .cache import ConversationCache, conversation_cache_key, get_conversation_cache
from .config import GatewayConfig, get_config, load_config
from .credentials import (
    ApiKeyCredential,
    ClaudeAccount,
    EncryptedCredential,
    EnvironmentCredential,
    FernetDecryptor,
    OAuthCredential,
    PlaintextCredential,
    ProviderCredentials,
    SessionKeyCredential,
    resolve_credential,
)
from .errors import (
    AIProviderError,
    ClaudeMaxError,
    ClaudeMaxErrorCode,
    ProviderErrorCode,
    ProviderNotFoundError,
    is_retryable,
)
from .interface import AbstractProvider
from .registry import (
    ProviderName,
    ProviderRegistry,
    create_provider,
    get_registry,
    register_default_providers,
    register_provider,
)
from .tiers import Category, ModelTier, category_to_model_tier

__all__ = [
    "AbstractProvider",
    "AIProviderError",
    "ApiKeyCredential",
    "Category",
    "ClaudeAccount",
    "ClaudeMaxError",
    "ClaudeMaxErrorCode",
    "ConversationCache",
    "EncryptedCredential",
    "EnvironmentCredential",
    "FernetDecryptor",
    "GatewayConfig",
    "ModelTier",
    "OAuthCredential",
    "PlaintextCredential",
    "ProviderCredentials",
    "ProviderErrorCode",
    "ProviderName",
    "ProviderNotFoundError",
    "ProviderRegistry",
    "SessionKeyCredential",
    "category_to_model_tier",
    "conversation_cache_key",
    "create_provider",
    "get_config",
    "get_conversation_cache",
    "get_registry",
    "is_retryable",
    "load_config",
    "register_default_providers",
    "register_provider",
    "resolve_credential",
]
