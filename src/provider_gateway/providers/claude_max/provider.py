"""
Claude Max provider.

Serves chat through a claude.ai subscription session instead of the
metered API. Conversations are reused per ``(account, model)`` for a TTL
so each turn does not open a new remote conversation.
"""

import logging
from typing import List, Optional, Union

import httpx

from ...core.cache import ConversationCache, conversation_cache_key, get_conversation_cache
from ...core.config import GatewayConfig, get_config
from ...core.credentials import (
    SESSION_KEY,
    ClaudeAccount,
    CredentialSource,
    Decryptor,
    credential_source_for_account,
    default_decryptor,
    resolve_credential,
)
from ...core.errors import AIProviderError, ClaudeMaxError, ClaudeMaxErrorCode, ProviderErrorCode
from ...core.interface import AbstractProvider, record_response, tracer
from ...core.tiers import ModelTier
from ...models.request import ChatOptions, Message
from ...models.response import ChatResponse, ModelInfo, ResponseMetadata, Usage
from .client import ClaudeMaxClient

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant."


def build_prompt(messages: List[Message], system_prompt: Optional[str]) -> str:
    """
    Flatten a conversation into the single prompt string claude.ai accepts.

    System turns in the history are dropped; only ``system_prompt`` is
    emitted as a ``<system>`` block.
    """
    parts = []
    if system_prompt:
        parts.append(f"<system>{system_prompt}</system>")

    for msg in messages:
        if msg.role == "system":
            continue
        tag = "human" if msg.role == "user" else "assistant"
        parts.append(f"<{tag}>{msg.content}</{tag}>")

    return "\n\n".join(parts)


def is_claude_max_account(account: ClaudeAccount) -> bool:
    """Whether the account carries a claude.ai session key."""
    metadata = account.metadata or {}
    return bool(metadata.get("encryptedSessionKey") or metadata.get("sessionKey"))


def get_account_provider_type(account: ClaudeAccount) -> str:
    """Provider name to use for an account: ``claude-max`` or ``anthropic``."""
    return "claude-max" if is_claude_max_account(account) else "anthropic"


class ClaudeMaxProvider(AbstractProvider):
    """
    Provider backed by the claude.ai web session.

    Usage:
        provider = ClaudeMaxProvider(account, decryptor=decryptor)
        response = await provider.chat([Message(role="user", content="Hi")])
    """

    name = "claude-max"
    display_name = "Claude Max (claude.ai)"

    MODELS = [
        ModelInfo(
            id="claude-sonnet-4-20250514",
            name="Claude Sonnet 4",
            context_window=200000,
            input_cost_per_1k=0.0,
            output_cost_per_1k=0.0,
        ),
        ModelInfo(
            id="claude-3-5-sonnet-20241022",
            name="Claude 3.5 Sonnet",
            context_window=200000,
            input_cost_per_1k=0.0,
            output_cost_per_1k=0.0,
        ),
    ]

    # Opus is not reliably available on claude.ai
    TIER_TO_MODEL = {
        ModelTier.FAST: "claude-sonnet-4-20250514",
        ModelTier.STANDARD: "claude-sonnet-4-20250514",
        ModelTier.ADVANCED: "claude-sonnet-4-20250514",
    }

    def __init__(
        self,
        credentials: Union[ClaudeAccount, CredentialSource],
        config: Optional[GatewayConfig] = None,
        decryptor: Optional[Decryptor] = None,
        cache: Optional[ConversationCache] = None,
        client: Optional[ClaudeMaxClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the provider.

        Args:
            credentials: An account record or an explicit credential source
            config: Gateway configuration (process config if omitted)
            decryptor: Decryption collaborator for encrypted session keys
            cache: Conversation reuse cache (process-wide cache if omitted)
            client: Pre-built client, skipping credential resolution
            transport: Custom httpx transport for the client
        """
        self._config = config or get_config()
        settings = self._config.claude_max
        self._cache = cache or get_conversation_cache(settings.conversation_ttl_seconds)
        self.account = credentials if isinstance(credentials, ClaudeAccount) else None

        if client is not None:
            self._client = client
            return

        if self.account is not None:
            source = credential_source_for_account(
                self.account,
                kind=SESSION_KEY,
                environment_variable=settings.session_key_env,
                provider=self.name,
            )
            organization_id = (self.account.metadata or {}).get("organizationId")
        else:
            source = credentials
            organization_id = None

        if decryptor is None:
            decryptor = default_decryptor(self._config.encryption_key)
        credential = resolve_credential(source, decryptor=decryptor, provider=self.name)

        self._client = ClaudeMaxClient(
            session_key=credential.value,
            organization_id=organization_id,
            base_url=settings.base_url,
            timezone=settings.timezone,
            timeout=settings.timeout,
            transport=transport,
        )

        if self.account is not None:
            logger.info(
                f"ClaudeMaxProvider initialized with account {self.account.name} "
                f"({self.account.id}), organization id {'set' if organization_id else 'unset'}"
            )
        else:
            logger.info("ClaudeMaxProvider initialized with direct session key")

    @property
    def account_id(self) -> Optional[str]:
        return self.account.id if self.account else None

    @property
    def client(self) -> ClaudeMaxClient:
        return self._client

    async def aclose(self) -> None:
        await self._client.aclose()

    async def chat(
        self,
        messages: List[Message],
        options: Optional[ChatOptions] = None,
    ) -> ChatResponse:
        """
        Send a conversation through claude.ai.

        The lookup-or-create and the send run while holding the cache key,
        so concurrent calls for the same account and model are serialized.
        A failed turn evicts the cached conversation before the error is
        raised.
        """
        options = options or ChatOptions()
        model = options.model or self._default_model()
        system_prompt = options.system_prompt or DEFAULT_SYSTEM_PROMPT
        key = conversation_cache_key(self.account_id, model)

        with tracer.start_as_current_span("provider.chat") as span:
            span.set_attribute("provider", self.name)
            span.set_attribute("requested_model", model)

            async with self._cache.reserve(key) as slot:
                try:
                    conversation_id, created = await slot.get_or_create(
                        lambda: self._create_conversation(model)
                    )
                    span.set_attribute("conversation_reused", not created)
                    prompt = build_prompt(messages, system_prompt)
                    result = await self._client.send_message(conversation_id, prompt, model=model)
                except Exception as e:
                    slot.invalidate()
                    error = self._translate_error(e)
                    logger.error(f"Claude Max chat failed: {error.message}")
                    raise error

            usage = result.usage
            response = ChatResponse(
                content=result.content,
                model=model,
                usage=Usage(
                    input_tokens=usage.input_tokens if usage else 0,
                    output_tokens=usage.output_tokens if usage else 0,
                    cache_creation_tokens=0,
                    cache_read_tokens=0,
                ),
                finish_reason="end_turn",
                metadata=ResponseMetadata(
                    account_id=self.account_id,
                    account_name=self.account.name if self.account else None,
                ),
            )
            record_response(span, response)
            return response

    async def _create_conversation(self, model: str) -> str:
        conversation = await self._client.create_conversation(model=model)
        return conversation.uuid

    def _translate_error(self, error: Exception) -> AIProviderError:
        """Convert a client error into an AIProviderError with account context."""
        if isinstance(error, AIProviderError):
            return error

        account_context = (
            f" (Account: {self.account.name} [{self.account.id}])" if self.account else ""
        )

        if isinstance(error, ClaudeMaxError):
            if error.code == ClaudeMaxErrorCode.INVALID_SESSION:
                return AIProviderError(
                    f"Invalid Claude Max session{account_context}",
                    self.name,
                    ProviderErrorCode.INVALID_CREDENTIALS,
                    error.status_code,
                    error,
                )
            if error.code == ClaudeMaxErrorCode.FORBIDDEN:
                return AIProviderError(
                    f"Access denied to Claude Max{account_context}",
                    self.name,
                    ProviderErrorCode.INVALID_CREDENTIALS,
                    error.status_code,
                    error,
                )
            if error.code == ClaudeMaxErrorCode.RATE_LIMITED:
                return AIProviderError(
                    f"Claude Max rate limit exceeded{account_context}",
                    self.name,
                    ProviderErrorCode.RATE_LIMITED,
                    error.status_code,
                    error,
                )
            if error.code in (ClaudeMaxErrorCode.NETWORK_ERROR, ClaudeMaxErrorCode.TIMEOUT):
                return AIProviderError(
                    f"Network error with Claude Max: {error.message}{account_context}",
                    self.name,
                    ProviderErrorCode.NETWORK_ERROR,
                    original_error=error,
                )
            if error.code == ClaudeMaxErrorCode.INVALID_RESPONSE:
                return AIProviderError(
                    f"Invalid Claude Max response: {error.message}{account_context}",
                    self.name,
                    ProviderErrorCode.INVALID_RESPONSE,
                    error.status_code,
                    error,
                )
            return AIProviderError(
                f"{error.message}{account_context}",
                self.name,
                ProviderErrorCode.PROVIDER_ERROR,
                error.status_code,
                error,
            )

        return AIProviderError(
            f"{error}{account_context}",
            self.name,
            ProviderErrorCode.NETWORK_ERROR,
            original_error=error,
        )

    def get_available_models(self) -> List[ModelInfo]:
        return list(self.MODELS)

    async def validate_credentials(self) -> bool:
        """The session is valid if it can see at least one organization."""
        try:
            orgs = await self._client.get_organizations()
            return len(orgs) > 0
        except Exception as e:
            logger.warning(f"Claude Max credential validation failed: {e}")
            return False

    def calculate_cost(self, model: str, input_tokens: int, output_tokens: int) -> float:
        # Covered by the subscription
        return 0.0

    def clear_conversation_cache(self) -> None:
        """Drop every cached conversation."""
        self._cache.clear()

    def cleanup_expired_conversations(self) -> int:
        """Evict expired conversations; returns how many were removed."""
        removed = self._cache.cleanup_expired()
        if removed:
            logger.debug(f"Removed {removed} expired Claude Max conversations")
        return removed
