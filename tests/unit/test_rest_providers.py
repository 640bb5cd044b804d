"""
Unit tests for the REST providers.

Each provider is driven through ``httpx.MockTransport`` to check request
shapes, response normalization, error mapping and cost accounting.
"""
import json
import logging
from urllib.parse import parse_qs

import httpx
import pytest

from provider_gateway.core.config import GatewayConfig, OAuthClientSettings
from provider_gateway.core.credentials import ClaudeAccount, FernetDecryptor, ProviderCredentials
from provider_gateway.core.errors import AIProviderError, ProviderErrorCode
from provider_gateway.models.request import ChatOptions, Message
from provider_gateway.providers import (
    AnthropicProvider,
    GitHubModelsProvider,
    GoogleAIProvider,
    OpenAIProvider,
    OpenRouterProvider,
)
from provider_gateway.providers.base import RestProvider
from provider_gateway.providers.github_models_provider import GITHUB_TOKEN_URL
from provider_gateway.providers.google_provider import GOOGLE_TOKEN_URL

CONVERSATION = [
    Message(role="system", content="History rule"),
    Message(role="user", content="Hi"),
    Message(role="assistant", content="Hello"),
    Message(role="user", content="Summarize"),
]

ANTHROPIC_REPLY = {
    "id": "msg_1",
    "model": "claude-sonnet-4-20250514",
    "content": [{"type": "text", "text": "Sure"}],
    "stop_reason": "end_turn",
    "usage": {
        "input_tokens": 20,
        "output_tokens": 5,
        "cache_creation_input_tokens": 3,
        "cache_read_input_tokens": 7,
    },
}

OPENAI_REPLY = {
    "model": "gpt-4o-2024-08-06",
    "choices": [{"message": {"role": "assistant", "content": "Sure"}, "finish_reason": "stop"}],
    "usage": {"prompt_tokens": 12, "completion_tokens": 4},
}

GEMINI_REPLY = {
    "candidates": [{"content": {"parts": [{"text": "Su"}, {"text": "re"}]}, "finishReason": "STOP"}],
    "usageMetadata": {"promptTokenCount": 9, "candidatesTokenCount": 2},
    "modelVersion": "gemini-1.5-pro-002",
}


class Recorder:
    """MockTransport handler that records requests and returns a canned response."""

    def __init__(self, response):
        self.response = response
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if callable(self.response):
            return self.response(request)
        return self.response

    @property
    def transport(self):
        return httpx.MockTransport(self)

    @property
    def last_json(self):
        return json.loads(self.requests[-1].content)


def api_key():
    return ProviderCredentials(api_key="sk-test")


class TestAnthropicProvider:
    """Test the Anthropic Messages API provider."""

    @pytest.mark.asyncio
    async def test_chat_request_and_response(self, gateway_config):
        """Test payload shape, auth headers and response normalization."""
        recorder = Recorder(httpx.Response(
            200,
            json=ANTHROPIC_REPLY,
            headers={"anthropic-ratelimit-requests-remaining": "49"},
        ))
        provider = AnthropicProvider(api_key(), config=gateway_config, transport=recorder.transport)

        response = await provider.chat(CONVERSATION, ChatOptions(temperature=0.2))

        request = recorder.requests[0]
        assert str(request.url) == "https://api.anthropic.com/v1/messages"
        assert request.headers["x-api-key"] == "sk-test"
        assert request.headers["anthropic-version"] == "2023-06-01"
        assert recorder.last_json == {
            "model": "claude-sonnet-4-20250514",
            "messages": [
                {"role": "user", "content": "Hi"},
                {"role": "assistant", "content": "Hello"},
                {"role": "user", "content": "Summarize"},
            ],
            "max_tokens": 4096,
            "system": "History rule",
            "temperature": 0.2,
        }
        assert response.content == "Sure"
        assert response.model == "claude-sonnet-4-20250514"
        assert response.finish_reason == "end_turn"
        assert response.usage.cache_creation_tokens == 3
        assert response.usage.cache_read_tokens == 7
        assert response.metadata.rate_limits == {"requests-remaining": "49"}

    @pytest.mark.asyncio
    async def test_system_prompt_option_wins(self, gateway_config):
        """Test that options.system_prompt overrides in-history system turns."""
        recorder = Recorder(httpx.Response(200, json=ANTHROPIC_REPLY))
        provider = AnthropicProvider(api_key(), config=gateway_config, transport=recorder.transport)
        await provider.chat(CONVERSATION, ChatOptions(system_prompt="Option rule", max_tokens=100))
        assert recorder.last_json["system"] == "Option rule"
        assert recorder.last_json["max_tokens"] == 100

    @pytest.mark.asyncio
    async def test_missing_content_is_invalid_response(self, gateway_config):
        recorder = Recorder(httpx.Response(200, json={"model": "x"}))
        provider = AnthropicProvider(api_key(), config=gateway_config, transport=recorder.transport)
        with pytest.raises(AIProviderError) as exc_info:
            await provider.chat(CONVERSATION)
        assert exc_info.value.code == ProviderErrorCode.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_null_usage_counts_are_zero(self, gateway_config):
        """Test that explicit nulls in usage normalize to zero."""
        reply = dict(ANTHROPIC_REPLY, usage={"input_tokens": 20, "output_tokens": None})
        recorder = Recorder(httpx.Response(200, json=reply))
        provider = AnthropicProvider(api_key(), config=gateway_config, transport=recorder.transport)
        response = await provider.chat(CONVERSATION)
        assert response.usage.input_tokens == 20
        assert response.usage.output_tokens == 0

    @pytest.mark.asyncio
    async def test_malformed_content_block_is_invalid_response(self, gateway_config):
        """Test that an unexpected block shape surfaces as a provider error."""
        reply = dict(ANTHROPIC_REPLY, content=["not-a-block"])
        recorder = Recorder(httpx.Response(200, json=reply))
        provider = AnthropicProvider(api_key(), config=gateway_config, transport=recorder.transport)
        with pytest.raises(AIProviderError) as exc_info:
            await provider.chat(CONVERSATION)
        assert exc_info.value.code == ProviderErrorCode.INVALID_RESPONSE
        assert exc_info.value.provider == "anthropic"
        assert isinstance(exc_info.value.original_error, AttributeError)

    def test_account_with_encrypted_api_key(self, gateway_config):
        """Test constructing from an account record."""
        decryptor = FernetDecryptor("passphrase")
        account = ClaudeAccount("a1", "Api", {"encryptedApiKey": decryptor.encrypt("sk-from-account")})
        provider = AnthropicProvider(account, config=gateway_config, decryptor=decryptor)
        assert provider.credential.value == "sk-from-account"

    def test_missing_credentials(self, gateway_config):
        with pytest.raises(AIProviderError) as exc_info:
            AnthropicProvider(ProviderCredentials(), config=gateway_config)
        assert exc_info.value.code == ProviderErrorCode.INVALID_CREDENTIALS
        assert exc_info.value.provider == "anthropic"


class TestOpenAICompatibleProviders:
    """Test OpenAI, OpenRouter and GitHub Models."""

    @pytest.mark.asyncio
    async def test_openai_payload(self, gateway_config):
        """Test the synthetic leading system turn and bearer auth."""
        recorder = Recorder(httpx.Response(200, json=OPENAI_REPLY))
        provider = OpenAIProvider(api_key(), config=gateway_config, transport=recorder.transport)

        response = await provider.chat(
            [Message(role="user", content="Hi")],
            ChatOptions(system_prompt="Be brief", model="gpt-4o-mini"),
        )

        request = recorder.requests[0]
        assert str(request.url) == "https://api.openai.com/v1/chat/completions"
        assert request.headers["authorization"] == "Bearer sk-test"
        assert recorder.last_json["messages"] == [
            {"role": "system", "content": "Be brief"},
            {"role": "user", "content": "Hi"},
        ]
        assert recorder.last_json["model"] == "gpt-4o-mini"
        assert response.model == "gpt-4o-2024-08-06"
        assert response.usage.input_tokens == 12
        assert response.usage.output_tokens == 4

    @pytest.mark.asyncio
    async def test_openrouter_base_url(self, gateway_config):
        recorder = Recorder(httpx.Response(200, json=OPENAI_REPLY))
        provider = OpenRouterProvider(api_key(), config=gateway_config, transport=recorder.transport)
        await provider.chat([Message(role="user", content="Hi")])
        assert str(recorder.requests[0].url) == "https://openrouter.ai/api/v1/chat/completions"
        assert recorder.last_json["model"] == "anthropic/claude-sonnet-4"

    @pytest.mark.asyncio
    async def test_github_models_oauth_token(self, gateway_config):
        """Test GitHub Models with an OAuth access token."""
        recorder = Recorder(httpx.Response(200, json=OPENAI_REPLY))
        provider = GitHubModelsProvider(
            ProviderCredentials(access_token="gho_token"),
            config=gateway_config,
            transport=recorder.transport,
        )
        await provider.chat([Message(role="user", content="Hi")])
        request = recorder.requests[0]
        assert str(request.url) == "https://models.inference.ai.azure.com/chat/completions"
        assert request.headers["authorization"] == "Bearer gho_token"

    @pytest.mark.asyncio
    async def test_empty_choices(self, gateway_config):
        recorder = Recorder(httpx.Response(200, json={"choices": []}))
        provider = OpenAIProvider(api_key(), config=gateway_config, transport=recorder.transport)
        with pytest.raises(AIProviderError) as exc_info:
            await provider.chat([Message(role="user", content="Hi")])
        assert exc_info.value.code == ProviderErrorCode.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_github_models_empty_choices(self, gateway_config):
        """Test that GitHub Models shares the OpenAI reply handling."""
        recorder = Recorder(httpx.Response(200, json={"choices": []}))
        provider = GitHubModelsProvider(api_key(), config=gateway_config, transport=recorder.transport)
        with pytest.raises(AIProviderError) as exc_info:
            await provider.chat([Message(role="user", content="Hi")])
        assert exc_info.value.code == ProviderErrorCode.INVALID_RESPONSE
        assert exc_info.value.provider == "github-models"

    @pytest.mark.asyncio
    async def test_null_model_is_invalid_response(self, gateway_config):
        """Test that a reply failing model validation is an INVALID_RESPONSE."""
        reply = dict(OPENAI_REPLY, model=None)
        recorder = Recorder(httpx.Response(200, json=reply))
        provider = OpenAIProvider(api_key(), config=gateway_config, transport=recorder.transport)
        with pytest.raises(AIProviderError) as exc_info:
            await provider.chat([Message(role="user", content="Hi")])
        assert exc_info.value.code == ProviderErrorCode.INVALID_RESPONSE
        assert isinstance(exc_info.value.original_error, ValueError)

    @pytest.mark.asyncio
    async def test_null_usage_counts_are_zero(self, gateway_config):
        """Test that explicit nulls in usage normalize to zero."""
        reply = dict(OPENAI_REPLY, usage={"prompt_tokens": None, "completion_tokens": None})
        recorder = Recorder(httpx.Response(200, json=reply))
        provider = OpenAIProvider(api_key(), config=gateway_config, transport=recorder.transport)
        response = await provider.chat([Message(role="user", content="Hi")])
        assert response.usage.input_tokens == 0
        assert response.usage.output_tokens == 0

    def test_rest_provider_hooks_are_abstract(self):
        """Test that the base class requires both request hooks."""
        assert {"_send", "_probe"} <= RestProvider.__abstractmethods__
        with pytest.raises(TypeError):
            RestProvider(api_key())


class TestGoogleAIProvider:
    """Test the Gemini provider."""

    @pytest.mark.asyncio
    async def test_payload_and_response(self, gateway_config):
        """Test contents, roles, generationConfig and systemInstruction."""
        recorder = Recorder(httpx.Response(200, json=GEMINI_REPLY))
        provider = GoogleAIProvider(api_key(), config=gateway_config, transport=recorder.transport)

        response = await provider.chat(CONVERSATION, ChatOptions(temperature=0.5))

        request = recorder.requests[0]
        assert request.url.path == "/v1beta/models/gemini-1.5-pro:generateContent"
        assert request.headers["x-goog-api-key"] == "sk-test"
        assert recorder.last_json == {
            "contents": [
                {"role": "user", "parts": [{"text": "Hi"}]},
                {"role": "model", "parts": [{"text": "Hello"}]},
                {"role": "user", "parts": [{"text": "Summarize"}]},
            ],
            "generationConfig": {"maxOutputTokens": 4096, "temperature": 0.5},
            "systemInstruction": {"parts": [{"text": "History rule"}]},
        }
        assert response.content == "Sure"
        assert response.model == "gemini-1.5-pro-002"
        assert response.usage.input_tokens == 9

    @pytest.mark.asyncio
    async def test_oauth_bearer(self, gateway_config):
        recorder = Recorder(httpx.Response(200, json=GEMINI_REPLY))
        provider = GoogleAIProvider(
            ProviderCredentials(access_token="ya29.token"),
            config=gateway_config,
            transport=recorder.transport,
        )
        await provider.chat([Message(role="user", content="Hi")])
        assert recorder.requests[0].headers["authorization"] == "Bearer ya29.token"

    @pytest.mark.asyncio
    async def test_blocked_prompt(self, gateway_config, caplog):
        """Test a reply with no candidates."""
        recorder = Recorder(httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}}))
        provider = GoogleAIProvider(api_key(), config=gateway_config, transport=recorder.transport)
        with caplog.at_level(logging.WARNING, logger="provider_gateway.providers.google_provider"):
            with pytest.raises(AIProviderError) as exc_info:
                await provider.chat([Message(role="user", content="Hi")])
        assert exc_info.value.code == ProviderErrorCode.INVALID_RESPONSE
        assert "SAFETY" in exc_info.value.message
        assert "block reason: SAFETY" in caplog.text


class TestErrorMapping:
    """Test HTTP and transport error mapping shared by REST providers."""

    @pytest.mark.parametrize(
        "response,code",
        [
            (httpx.Response(401, json={"error": "bad key"}), ProviderErrorCode.INVALID_CREDENTIALS),
            (httpx.Response(429, headers={"retry-after": "30"}), ProviderErrorCode.RATE_LIMITED),
            (httpx.Response(500, text="overloaded"), ProviderErrorCode.PROVIDER_ERROR),
            (
                httpx.Response(404, json={"error": {"message": "model: nope not found"}}),
                ProviderErrorCode.MODEL_NOT_FOUND,
            ),
            (
                httpx.Response(400, json={"error": {"message": "prompt is too long: 300000 tokens"}}),
                ProviderErrorCode.CONTEXT_LENGTH_EXCEEDED,
            ),
            (httpx.Response(400, json={"error": "bad request"}), ProviderErrorCode.PROVIDER_ERROR),
        ],
    )
    @pytest.mark.asyncio
    async def test_status_mapping(self, gateway_config, response, code):
        recorder = Recorder(response)
        provider = AnthropicProvider(api_key(), config=gateway_config, transport=recorder.transport)
        with pytest.raises(AIProviderError) as exc_info:
            await provider.chat([Message(role="user", content="Hi")])

        error = exc_info.value
        assert error.code == code
        assert error.provider == "anthropic"
        assert error.status_code == response.status_code
        assert isinstance(error.original_error, httpx.HTTPStatusError)

    @pytest.mark.asyncio
    async def test_retry_after_in_message(self, gateway_config):
        recorder = Recorder(httpx.Response(429, headers={"retry-after": "30"}))
        provider = OpenAIProvider(api_key(), config=gateway_config, transport=recorder.transport)
        with pytest.raises(AIProviderError) as exc_info:
            await provider.chat([Message(role="user", content="Hi")])
        assert "retry after 30s" in exc_info.value.message

    @pytest.mark.parametrize(
        "exc_cls",
        [httpx.ConnectError, httpx.ReadTimeout],
    )
    @pytest.mark.asyncio
    async def test_transport_errors(self, gateway_config, exc_cls):
        """Test that transport failures map to NETWORK_ERROR."""
        def handler(request):
            raise exc_cls("boom", request=request)

        provider = OpenAIProvider(api_key(), config=gateway_config, transport=httpx.MockTransport(handler))
        with pytest.raises(AIProviderError) as exc_info:
            await provider.chat([Message(role="user", content="Hi")])
        assert exc_info.value.code == ProviderErrorCode.NETWORK_ERROR
        assert exc_info.value.provider == "openai"
        assert isinstance(exc_info.value.original_error, exc_cls)

    @pytest.mark.asyncio
    async def test_non_json_body(self, gateway_config):
        recorder = Recorder(httpx.Response(200, text="<html></html>"))
        provider = OpenAIProvider(api_key(), config=gateway_config, transport=recorder.transport)
        with pytest.raises(AIProviderError) as exc_info:
            await provider.chat([Message(role="user", content="Hi")])
        assert exc_info.value.code == ProviderErrorCode.INVALID_RESPONSE


class TestValidateCredentials:
    """Test credential probes."""

    @pytest.mark.asyncio
    async def test_openai_probe(self, gateway_config):
        recorder = Recorder(httpx.Response(200, json={"data": []}))
        provider = OpenAIProvider(api_key(), config=gateway_config, transport=recorder.transport)
        assert await provider.validate_credentials() is True
        assert recorder.requests[0].method == "GET"
        assert recorder.requests[0].url.path == "/v1/models"

    @pytest.mark.asyncio
    async def test_anthropic_probe_uses_one_token(self, gateway_config):
        recorder = Recorder(httpx.Response(200, json=ANTHROPIC_REPLY))
        provider = AnthropicProvider(api_key(), config=gateway_config, transport=recorder.transport)
        assert await provider.validate_credentials() is True
        assert recorder.last_json["max_tokens"] == 1

    @pytest.mark.asyncio
    async def test_rejected_credentials_return_false(self, gateway_config):
        recorder = Recorder(httpx.Response(401, json={"error": "invalid"}))
        provider = GitHubModelsProvider(api_key(), config=gateway_config, transport=recorder.transport)
        assert await provider.validate_credentials() is False


class TestCalculateCost:
    """Test catalog-based cost accounting."""

    def test_known_model(self, gateway_config):
        provider = AnthropicProvider(api_key(), config=gateway_config)
        cost = provider.calculate_cost("claude-sonnet-4-20250514", 2000, 1000)
        assert cost == pytest.approx((2000 / 1000) * 0.003 + (1000 / 1000) * 0.015)

    def test_unknown_model_uses_default_rates(self, gateway_config):
        provider = OpenAIProvider(api_key(), config=gateway_config)
        cost = provider.calculate_cost("gpt-unreleased", 1000, 1000)
        assert cost == pytest.approx(0.0025 + 0.01)

    @pytest.mark.parametrize(
        "provider_cls",
        [AnthropicProvider, OpenAIProvider, OpenRouterProvider, GoogleAIProvider, GitHubModelsProvider],
    )
    def test_every_catalog_model(self, gateway_config, provider_cls):
        """Test that each listed model is priced from its own rates."""
        provider = provider_cls(api_key(), config=gateway_config)
        for model in provider.get_available_models():
            expected = (1500 / 1000) * model.input_cost_per_1k + (300 / 1000) * model.output_cost_per_1k
            assert provider.calculate_cost(model.id, 1500, 300) == pytest.approx(expected)


def oauth_config():
    config = GatewayConfig()
    config.google_oauth = OAuthClientSettings(client_id="g-id", client_secret="g-secret")
    config.github_oauth = OAuthClientSettings(client_id="gh-id", client_secret="gh-secret")
    return config


class TestOAuthRefresh:
    """Test refresh-token exchange."""

    @pytest.mark.asyncio
    async def test_google_refresh(self):
        """Test the form-encoded grant against Google's token endpoint."""
        recorder = Recorder(httpx.Response(200, json={"access_token": "new-token", "expires_in": 3599}))
        provider = GoogleAIProvider(
            ProviderCredentials(access_token="old", refresh_token="refresh"),
            config=oauth_config(),
            transport=recorder.transport,
        )
        assert provider.supports_oauth() is True

        result = await provider.refresh_access_token("refresh")

        request = recorder.requests[0]
        assert str(request.url) == GOOGLE_TOKEN_URL
        assert parse_qs(request.content.decode()) == {
            "client_id": ["g-id"],
            "client_secret": ["g-secret"],
            "refresh_token": ["refresh"],
            "grant_type": ["refresh_token"],
        }
        assert result.access_token == "new-token"
        assert result.expires_in == 3599

    @pytest.mark.asyncio
    async def test_github_refresh_asks_for_json(self):
        recorder = Recorder(httpx.Response(200, json={"access_token": "ghu_new", "expires_in": 28800}))
        provider = GitHubModelsProvider(
            ProviderCredentials(access_token="old"),
            config=oauth_config(),
            transport=recorder.transport,
        )
        result = await provider.refresh_access_token("ghr_refresh")
        assert str(recorder.requests[0].url) == GITHUB_TOKEN_URL
        assert recorder.requests[0].headers["accept"] == "application/json"
        assert result.access_token == "ghu_new"

    @pytest.mark.asyncio
    async def test_github_error_body(self):
        """Test GitHub's 200-with-error response."""
        recorder = Recorder(httpx.Response(200, json={"error": "bad_refresh_token"}))
        provider = GitHubModelsProvider(
            ProviderCredentials(access_token="old"),
            config=oauth_config(),
            transport=recorder.transport,
        )
        with pytest.raises(AIProviderError) as exc_info:
            await provider.refresh_access_token("ghr_refresh")
        assert exc_info.value.code == ProviderErrorCode.INVALID_CREDENTIALS

    @pytest.mark.asyncio
    async def test_unconfigured_client(self, gateway_config):
        provider = GoogleAIProvider(ProviderCredentials(access_token="old"), config=gateway_config)
        with pytest.raises(AIProviderError) as exc_info:
            await provider.refresh_access_token("refresh")
        assert exc_info.value.code == ProviderErrorCode.INVALID_CREDENTIALS

    @pytest.mark.parametrize("status,code", [
        (400, ProviderErrorCode.INVALID_CREDENTIALS),
        (503, ProviderErrorCode.PROVIDER_ERROR),
    ])
    @pytest.mark.asyncio
    async def test_refresh_http_errors(self, status, code):
        recorder = Recorder(httpx.Response(status, json={"error": "invalid_grant"}))
        provider = GoogleAIProvider(
            ProviderCredentials(access_token="old"),
            config=oauth_config(),
            transport=recorder.transport,
        )
        with pytest.raises(AIProviderError) as exc_info:
            await provider.refresh_access_token("refresh")
        assert exc_info.value.code == code

    @pytest.mark.asyncio
    async def test_unsupported_provider(self, gateway_config):
        provider = OpenAIProvider(api_key(), config=gateway_config)
        assert provider.supports_oauth() is False
        with pytest.raises(AIProviderError) as exc_info:
            await provider.refresh_access_token("refresh")
        assert exc_info.value.code == ProviderErrorCode.INVALID_CREDENTIALS
