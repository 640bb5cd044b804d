"""
Shared plumbing for REST chat providers.

Handles the httpx client lifecycle, credential resolution, HTTP error
mapping, and catalog-based cost accounting so each concrete provider only
translates request and response shapes.
"""

import logging
from abc import abstractmethod
from typing import Any, Dict, List, Optional, Tuple, Union

import httpx

from ..core.config import GatewayConfig, OAuthClientSettings, get_config
from ..core.credentials import (
    API_KEY,
    ClaudeAccount,
    CredentialSource,
    Decryptor,
    PlaintextCredential,
    ProviderCredentials,
    credential_source_for_account,
    credential_source_from_credentials,
    default_decryptor,
    resolve_credential,
)
from ..core.errors import AIProviderError, ProviderErrorCode
from ..core.interface import AbstractProvider, record_response, tracer
from ..models.request import ChatOptions, Message
from ..models.response import ChatResponse, ModelInfo, TokenRefreshResult

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4096

_CONTEXT_LENGTH_MARKERS = (
    "context length",
    "context_length",
    "context window",
    "maximum context",
    "too many tokens",
    "prompt is too long",
)

Credentials = Union[ProviderCredentials, ClaudeAccount, CredentialSource]


class RestProvider(AbstractProvider):
    """
    Base class for providers backed by a conventional JSON REST API.

    Subclasses set ``MODELS``, ``TIER_TO_MODEL``, ``DEFAULT_RATES`` and
    ``SETTINGS_KEY`` and implement ``_auth_headers``, ``_send`` and
    ``_probe``.
    """

    MODELS: List[ModelInfo] = []
    #: (input $/1k, output $/1k) used for models missing from the catalog
    DEFAULT_RATES: Tuple[float, float] = (0.0, 0.0)
    #: Attribute of GatewayConfig holding this provider's ProviderSettings
    SETTINGS_KEY: str = ""

    def __init__(
        self,
        credentials: Credentials,
        config: Optional[GatewayConfig] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        decryptor: Optional[Decryptor] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize a REST provider.

        Args:
            credentials: ProviderCredentials, an account holding an
                encrypted API key, or an explicit credential source
            config: Gateway configuration (process config if omitted)
            base_url: Override the configured API base URL
            timeout: Override the configured request timeout in seconds
            decryptor: Decryption collaborator for encrypted credentials
            transport: Custom httpx transport
        """
        self._config = config or get_config()
        settings = getattr(self._config, self.SETTINGS_KEY)
        self._base_url = (base_url or settings.base_url).rstrip("/")
        self._timeout = timeout or settings.timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        if decryptor is None:
            decryptor = default_decryptor(self._config.encryption_key)
        self._credential = resolve_credential(
            self._credential_source(credentials), decryptor=decryptor, provider=self.name
        )

    def _credential_source(self, credentials: Credentials) -> CredentialSource:
        if isinstance(credentials, ProviderCredentials):
            try:
                return credential_source_from_credentials(credentials)
            except AIProviderError as e:
                raise AIProviderError(e.message, self.name, e.code) from e
        if isinstance(credentials, ClaudeAccount):
            return credential_source_for_account(credentials, kind=API_KEY, provider=self.name)
        return credentials

    @property
    def credential(self) -> PlaintextCredential:
        return self._credential

    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._credential.value}"}

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={"Content-Type": "application/json", **self._auth_headers()},
                timeout=self._timeout,
                transport=self._transport,
            )
            logger.info(f"Connected to {self.display_name} at {self._base_url}")
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info(f"Disconnected from {self.display_name}")

    # Request helpers

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Issue one request, mapping transport failures and HTTP errors."""
        client = await self._get_client()
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise AIProviderError(
                f"{self.display_name} request timed out",
                self.name,
                ProviderErrorCode.NETWORK_ERROR,
                original_error=e,
            ) from e
        except httpx.HTTPError as e:
            raise AIProviderError(
                f"{self.display_name} request failed: {e}",
                self.name,
                ProviderErrorCode.NETWORK_ERROR,
                original_error=e,
            ) from e

        self._check_response_errors(response)
        return response

    def _check_response_errors(self, response: httpx.Response) -> None:
        """Raise AIProviderError for any non-2xx response."""
        if response.is_success:
            return

        status = response.status_code
        body = response.text[:500]
        cause = httpx.HTTPStatusError(
            f"HTTP {status}", request=response.request, response=response
        )

        if status == 401:
            code = ProviderErrorCode.INVALID_CREDENTIALS
            message = f"Invalid {self.display_name} credentials"
        elif status == 429:
            code = ProviderErrorCode.RATE_LIMITED
            retry_after = response.headers.get("retry-after")
            message = f"{self.display_name} rate limit exceeded"
            if retry_after:
                message += f" (retry after {retry_after}s)"
        elif status == 404 and "model" in body.lower():
            code = ProviderErrorCode.MODEL_NOT_FOUND
            message = f"{self.display_name} model not found: {body}"
        elif status in (400, 413) and any(m in body.lower() for m in _CONTEXT_LENGTH_MARKERS):
            code = ProviderErrorCode.CONTEXT_LENGTH_EXCEEDED
            message = f"{self.display_name} context length exceeded: {body}"
        else:
            code = ProviderErrorCode.PROVIDER_ERROR
            message = f"{self.display_name} request failed: {status} - {body}"

        raise AIProviderError(message, self.name, code, status_code=status, original_error=cause)

    def _json(self, response: httpx.Response) -> Dict[str, Any]:
        """Decode a JSON body or raise INVALID_RESPONSE."""
        try:
            data = response.json()
        except ValueError as e:
            raise AIProviderError(
                f"{self.display_name} returned a non-JSON response",
                self.name,
                ProviderErrorCode.INVALID_RESPONSE,
                status_code=response.status_code,
                original_error=e,
            ) from e
        if not isinstance(data, dict):
            raise AIProviderError(
                f"{self.display_name} returned an unexpected payload",
                self.name,
                ProviderErrorCode.INVALID_RESPONSE,
                status_code=response.status_code,
            )
        return data

    def _invalid_response(self, detail: str, error: Optional[BaseException] = None) -> AIProviderError:
        return AIProviderError(
            f"Invalid {self.display_name} response: {detail}",
            self.name,
            ProviderErrorCode.INVALID_RESPONSE,
            original_error=error,
        )

    # Provider contract

    async def chat(
        self,
        messages: List[Message],
        options: Optional[ChatOptions] = None,
    ) -> ChatResponse:
        """Send a chat request and normalize the reply."""
        options = options or ChatOptions()
        model = options.model or self._default_model()

        with tracer.start_as_current_span("provider.chat") as span:
            span.set_attribute("provider", self.name)
            span.set_attribute("requested_model", model)
            try:
                response = await self._send(messages, options, model)
            except (ValueError, TypeError, AttributeError, KeyError) as e:
                # Response normalization failed on an unexpected payload shape
                logger.error(f"Could not normalize {self.display_name} response: {e}")
                raise self._invalid_response(str(e), e) from e
            record_response(span, response)
            return response

    @abstractmethod
    async def _send(
        self,
        messages: List[Message],
        options: ChatOptions,
        model: str,
    ) -> ChatResponse:
        """Issue the backend-specific chat request and normalize its reply."""
        pass

    @abstractmethod
    async def _probe(self) -> None:
        """Cheapest authenticated call; raises on failure."""
        pass

    async def validate_credentials(self) -> bool:
        """Check credentials; never raises."""
        try:
            await self._probe()
            return True
        except Exception as e:
            logger.warning(f"{self.display_name} credential validation failed: {e}")
            return False

    def get_available_models(self) -> List[ModelInfo]:
        return list(self.MODELS)

    def calculate_cost(self, model: str, input_tokens: int, output_tokens: int) -> float:
        """
        Cost from the static catalog.

        Unknown models are priced at ``DEFAULT_RATES`` so cost accounting
        keeps working for new or unlisted models.
        """
        info = next((m for m in self.MODELS if m.id == model), None)
        if info is not None:
            input_rate, output_rate = info.input_cost_per_1k, info.output_cost_per_1k
        else:
            input_rate, output_rate = self.DEFAULT_RATES
            logger.warning(
                f"Unknown {self.name} model {model!r}, using default rates "
                f"{input_rate}/{output_rate} per 1k tokens"
            )
        return (input_tokens / 1000) * input_rate + (output_tokens / 1000) * output_rate

    # OAuth

    async def _refresh_with_token_endpoint(
        self,
        token_url: str,
        oauth: OAuthClientSettings,
        refresh_token: str,
        headers: Optional[Dict[str, str]] = None,
    ) -> TokenRefreshResult:
        """POST a ``refresh_token`` grant to an OAuth token endpoint."""
        if not oauth.is_configured:
            raise AIProviderError(
                f"{self.display_name} OAuth client is not configured",
                self.name,
                ProviderErrorCode.INVALID_CREDENTIALS,
            )

        form = {
            "client_id": oauth.client_id,
            "client_secret": oauth.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(token_url, data=form, headers=headers or {})
        except httpx.HTTPError as e:
            raise AIProviderError(
                f"{self.display_name} token refresh failed: {e}",
                self.name,
                ProviderErrorCode.NETWORK_ERROR,
                original_error=e,
            ) from e

        if not response.is_success:
            code = (
                ProviderErrorCode.INVALID_CREDENTIALS
                if response.status_code in (400, 401)
                else ProviderErrorCode.PROVIDER_ERROR
            )
            raise AIProviderError(
                f"{self.display_name} token refresh failed: {response.text[:500]}",
                self.name,
                code,
                status_code=response.status_code,
            )

        data = self._json(response)
        if data.get("error") or not data.get("access_token"):
            raise AIProviderError(
                f"{self.display_name} token refresh failed: "
                f"{data.get('error_description') or data.get('error') or 'no access token'}",
                self.name,
                ProviderErrorCode.INVALID_CREDENTIALS,
                status_code=response.status_code,
            )

        logger.info(f"Refreshed {self.display_name} access token")
        return TokenRefreshResult(
            access_token=data["access_token"],
            expires_in=data.get("expires_in"),
        )
