"""
Unofficial claude.ai web-session client.

Drives the consumer web chat product through its internal endpoints,
authenticated with a ``sessionKey`` cookie:

- ``GET  /organizations``
- ``POST /organizations/{org}/chat_conversations``
- ``POST /organizations/{org}/chat_conversations/{id}/completion`` (SSE)

The backend has no published contract, so everything here is inferred and
may change without notice.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict

from ...core.errors import ClaudeMaxError, ClaudeMaxErrorCode
from .sse import ClaudeMaxUsage, SSEAccumulator, parse_sse_stream

logger = logging.getLogger(__name__)

BASE_URL = "https://claude.ai/api"
DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_TIMEZONE = "Asia/Seoul"
REQUEST_TIMEOUT_SECONDS = 120.0

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Compatibility shim, not a stable contract: claude.ai does not reliably
# honour per-conversation model selection, so several API model ids are
# redirected to the one model the web product always serves.
MODEL_MAPPING: Dict[str, str] = {
    "claude-3-5-sonnet-20241022": "claude-sonnet-4-20250514",
    "claude-sonnet-4-20250514": "claude-sonnet-4-20250514",
    "claude-3-5-haiku-20241022": "claude-sonnet-4-20250514",
    "claude-3-opus-20240229": "claude-sonnet-4-20250514",
}

_STATUS_CODES = {
    401: ClaudeMaxErrorCode.INVALID_SESSION,
    403: ClaudeMaxErrorCode.FORBIDDEN,
    404: ClaudeMaxErrorCode.NOT_FOUND,
    429: ClaudeMaxErrorCode.RATE_LIMITED,
    500: ClaudeMaxErrorCode.SERVER_ERROR,
    502: ClaudeMaxErrorCode.SERVER_ERROR,
    503: ClaudeMaxErrorCode.SERVER_ERROR,
    504: ClaudeMaxErrorCode.SERVER_ERROR,
}


def map_status_to_error_code(status: int) -> ClaudeMaxErrorCode:
    """Map an HTTP status to a ClaudeMaxErrorCode."""
    return _STATUS_CODES.get(status, ClaudeMaxErrorCode.UNKNOWN_ERROR)


def map_model(model: Optional[str]) -> str:
    """Map an API model id to the id claude.ai expects."""
    if not model:
        return DEFAULT_MODEL
    return MODEL_MAPPING.get(model, model)


class Organization(BaseModel):
    model_config = ConfigDict(extra="allow")

    uuid: str
    name: str = ""
    created_at: Optional[str] = None
    capabilities: Optional[List[str]] = None


class Conversation(BaseModel):
    model_config = ConfigDict(extra="allow")

    uuid: str
    name: str = ""
    model: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class Attachment(BaseModel):
    file_name: str
    file_type: str
    file_size: int
    extracted_content: str


@dataclass(frozen=True)
class SendResult:
    content: str
    usage: Optional[ClaudeMaxUsage] = None
    stop_reason: Optional[str] = None


@dataclass(frozen=True)
class ClaudeMaxChatResult:
    content: str
    conversation_id: str
    model: str
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None


class ClaudeMaxClient:
    """
    Session-cookie client for claude.ai.

    Holds the session key, a lazily resolved organization id and a
    ``conversation id -> Conversation`` metadata cache for its lifetime.
    """

    def __init__(
        self,
        session_key: str,
        organization_id: Optional[str] = None,
        base_url: str = BASE_URL,
        timezone: str = DEFAULT_TIMEZONE,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            session_key: Value of the claude.ai ``sessionKey`` cookie
            organization_id: Known organization id; discovered if omitted
            base_url: claude.ai API base URL
            timezone: Timezone sent with each completion
            timeout: Deadline in seconds for each request, streaming included
            transport: Custom httpx transport
        """
        self._session_key = session_key
        self._organization_id = organization_id
        self._base_url = base_url.rstrip("/")
        self._timezone = timezone
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._conversations: Dict[str, Conversation] = {}

    async def __aenter__(self) -> "ClaudeMaxClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    @property
    def organization_id(self) -> Optional[str]:
        return self._organization_id

    def _headers(self) -> Dict[str, str]:
        # Browser-like headers; the backend rejects requests that do not
        # look like they came from its own web client.
        return {
            "Content-Type": "application/json",
            "Cookie": f"sessionKey={self._session_key}",
            "User-Agent": USER_AGENT,
            "Accept": "application/json",
            "Origin": "https://claude.ai",
            "Referer": "https://claude.ai/",
        }

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=self._headers(),
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    # Organizations

    async def get_organizations(self) -> List[Organization]:
        """List organizations visible to this session."""
        data = await self._request("GET", "/organizations")
        if not isinstance(data, list):
            raise ClaudeMaxError(
                "Unexpected organizations payload", ClaudeMaxErrorCode.INVALID_RESPONSE
            )
        return [Organization.model_validate(org) for org in data]

    async def get_organization_id(self) -> str:
        """Return the organization id, selecting the first one on first use."""
        if self._organization_id:
            return self._organization_id

        orgs = await self.get_organizations()
        if not orgs:
            raise ClaudeMaxError(
                "No organizations found for this account",
                ClaudeMaxErrorCode.NO_ORGANIZATIONS,
            )

        self._organization_id = orgs[0].uuid
        logger.info(
            f"Claude Max organization auto-selected: {orgs[0].name} ({self._organization_id})"
        )
        return self._organization_id

    # Conversations

    async def create_conversation(
        self,
        name: Optional[str] = None,
        model: Optional[str] = None,
    ) -> Conversation:
        """Create a conversation with a client-generated UUID."""
        org_id = await self.get_organization_id()
        mapped_model = map_model(model)

        data = await self._request(
            "POST",
            f"/organizations/{org_id}/chat_conversations",
            json={
                "name": name or "",
                "uuid": str(uuid.uuid4()),
                "model": mapped_model,
            },
        )
        try:
            conversation = Conversation.model_validate(data)
        except ValueError as e:
            raise ClaudeMaxError(
                f"Unexpected conversation payload: {e}", ClaudeMaxErrorCode.INVALID_RESPONSE
            ) from e
        if conversation.model is None:
            conversation = conversation.model_copy(update={"model": mapped_model})

        self._conversations[conversation.uuid] = conversation
        logger.debug(f"Claude Max conversation created: {conversation.uuid} ({mapped_model})")
        return conversation

    async def get_conversation(self, conversation_id: str) -> Conversation:
        """Fetch conversation metadata, served from cache when known."""
        cached = self._conversations.get(conversation_id)
        if cached is not None:
            return cached

        org_id = await self.get_organization_id()
        data = await self._request(
            "GET", f"/organizations/{org_id}/chat_conversations/{conversation_id}"
        )
        try:
            conversation = Conversation.model_validate(data)
        except ValueError as e:
            raise ClaudeMaxError(
                f"Unexpected conversation payload: {e}", ClaudeMaxErrorCode.INVALID_RESPONSE
            ) from e

        self._conversations[conversation_id] = conversation
        return conversation

    async def delete_conversation(self, conversation_id: str) -> None:
        """Delete a conversation server-side and drop it from the cache."""
        org_id = await self.get_organization_id()
        await self._request(
            "DELETE", f"/organizations/{org_id}/chat_conversations/{conversation_id}"
        )
        self._conversations.pop(conversation_id, None)

    # Messaging

    async def send_message(
        self,
        conversation_id: str,
        message: str,
        model: Optional[str] = None,
        timezone: Optional[str] = None,
        attachments: Optional[List[Attachment]] = None,
    ) -> SendResult:
        """
        Post a prompt to a conversation and collect the streamed reply.

        Returns:
            Accumulated content and the last reported usage
        """
        org_id = await self.get_organization_id()
        body = {
            "prompt": message,
            "timezone": timezone or self._timezone,
            "model": map_model(model),
            "attachments": [a.model_dump() for a in attachments or []],
        }

        state = await self._stream_request(
            f"/organizations/{org_id}/chat_conversations/{conversation_id}/completion",
            body,
        )
        return SendResult(content=state.content, usage=state.usage, stop_reason=state.stop_reason)

    async def chat(
        self,
        message: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> ClaudeMaxChatResult:
        """
        One-shot helper: create a conversation if needed, send, and return.

        The system prompt is inlined as a ``<system>`` tag because the
        completion endpoint accepts a single prompt string.
        """
        if conversation_id is None:
            conversation = await self.create_conversation(model=model)
            conversation_id = conversation.uuid
        else:
            conversation = await self.get_conversation(conversation_id)

        prompt = message
        if system_prompt:
            prompt = f"<system>{system_prompt}</system>\n\n{message}"

        result = await self.send_message(conversation_id, prompt, model=model)
        usage = result.usage
        return ClaudeMaxChatResult(
            content=result.content,
            conversation_id=conversation_id,
            model=conversation.model or map_model(model),
            input_tokens=usage.input_tokens if usage else None,
            output_tokens=usage.output_tokens if usage else None,
        )

    # Transport

    async def _with_deadline(self, coro, description: str) -> Any:
        """
        Run ``coro`` under the request deadline, mapping transport errors.

        Shared by the plain and streaming paths.
        """
        try:
            return await asyncio.wait_for(coro, timeout=self._timeout)
        except ClaudeMaxError:
            raise
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise ClaudeMaxError(f"{description} timeout", ClaudeMaxErrorCode.TIMEOUT) from e
        except httpx.HTTPError as e:
            raise ClaudeMaxError(
                f"{description} failed: {e}", ClaudeMaxErrorCode.NETWORK_ERROR
            ) from e

    @staticmethod
    def _raise_for_status(response: httpx.Response, description: str) -> None:
        if response.is_success:
            return
        raise ClaudeMaxError(
            f"{description} failed: {response.status_code} {response.reason_phrase} - "
            f"{response.text[:500]}",
            map_status_to_error_code(response.status_code),
            response.status_code,
        )

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Make a plain JSON request; an empty 2xx body yields ``{}``."""

        async def send() -> Any:
            client = await self._get_client()
            response = await client.request(method, path, json=json)
            self._raise_for_status(response, "Request")
            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError as e:
                raise ClaudeMaxError(
                    f"Invalid JSON from {path}", ClaudeMaxErrorCode.INVALID_RESPONSE
                ) from e

        return await self._with_deadline(send(), "Request")

    async def _stream_request(self, path: str, body: Dict[str, Any]) -> SSEAccumulator:
        """POST to a streaming endpoint and parse the SSE body."""

        async def send() -> SSEAccumulator:
            client = await self._get_client()
            async with client.stream(
                "POST",
                path,
                json=body,
                headers={"Accept": "text/event-stream"},
            ) as response:
                if not response.is_success:
                    await response.aread()
                    self._raise_for_status(response, "Streaming request")
                return await parse_sse_stream(response.aiter_bytes())

        return await self._with_deadline(send(), "Streaming request")
