"""
Unified response models for the provider gateway.
"""

from typing import Optional, Dict, Any
from pydantic import BaseModel, ConfigDict, Field


class Usage(BaseModel):
    """Token usage information."""
    model_config = ConfigDict(frozen=True)

    input_tokens: int = 0
    output_tokens: int = 0

    # Anthropic prompt caching breakdown
    cache_creation_tokens: Optional[int] = None
    cache_read_tokens: Optional[int] = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class ResponseMetadata(BaseModel):
    """Provider-specific context attached to a response."""
    model_config = ConfigDict(frozen=True)

    account_id: Optional[str] = None
    account_name: Optional[str] = None
    rate_limits: Optional[Dict[str, Any]] = None


class ChatResponse(BaseModel):
    """
    Normalized reply produced once per ``chat()`` call.

    Frozen: never mutated after it is returned.
    """
    model_config = ConfigDict(frozen=True)

    content: str
    model: str
    usage: Usage = Field(default_factory=Usage)
    finish_reason: str = "stop"
    metadata: Optional[ResponseMetadata] = None

    @classmethod
    def from_anthropic(
        cls,
        data: Dict[str, Any],
        rate_limits: Optional[Dict[str, Any]] = None,
    ) -> "ChatResponse":
        """Create from an Anthropic Messages API response."""
        content = ""
        for block in data.get("content", []):
            if block.get("type") == "text":
                content += block.get("text", "")

        usage_data = data.get("usage") or {}
        usage = Usage(
            input_tokens=usage_data.get("input_tokens") or 0,
            output_tokens=usage_data.get("output_tokens") or 0,
            cache_creation_tokens=usage_data.get("cache_creation_input_tokens"),
            cache_read_tokens=usage_data.get("cache_read_input_tokens"),
        )

        return cls(
            content=content,
            model=data.get("model", ""),
            usage=usage,
            finish_reason=data.get("stop_reason") or "end_turn",
            metadata=ResponseMetadata(rate_limits=rate_limits) if rate_limits else None,
        )

    @classmethod
    def from_openai(cls, data: Dict[str, Any]) -> "ChatResponse":
        """Create from an OpenAI-compatible chat completion response."""
        choices = data.get("choices") or [{}]
        choice = choices[0]
        message = choice.get("message") or {}

        usage_data = data.get("usage") or {}
        usage = Usage(
            input_tokens=usage_data.get("prompt_tokens") or 0,
            output_tokens=usage_data.get("completion_tokens") or 0,
        )

        return cls(
            content=message.get("content") or "",
            model=data.get("model", ""),
            usage=usage,
            finish_reason=choice.get("finish_reason") or "stop",
        )

    @classmethod
    def from_gemini(cls, data: Dict[str, Any], model: str) -> "ChatResponse":
        """Create from a Google Generative Language ``generateContent`` response."""
        candidate = data["candidates"][0]
        parts = (candidate.get("content") or {}).get("parts", [])
        text = "".join(part.get("text", "") for part in parts)

        usage_metadata = data.get("usageMetadata") or {}
        usage = Usage(
            input_tokens=usage_metadata.get("promptTokenCount") or 0,
            output_tokens=usage_metadata.get("candidatesTokenCount") or 0,
        )

        return cls(
            content=text,
            model=data.get("modelVersion") or model,
            usage=usage,
            finish_reason=candidate.get("finishReason") or "STOP",
        )


class ModelInfo(BaseModel):
    """Static, provider-owned catalog entry."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    context_window: int
    input_cost_per_1k: float
    output_cost_per_1k: float


class TokenRefreshResult(BaseModel):
    """Result of an OAuth refresh-token exchange."""
    access_token: str
    expires_in: Optional[int] = None
