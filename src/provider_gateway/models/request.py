"""
Unified request models for the provider gateway.
"""

from typing import Optional, List, Dict, Literal
from pydantic import BaseModel, ConfigDict, Field


class Message(BaseModel):
    """
    A single conversation turn.

    Messages are owned by the caller and treated as immutable once
    handed to a provider.
    """
    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    content: str


class ChatOptions(BaseModel):
    """
    Per-call options for ``Provider.chat``.

    Absent fields fall back to the provider's tier-derived defaults.
    """
    model: Optional[str] = Field(default=None, description="Model identifier")
    max_tokens: Optional[int] = Field(default=None, ge=1)
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    system_prompt: Optional[str] = None


def split_system_messages(messages: List[Message]) -> tuple:
    """
    Separate in-history system messages from conversation turns.

    Returns:
        (system_text or None, list of non-system messages)
    """
    system_parts = [m.content for m in messages if m.role == "system"]
    turns = [m for m in messages if m.role != "system"]
    system = "\n\n".join(system_parts) if system_parts else None
    return system, turns


def to_role_dicts(messages: List[Message]) -> List[Dict[str, str]]:
    """Convert messages to plain ``{"role", "content"}`` dicts."""
    return [{"role": m.role, "content": m.content} for m in messages]
