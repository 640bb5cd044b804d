"""
Provider gateway data models.
"""

from .request import ChatOptions, Message
from .response import ChatResponse, ModelInfo, ResponseMetadata, TokenRefreshResult, Usage

__all__ = [
    "ChatOptions",
    "Message",
    "ChatResponse",
    "ModelInfo",
    "ResponseMetadata",
    "TokenRefreshResult",
    "Usage",
]
