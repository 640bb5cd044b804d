"""
claude.ai web-session backend.
"""

from .client import ClaudeMaxClient, MODEL_MAPPING, map_status_to_error_code
from .provider import ClaudeMaxProvider, get_account_provider_type, is_claude_max_account
from .sse import SSEAccumulator, SSEStreamParser, parse_sse_stream

__all__ = [
    "ClaudeMaxClient",
    "ClaudeMaxProvider",
    "MODEL_MAPPING",
    "SSEAccumulator",
    "SSEStreamParser",
    "get_account_provider_type",
    "is_claude_max_account",
    "map_status_to_error_code",
    "parse_sse_stream",
]
