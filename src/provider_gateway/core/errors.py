"""
Provider gateway error types.

Two tiers: backend-specific errors (``ClaudeMaxError``, httpx errors) are
caught at the provider boundary and translated into ``AIProviderError``,
which is the only type callers above the gateway should branch on.
"""

from enum import Enum
from typing import List, Optional


class ProviderErrorCode(str, Enum):
    """Provider-agnostic error kinds."""
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    RATE_LIMITED = "RATE_LIMITED"
    CONTEXT_LENGTH_EXCEEDED = "CONTEXT_LENGTH_EXCEEDED"
    MODEL_NOT_FOUND = "MODEL_NOT_FOUND"
    NETWORK_ERROR = "NETWORK_ERROR"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    INVALID_RESPONSE = "INVALID_RESPONSE"


class AIProviderError(Exception):
    """Structured error raised by every provider."""

    def __init__(
        self,
        message: str,
        provider: str,
        code: ProviderErrorCode,
        status_code: Optional[int] = None,
        original_error: Optional[BaseException] = None,
    ):
        self.message = message
        self.provider = provider
        self.code = code
        self.status_code = status_code
        self.original_error = original_error
        super().__init__(message)
        if original_error is not None:
            self.__cause__ = original_error

    def __repr__(self) -> str:
        return (
            f"AIProviderError(provider={self.provider!r}, code={self.code.value}, "
            f"status_code={self.status_code!r}, message={self.message!r})"
        )


class ProviderNotFoundError(Exception):
    """Raised when a provider name is not registered."""

    def __init__(self, name: str, registered: List[str]):
        self.name = name
        self.registered = registered
        available = ", ".join(registered) if registered else "<none>"
        super().__init__(f"Unknown provider: {name}. Registered providers: {available}")


def is_retryable(error: AIProviderError) -> bool:
    """
    Default retry policy for a provider error.

    Callers with different needs should derive their own policy from
    ``error.code`` and ``error.status_code`` instead of calling this.
    """
    if error.code in (ProviderErrorCode.RATE_LIMITED, ProviderErrorCode.NETWORK_ERROR):
        return True
    if error.code == ProviderErrorCode.PROVIDER_ERROR and error.status_code is not None:
        return error.status_code >= 500
    return False


class ClaudeMaxErrorCode(str, Enum):
    """Error kinds raised by the claude.ai web-session client."""
    INVALID_SESSION = "INVALID_SESSION"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMITED = "RATE_LIMITED"
    SERVER_ERROR = "SERVER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    NO_ORGANIZATIONS = "NO_ORGANIZATIONS"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


_RETRYABLE_CLAUDE_MAX_CODES = frozenset({
    ClaudeMaxErrorCode.RATE_LIMITED,
    ClaudeMaxErrorCode.SERVER_ERROR,
    ClaudeMaxErrorCode.NETWORK_ERROR,
    ClaudeMaxErrorCode.TIMEOUT,
})


class ClaudeMaxError(Exception):
    """Raised by ``ClaudeMaxClient`` for any failed request."""

    def __init__(
        self,
        message: str,
        code: ClaudeMaxErrorCode,
        status_code: Optional[int] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)

    def is_retryable(self) -> bool:
        return self.code in _RETRYABLE_CLAUDE_MAX_CODES
