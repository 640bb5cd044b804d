"""
Credential sources and resolution.

Providers never decrypt or read the environment themselves. They hold a
``CredentialSource`` and call ``resolve_credential`` once, at construction.
"""

import base64
import hashlib
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol, Union

from cryptography.fernet import Fernet, InvalidToken

from .errors import AIProviderError, ProviderErrorCode

logger = logging.getLogger(__name__)

SESSION_KEY = "session_key"
API_KEY = "api_key"
ACCESS_TOKEN = "access_token"


@dataclass(frozen=True)
class ProviderCredentials:
    """Credentials handed to a REST provider. Secrets are kept out of repr."""
    api_key: Optional[str] = field(default=None, repr=False)
    access_token: Optional[str] = field(default=None, repr=False)
    refresh_token: Optional[str] = field(default=None, repr=False)


@dataclass(frozen=True)
class ClaudeAccount:
    """
    Account record owned by the account pool.

    ``metadata`` holds ``encryptedSessionKey`` / ``encryptedApiKey``,
    ``source == "environment"``, an optional ``organizationId``, or (dev only)
    a plaintext ``sessionKey``.
    """
    id: str
    name: str
    metadata: Dict[str, Any] = field(default_factory=dict)


# Credential sources

@dataclass(frozen=True)
class ApiKeyCredential:
    api_key: str = field(repr=False)


@dataclass(frozen=True)
class OAuthCredential:
    access_token: str = field(repr=False)
    refresh_token: Optional[str] = field(default=None, repr=False)


@dataclass(frozen=True)
class SessionKeyCredential:
    session_key: str = field(repr=False)


@dataclass(frozen=True)
class EncryptedCredential:
    ciphertext: str = field(repr=False)
    kind: str = SESSION_KEY
    label: str = ""


@dataclass(frozen=True)
class EnvironmentCredential:
    variable: str
    kind: str = SESSION_KEY


CredentialSource = Union[
    ApiKeyCredential,
    OAuthCredential,
    SessionKeyCredential,
    EncryptedCredential,
    EnvironmentCredential,
]


@dataclass(frozen=True)
class PlaintextCredential:
    """A resolved secret ready to be put on the wire."""
    kind: str
    value: str = field(repr=False)
    refresh_token: Optional[str] = field(default=None, repr=False)


class Decryptor(Protocol):
    """The external decryption collaborator."""

    def decrypt(self, ciphertext: str) -> str:
        ...


class FernetDecryptor:
    """
    Fernet-based decryptor.

    The Fernet key is derived from an arbitrary passphrase via SHA-256,
    so any configured ``GATEWAY_ENCRYPTION_KEY`` string works.
    """

    def __init__(self, passphrase: str):
        derived = hashlib.sha256(passphrase.encode()).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(derived))

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        return self._fernet.decrypt(ciphertext.encode()).decode()


def credential_source_from_credentials(credentials: ProviderCredentials) -> CredentialSource:
    """Pick the credential source a REST provider should use."""
    if credentials.api_key:
        return ApiKeyCredential(credentials.api_key)
    if credentials.access_token:
        return OAuthCredential(credentials.access_token, credentials.refresh_token)
    raise AIProviderError(
        "No API key or access token provided",
        "gateway",
        ProviderErrorCode.INVALID_CREDENTIALS,
    )


def credential_source_for_account(
    account: ClaudeAccount,
    kind: str = SESSION_KEY,
    environment_variable: str = "CLAUDE_MAX_SESSION_KEY",
    provider: str = "claude-max",
) -> CredentialSource:
    """
    Map account metadata to a credential source.

    Order: environment marker, encrypted value, plaintext value. The
    plaintext path is accepted for development only and always logged.
    """
    metadata = account.metadata or {}

    if metadata.get("source") == "environment":
        return EnvironmentCredential(environment_variable, kind=kind)

    encrypted_key = "encryptedSessionKey" if kind == SESSION_KEY else "encryptedApiKey"
    ciphertext = metadata.get(encrypted_key)
    if ciphertext:
        return EncryptedCredential(ciphertext, kind=kind, label=f"{account.name} [{account.id}]")

    plain_key = "sessionKey" if kind == SESSION_KEY else "apiKey"
    plaintext = metadata.get(plain_key)
    if plaintext:
        logger.warning(
            f"Using plain {plain_key} for account {account.id} - should be encrypted in production"
        )
        if kind == SESSION_KEY:
            return SessionKeyCredential(plaintext)
        return ApiKeyCredential(plaintext)

    raise AIProviderError(
        f"Account {account.name} ({account.id}) has no {kind.replace('_', ' ')} configured",
        provider,
        ProviderErrorCode.INVALID_CREDENTIALS,
    )


def resolve_credential(
    source: CredentialSource,
    decryptor: Optional[Decryptor] = None,
    environ: Optional[Mapping[str, str]] = None,
    provider: str = "gateway",
) -> PlaintextCredential:
    """
    Resolve any credential source into a plaintext credential.

    Raises:
        AIProviderError: INVALID_CREDENTIALS if the secret is missing or
            cannot be decrypted
    """
    if isinstance(source, ApiKeyCredential):
        return PlaintextCredential(API_KEY, source.api_key)

    if isinstance(source, OAuthCredential):
        return PlaintextCredential(ACCESS_TOKEN, source.access_token, source.refresh_token)

    if isinstance(source, SessionKeyCredential):
        return PlaintextCredential(SESSION_KEY, source.session_key)

    if isinstance(source, EnvironmentCredential):
        env = os.environ if environ is None else environ
        value = env.get(source.variable)
        if not value:
            raise AIProviderError(
                f"Environment variable {source.variable} is not set",
                provider,
                ProviderErrorCode.INVALID_CREDENTIALS,
            )
        return PlaintextCredential(source.kind, value)

    if isinstance(source, EncryptedCredential):
        if decryptor is None:
            raise AIProviderError(
                f"No decryptor configured for encrypted credential {source.label}".rstrip(),
                provider,
                ProviderErrorCode.INVALID_CREDENTIALS,
            )
        try:
            value = decryptor.decrypt(source.ciphertext)
        except InvalidToken as e:
            raise AIProviderError(
                f"Failed to decrypt {source.kind.replace('_', ' ')} for {source.label}: invalid token",
                provider,
                ProviderErrorCode.INVALID_CREDENTIALS,
                original_error=e,
            ) from e
        except Exception as e:
            raise AIProviderError(
                f"Failed to decrypt {source.kind.replace('_', ' ')} for {source.label}: {e!r}",
                provider,
                ProviderErrorCode.INVALID_CREDENTIALS,
                original_error=e,
            ) from e
        return PlaintextCredential(source.kind, value)

    raise TypeError(f"Unsupported credential source: {type(source).__name__}")


def default_decryptor(encryption_key: Optional[str]) -> Optional[Decryptor]:
    """Build the default decryptor from a configured passphrase, if any."""
    if not encryption_key:
        return None
    return FernetDecryptor(encryption_key)
