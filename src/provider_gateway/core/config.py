"""
Configuration loading for the provider gateway.

Values come from environment variables with sensible defaults and can be
overridden by a YAML file. String values of the form ``${VAR}`` in the
file are expanded from the environment.
"""

import os
import logging
from typing import Dict, Any, Optional
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)


def _env_float(env: Dict[str, str], name: str, default: float) -> float:
    value = env.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={value!r}, using {default}")
        return default


@dataclass
class ProviderSettings:
    """Endpoint settings for a REST provider."""
    base_url: str
    timeout: float = 60.0


@dataclass
class OAuthClientSettings:
    """OAuth client registration used for refresh-token exchange."""
    client_id: Optional[str] = None
    client_secret: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass
class ClaudeMaxSettings:
    """Settings for the claude.ai web-session backend."""
    base_url: str = "https://claude.ai/api"
    timezone: str = "Asia/Seoul"
    timeout: float = 120.0
    conversation_ttl_seconds: float = 30 * 60
    session_key_env: str = "CLAUDE_MAX_SESSION_KEY"


@dataclass
class GatewayConfig:
    """Complete gateway configuration."""
    anthropic: ProviderSettings = field(
        default_factory=lambda: ProviderSettings(base_url="https://api.anthropic.com/v1")
    )
    openai: ProviderSettings = field(
        default_factory=lambda: ProviderSettings(base_url="https://api.openai.com/v1")
    )
    openrouter: ProviderSettings = field(
        default_factory=lambda: ProviderSettings(base_url="https://openrouter.ai/api/v1")
    )
    google_ai: ProviderSettings = field(
        default_factory=lambda: ProviderSettings(
            base_url="https://generativelanguage.googleapis.com/v1beta"
        )
    )
    github_models: ProviderSettings = field(
        default_factory=lambda: ProviderSettings(base_url="https://models.inference.ai.azure.com")
    )
    google_oauth: OAuthClientSettings = field(default_factory=OAuthClientSettings)
    github_oauth: OAuthClientSettings = field(default_factory=OAuthClientSettings)
    claude_max: ClaudeMaxSettings = field(default_factory=ClaudeMaxSettings)
    encryption_key: Optional[str] = None


def config_from_env(environ: Optional[Dict[str, str]] = None) -> GatewayConfig:
    """Build configuration from environment variables."""
    env = os.environ if environ is None else environ
    timeout = _env_float(env, "GATEWAY_REQUEST_TIMEOUT", 60.0)

    def provider(var: str, default_url: str) -> ProviderSettings:
        return ProviderSettings(base_url=env.get(var) or default_url, timeout=timeout)

    return GatewayConfig(
        anthropic=provider("ANTHROPIC_BASE_URL", "https://api.anthropic.com/v1"),
        openai=provider("OPENAI_BASE_URL", "https://api.openai.com/v1"),
        openrouter=provider("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"),
        google_ai=provider(
            "GOOGLE_AI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
        ),
        github_models=provider("GITHUB_MODELS_BASE_URL", "https://models.inference.ai.azure.com"),
        google_oauth=OAuthClientSettings(
            client_id=env.get("GOOGLE_AI_CLIENT_ID"),
            client_secret=env.get("GOOGLE_AI_CLIENT_SECRET"),
        ),
        github_oauth=OAuthClientSettings(
            client_id=env.get("GITHUB_OAUTH_CLIENT_ID"),
            client_secret=env.get("GITHUB_OAUTH_CLIENT_SECRET"),
        ),
        claude_max=ClaudeMaxSettings(
            base_url=env.get("CLAUDE_MAX_BASE_URL") or "https://claude.ai/api",
            timezone=env.get("CLAUDE_MAX_TIMEZONE") or "Asia/Seoul",
            conversation_ttl_seconds=_env_float(
                env, "CLAUDE_MAX_CONVERSATION_TTL_SECONDS", 30 * 60
            ),
            session_key_env=env.get("CLAUDE_MAX_SESSION_KEY_ENV") or "CLAUDE_MAX_SESSION_KEY",
        ),
        encryption_key=env.get("GATEWAY_ENCRYPTION_KEY"),
    )


def load_config(config_path: Optional[str] = None) -> GatewayConfig:
    """
    Load gateway configuration.

    Args:
        config_path: Path to a YAML file. If None, uses ``GATEWAY_CONFIG_PATH``
            or the first existing default location.

    Returns:
        Loaded configuration
    """
    config = config_from_env()

    if config_path is None:
        config_path = os.environ.get("GATEWAY_CONFIG_PATH")

    if config_path is None:
        paths = [
            Path("config/provider-gateway.yaml"),
            Path("/etc/provider-gateway/config.yaml"),
            Path.home() / ".config/provider-gateway/config.yaml",
        ]
        for p in paths:
            if p.exists():
                config_path = str(p)
                break

    if config_path is None or not Path(config_path).exists():
        logger.debug("No gateway config file found, using environment defaults")
        return config

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load config from {config_path}: {e}")
        return config

    return _apply_overrides(config, _expand_env(data))


def _expand_env(value: Any) -> Any:
    """Expand ``${VAR}`` strings recursively."""
    if isinstance(value, dict):
        return {k: _expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env(v) for v in value]
    if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
        return os.environ.get(value[2:-1], "")
    return value


def _apply_overrides(config: GatewayConfig, data: Dict[str, Any]) -> GatewayConfig:
    """Overlay parsed YAML sections onto the environment-derived config."""
    providers = data.get("providers", {})
    for key in ("anthropic", "openai", "openrouter", "google_ai", "github_models"):
        section = providers.get(key) or {}
        settings: ProviderSettings = getattr(config, key)
        if section.get("base_url"):
            settings.base_url = section["base_url"]
        if section.get("timeout") is not None:
            settings.timeout = float(section["timeout"])

    oauth = data.get("oauth", {})
    for key, attr in (("google", "google_oauth"), ("github", "github_oauth")):
        section = oauth.get(key) or {}
        settings: OAuthClientSettings = getattr(config, attr)
        settings.client_id = section.get("client_id") or settings.client_id
        settings.client_secret = section.get("client_secret") or settings.client_secret

    claude_max = data.get("claude_max") or {}
    for attr in ("base_url", "timezone", "session_key_env"):
        if claude_max.get(attr):
            setattr(config.claude_max, attr, claude_max[attr])
    for attr in ("timeout", "conversation_ttl_seconds"):
        if claude_max.get(attr) is not None:
            setattr(config.claude_max, attr, float(claude_max[attr]))

    if data.get("encryption_key"):
        config.encryption_key = data["encryption_key"]

    return config


_config: Optional[GatewayConfig] = None


def get_config() -> GatewayConfig:
    """Get the process-wide gateway configuration."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: Optional[GatewayConfig]) -> None:
    """Replace (or reset with None) the process-wide configuration."""
    global _config
    _config = config
