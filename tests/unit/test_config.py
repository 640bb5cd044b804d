"""
Unit tests for configuration loading.
"""
import pytest

from provider_gateway.core.config import (
    GatewayConfig,
    config_from_env,
    get_config,
    load_config,
    set_config,
)


class TestConfigFromEnv:
    """Test environment-derived configuration."""

    def test_defaults(self):
        """Test the defaults with an empty environment."""
        config = config_from_env({})
        assert config.anthropic.base_url == "https://api.anthropic.com/v1"
        assert config.openrouter.base_url == "https://openrouter.ai/api/v1"
        assert config.claude_max.base_url == "https://claude.ai/api"
        assert config.claude_max.timeout == 120.0
        assert config.claude_max.conversation_ttl_seconds == 1800
        assert config.google_oauth.is_configured is False
        assert config.encryption_key is None

    def test_overrides(self):
        """Test environment overrides."""
        config = config_from_env({
            "OPENAI_BASE_URL": "http://localhost:8080/v1",
            "GATEWAY_REQUEST_TIMEOUT": "15",
            "GOOGLE_AI_CLIENT_ID": "id",
            "GOOGLE_AI_CLIENT_SECRET": "secret",
            "CLAUDE_MAX_TIMEZONE": "UTC",
            "CLAUDE_MAX_CONVERSATION_TTL_SECONDS": "60",
            "GATEWAY_ENCRYPTION_KEY": "passphrase",
        })
        assert config.openai.base_url == "http://localhost:8080/v1"
        assert config.openai.timeout == 15.0
        assert config.google_oauth.is_configured is True
        assert config.claude_max.timezone == "UTC"
        assert config.claude_max.conversation_ttl_seconds == 60.0
        assert config.encryption_key == "passphrase"

    def test_non_numeric_timeout_ignored(self):
        """Test that a bad number falls back to the default."""
        config = config_from_env({"GATEWAY_REQUEST_TIMEOUT": "soon"})
        assert config.anthropic.timeout == 60.0


class TestLoadConfig:
    """Test YAML configuration files."""

    def test_yaml_overrides_with_env_expansion(self, tmp_path, monkeypatch):
        """Test loading a YAML file with ${VAR} expansion."""
        monkeypatch.setenv("TEST_GITHUB_SECRET", "gh-secret")
        config_file = tmp_path / "gateway.yaml"
        config_file.write_text(
            "providers:\n"
            "  anthropic:\n"
            "    base_url: http://proxy.local/v1\n"
            "    timeout: 30\n"
            "oauth:\n"
            "  github:\n"
            "    client_id: gh-client\n"
            "    client_secret: ${TEST_GITHUB_SECRET}\n"
            "claude_max:\n"
            "  timezone: Europe/Berlin\n"
            "  conversation_ttl_seconds: 600\n"
        )

        config = load_config(str(config_file))

        assert config.anthropic.base_url == "http://proxy.local/v1"
        assert config.anthropic.timeout == 30.0
        assert config.github_oauth.client_id == "gh-client"
        assert config.github_oauth.client_secret == "gh-secret"
        assert config.claude_max.timezone == "Europe/Berlin"
        assert config.claude_max.conversation_ttl_seconds == 600.0

    def test_missing_file_uses_defaults(self, tmp_path):
        """Test a path that does not exist."""
        config = load_config(str(tmp_path / "missing.yaml"))
        assert isinstance(config, GatewayConfig)

    def test_invalid_yaml_uses_defaults(self, tmp_path):
        """Test that an unparsable file is logged and ignored."""
        config_file = tmp_path / "broken.yaml"
        config_file.write_text("providers: [unterminated\n")
        config = load_config(str(config_file))
        assert isinstance(config, GatewayConfig)


class TestConfigSingleton:
    """Test the process-wide config."""

    def test_set_and_get(self):
        config = GatewayConfig(encryption_key="k")
        set_config(config)
        try:
            assert get_config() is config
        finally:
            set_config(None)
