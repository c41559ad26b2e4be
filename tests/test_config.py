"""
Tests for configuration module.
"""

import json
import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from micro_x_agent_loop.config import DEFAULT_MODEL, LLMConfig, Settings


def test_settings_default_values():
    """Test that settings have sensible defaults."""
    with patch.dict(os.environ, {}, clear=True):
        settings = Settings(_env_file=None)

        assert settings.provider == "anthropic"
        assert settings.model == DEFAULT_MODEL
        assert settings.max_tokens == 8192
        assert settings.temperature == 1.0
        assert settings.max_tool_result_chars == 40_000
        assert settings.max_conversation_messages == 50
        assert settings.compaction_strategy == "none"
        assert settings.compaction_threshold_tokens == 80_000
        assert settings.protected_tail_messages == 6
        assert settings.mcp_servers == {}
        assert settings.log_consumers == []


def test_settings_from_env():
    """Test loading settings from environment variables."""
    env = {
        "ANTHROPIC_API_KEY": "test_anthropic_key",
        "MODEL": "claude-opus-4",
        "MAX_TOKENS": "4096",
        "COMPACTION_STRATEGY": "Summarize",
        "MAX_TOOL_RESULT_CHARS": "0",
    }

    with patch.dict(os.environ, env, clear=True):
        settings = Settings(_env_file=None)

        assert settings.anthropic_api_key == "test_anthropic_key"
        assert settings.model == "claude-opus-4"
        assert settings.max_tokens == 4096
        assert settings.compaction_strategy == "summarize"
        assert settings.max_tool_result_chars == 0


def test_settings_rejects_unknown_strategy():
    """Test that an unknown compaction strategy is rejected."""
    with patch.dict(os.environ, {"COMPACTION_STRATEGY": "truncate"}, clear=True):
        with pytest.raises(ValidationError):
            Settings(_env_file=None)


def test_settings_rejects_negative_limits():
    """Test that negative limits are rejected."""
    with patch.dict(os.environ, {"MAX_CONVERSATION_MESSAGES": "-1"}, clear=True):
        with pytest.raises(ValidationError):
            Settings(_env_file=None)


def test_mcp_servers_from_json():
    """Test parsing MCP server definitions from JSON."""
    servers = {
        "files": {"command": "npx", "args": ["-y", "server-filesystem", "/tmp"]},
        "remote": {"transport": "http", "url": "http://localhost:8000/mcp"},
    }

    with patch.dict(os.environ, {"MCP_SERVERS": json.dumps(servers)}, clear=True):
        settings = Settings(_env_file=None)

        assert settings.mcp_servers["files"].transport == "stdio"
        assert settings.mcp_servers["files"].args == ["-y", "server-filesystem", "/tmp"]
        assert settings.mcp_servers["remote"].url == "http://localhost:8000/mcp"


def test_log_consumers_from_json():
    """Test parsing log consumers from JSON."""
    consumers = [{"type": "console", "level": "DEBUG"}, {"type": "file", "path": "logs/a.log"}]

    with patch.dict(os.environ, {"LOG_CONSUMERS": json.dumps(consumers)}, clear=True):
        settings = Settings(_env_file=None)

        assert [c.type for c in settings.log_consumers] == ["console", "file"]
        assert settings.log_consumers[0].level == "DEBUG"
        assert settings.log_consumers[1].path == "logs/a.log"


def test_get_llm_config():
    """Test getting LLM configuration."""
    env = {
        "ANTHROPIC_API_KEY": "anthropic_key",
        "OPENAI_API_KEY": "openai_key",
    }

    with patch.dict(os.environ, env, clear=True):
        settings = Settings(_env_file=None)

        config = settings.get_llm_config("anthropic")
        assert config.provider == "anthropic"
        assert config.api_key == "anthropic_key"
        assert config.base_url is None

        config = settings.get_llm_config("openai")
        assert config.provider == "openai"
        assert config.api_key == "openai_key"


def test_get_llm_config_openrouter():
    """Test OpenRouter configuration has the right base URL."""
    with patch.dict(os.environ, {"OPENROUTER_API_KEY": "or_key", "PROVIDER": "openrouter"}, clear=True):
        settings = Settings(_env_file=None)

        config = settings.get_llm_config()
        assert config.api_key == "or_key"
        assert config.base_url == "https://openrouter.ai/api/v1"


def test_llm_config_model():
    """Test LLMConfig model."""
    config = LLMConfig(
        provider="anthropic",
        model="claude-sonnet-4",
        api_key="test_key",
        max_tokens=2048,
        temperature=0.5,
    )

    assert config.provider == "anthropic"
    assert config.model == "claude-sonnet-4"
    assert config.max_tokens == 2048
    assert config.temperature == 0.5


def test_validate_for_run_missing_key():
    """Test that a missing API key is reported."""
    with patch.dict(os.environ, {}, clear=True):
        settings = Settings(_env_file=None)

        problems = settings.validate_for_run()
        assert problems == ["ANTHROPIC_API_KEY environment variable is required."]


def test_validate_for_run_bad_mcp_server():
    """Test that incomplete MCP servers are reported."""
    env = {
        "ANTHROPIC_API_KEY": "key",
        "MCP_SERVERS": json.dumps({"broken": {"transport": "http"}}),
    }

    with patch.dict(os.environ, env, clear=True):
        settings = Settings(_env_file=None)

        problems = settings.validate_for_run()
        assert len(problems) == 1
        assert "broken" in problems[0]


def test_google_enabled():
    """Test Google tools are enabled only with both credentials."""
    with patch.dict(os.environ, {"GOOGLE_CLIENT_ID": "id"}, clear=True):
        assert Settings(_env_file=None).google_enabled is False

    with patch.dict(os.environ, {"GOOGLE_CLIENT_ID": "id", "GOOGLE_CLIENT_SECRET": "s"}, clear=True):
        assert Settings(_env_file=None).google_enabled is True
