"""
Configuration management for micro-x-agent-loop.

Uses pydantic-settings for environment variable parsing and validation.
"""

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"


class LLMConfig(BaseSettings):
    """Configuration for a single LLM provider."""

    model_config = SettingsConfigDict(extra="ignore")

    provider: Literal["anthropic", "openai", "openrouter"] = "anthropic"
    model: str = DEFAULT_MODEL
    api_key: str = ""
    base_url: str | None = None
    max_tokens: int = 8192
    temperature: float = 1.0


class McpServerConfig(BaseModel):
    """Connection settings for one MCP server."""

    transport: Literal["stdio", "http"] = "stdio"
    command: str | None = None
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] | None = None
    url: str | None = None


class LogConsumerConfig(BaseModel):
    """One logging sink."""

    type: str
    level: str | None = None
    path: str | None = None


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # Application
    app_name: str = "micro-x-agent-loop"
    log_level: str = "INFO"
    log_consumers: list[LogConsumerConfig] = Field(default_factory=list)

    # LLM Providers (API Keys)
    anthropic_api_key: str = Field(default="", description="Anthropic API key for Claude")
    openai_api_key: str = Field(default="", description="OpenAI API key")
    openrouter_api_key: str = Field(default="", description="OpenRouter API key")

    # Model settings
    provider: Literal["anthropic", "openai", "openrouter"] = "anthropic"
    model: str = DEFAULT_MODEL
    max_tokens: int = Field(default=8192, gt=0)
    temperature: float = Field(default=1.0, ge=0.0, le=2.0)

    # Agent loop
    max_tool_result_chars: int = Field(default=40_000, ge=0, description="0 disables truncation")
    max_conversation_messages: int = Field(default=50, ge=0, description="0 disables trimming")

    # Compaction
    compaction_strategy: Literal["none", "summarize"] = "none"
    compaction_threshold_tokens: int = Field(default=80_000, ge=0)
    protected_tail_messages: int = Field(default=6, ge=0)

    # Tools
    working_directory: str | None = Field(default=None, description="Root for file and shell tools")
    google_client_id: str = Field(default="", description="Google OAuth client ID")
    google_client_secret: str = Field(default="", description="Google OAuth client secret")
    brave_api_key: str = Field(default="", description="Brave Search API key")
    mcp_servers: dict[str, McpServerConfig] = Field(default_factory=dict)

    @field_validator("compaction_strategy", mode="before")
    @classmethod
    def normalize_strategy(cls, v: str) -> str:
        return v.strip().lower() if isinstance(v, str) else v

    @property
    def google_enabled(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)

    def get_llm_config(self, provider: str | None = None) -> LLMConfig:
        """Get LLM configuration for a provider."""
        provider = provider or self.provider

        api_key_map = {
            "anthropic": self.anthropic_api_key,
            "openai": self.openai_api_key,
            "openrouter": self.openrouter_api_key,
        }

        base_url_map = {
            "anthropic": None,
            "openai": None,
            "openrouter": "https://openrouter.ai/api/v1",
        }

        return LLMConfig(
            provider=provider,  # type: ignore
            model=self.model,
            api_key=api_key_map.get(provider, ""),
            base_url=base_url_map.get(provider),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )

    def validate_for_run(self) -> list[str]:
        """Return a list of configuration problems that prevent a session."""
        problems = []

        if not self.get_llm_config().api_key:
            problems.append(f"{self.provider.upper()}_API_KEY environment variable is required.")

        for name, server in self.mcp_servers.items():
            if server.transport == "stdio" and not server.command:
                problems.append(f"MCP server '{name}': stdio transport requires 'command'.")
            if server.transport == "http" and not server.url:
                problems.append(f"MCP server '{name}': http transport requires 'url'.")

        return problems


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
