"""Configuration schema using Pydantic."""

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DiscordConfig(BaseModel):
    """Discord channel configuration."""
    token: str = ""  # Bot token from Discord Developer Portal
    allow_guilds: list[str] = Field(default_factory=list)  # Allowed guild IDs (servers)
    allow_channels: list[str] = Field(default_factory=list)  # Allowed channel IDs
    typing_indicator: bool = True  # Show "typing" while processing


class RedisConfig(BaseModel):
    """Redis connection used for chat history."""
    url: str = "redis://localhost:6379"  # Use rediss:// for TLS
    tls_verify: bool = True  # Set false for hosted Redis with self-signed certs


class ProviderConfig(BaseModel):
    """LLM provider configuration."""
    api_key: str = ""
    api_base: str | None = None
    model: str = ""
    label: str = ""
    marker: str = ""  # Emoji reacted onto replies produced by this provider
    temperature: float = 0.7
    top_p: float = 1.0
    top_k: int | None = None  # Only sent to backends that accept it
    max_tokens: int = 2048


def _primary_defaults() -> ProviderConfig:
    return ProviderConfig(model="gpt-4o-mini", label="OpenAI", marker="🤖")


def _secondary_defaults() -> ProviderConfig:
    return ProviderConfig(
        model="gemini/gemini-2.0-flash",
        label="Gemini",
        marker="✨",
        temperature=0.9,
        top_p=0.95,
        top_k=40,
    )


class ProvidersConfig(BaseModel):
    """The two completion backends: primary (OpenAI) and secondary (LiteLLM)."""
    primary: ProviderConfig = Field(default_factory=_primary_defaults)
    secondary: ProviderConfig = Field(default_factory=_secondary_defaults)


DEFAULT_SYSTEM_PROMPT = "Discord Chat Bot"


class ChatConfig(BaseModel):
    """Conversation routing behaviour."""
    primary_prefixes: list[str] = Field(default_factory=lambda: ["cc", "小c"])
    secondary_prefixes: list[str] = Field(default_factory=lambda: ["yy", "小y"])
    session_timeout: float = 30.0  # Seconds of silence before a session ends
    session_sweep_interval: float = 5.0
    history_limit: int = 100  # Messages kept per user
    history_retention_days: int = 30
    confirm_timeout: float = 30.0
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    knowledge_path: str = "~/.ccbot/knowledge.json"
    max_retries: int = 3
    retry_base_delay: float = 1.0  # Seconds; doubled on every retry


class Config(BaseSettings):
    """Root configuration for ccbot."""
    model_config = SettingsConfigDict(env_prefix="CCBOT_", env_nested_delimiter="__")

    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)

    @property
    def knowledge_file(self) -> Path:
        """Get expanded knowledge base path."""
        return Path(self.chat.knowledge_path).expanduser()

    @property
    def history_retention_seconds(self) -> int:
        return int(self.chat.history_retention_days) * 24 * 60 * 60
