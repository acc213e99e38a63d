"""Configuration management using pydantic-settings."""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful customer service assistant. "
    "Be concise, professional, and friendly."
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=7788, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")

    # Storage Configuration
    database_path: str = Field(default="./data/chatrelay.db", description="DuckDB database file")

    # AI Provider Configuration
    ai_api_url: str = Field(
        default="https://api.groq.com/openai/v1/chat/completions",
        description="Chat completions endpoint URL"
    )
    ai_api_key: Optional[str] = Field(default=None, description="Provider bearer credential")
    ai_model: str = Field(default="llama-3.1-70b-versatile", description="Completion model")
    ai_temperature: float = Field(default=0.7, description="Sampling temperature")
    ai_max_tokens: int = Field(default=1000, description="Maximum completion tokens")
    ai_system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT, description="Fixed system instruction")

    # Relay Configuration
    relay_timeout: float = Field(default=30.0, description="Upper bound for one provider call in seconds")
    relay_max_retries: int = Field(default=1, description="Extra relay attempts after an upstream failure")
    relay_retry_backoff: float = Field(default=0.5, description="Seconds to wait per retry attempt")

    # Session Configuration
    greeting_template: str = Field(
        default="Hello {name}! How can we help you today?",
        description="Company greeting appended after intake"
    )
    fallback_notice: str = Field(
        default="Sorry, I'm having trouble responding right now. Please try again in a moment.",
        description="Transient notice shown when the AI reply fails"
    )

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Log level")
    log_file: Optional[str] = Field(default="./logs/app.log", description="Log file path")

    def has_ai_credentials(self) -> bool:
        """Whether a provider credential is configured."""
        return bool(self.ai_api_key)


# Global settings instance
settings = Settings()
