"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file and override existing env vars
load_dotenv(override=True)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Recovery agent (claude-agent-sdk)
    anthropic_api_key: str = Field(default="")
    agent_model: str = "sonnet"
    agent_max_turns: int = 20
    langsmith_tracing: bool = False

    # Retry policy
    max_attempts: int = Field(default=3, ge=1, le=10)
    auto_fix_confidence: Literal["high", "medium", "low"] = "high"

    # Deadlines (seconds)
    preflight_timeout_seconds: float = 2 * 60
    build_timeout_seconds: float = 30 * 60
    deploy_timeout_seconds: float = 10 * 60
    agent_timeout_seconds: float = 15 * 60

    # Container engine
    docker_binary: str = "docker"
    min_free_disk_mb: int = 1024
    monitor_delay_seconds: float = 5.0

    # Activity streaming
    sse_ping_seconds: int = 15

    # Debug dumps of failed attempts (disabled when unset)
    debug_dump_dir: str | None = None

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["console", "json"] = "console"
    log_directory: str = "logs"
    log_file_name: str = "shipyard.log"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"

    @property
    def agent_configured(self) -> bool:
        """Whether AI-assisted recovery can be offered."""
        return bool(self.anthropic_api_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
