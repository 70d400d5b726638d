"""Configuration management using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server settings
    host: str = Field(default="0.0.0.0", description="Server bind host")
    port: int = Field(default=8080, description="Server port")
    log_level: str = Field(default="info", description="Logging level")
    log_format: Literal["auto", "json", "console"] = Field(
        default="auto",
        description="Log renderer; auto picks console on a TTY",
    )
    log_cache_loggers: bool = Field(
        default=True,
        description="Cache structlog loggers after first use",
    )

    # Catalog settings
    models_config_path: str = Field(
        default="models/config.json",
        description="Model table (JSON or YAML)",
    )
    providers_config_path: str = Field(
        default="providers/chat-completions.json",
        description="Provider table (JSON or YAML)",
    )
    config_auto_reload: bool = Field(
        default=False,
        description="Watch catalog files and swap in changes",
    )
    config_poll_interval: float = Field(
        default=2.0,
        description="Seconds between catalog file polls",
    )

    # Upstream settings
    upstream_timeout: float = Field(
        default=15.0,
        description="Timeout in seconds for a single upstream attempt",
    )
    primary_provider_strategy: Literal["first", "random"] = Field(
        default="first",
        description="How the first failover candidate is chosen",
    )
    provider_credentials: dict[str, str] = Field(
        default_factory=dict,
        description="Provider name to API key; falls back to env vars named after the provider",
    )

    # Image support
    assume_all_models_support_images: bool = Field(
        default=False,
        description="Skip the vision allow-list and accept image content for every model",
    )
    vision_models: list[str] = Field(
        default_factory=lambda: [
            "gpt-4-vision-preview",
            "gpt-4o-2024-08-06",
            "gemini-pro-vision",
        ],
        description="Provider-side model ids that accept image inputs",
    )

    # Caller authentication
    auth_enabled: bool = Field(default=True, description="Require a bearer API key")
    api_keys_dir: str = Field(
        default="keys",
        description="Directory holding <key>.json caller records",
    )

    @property
    def models_config_full_path(self) -> Path:
        """Get full path to the model table."""
        return Path(self.models_config_path).resolve()

    @property
    def providers_config_full_path(self) -> Path:
        """Get full path to the provider table."""
        return Path(self.providers_config_path).resolve()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
