"""Configuration management for the vine feed layer."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Feed settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_prefix="VINE_", extra="ignore")

    # Funnelcake REST accelerator (empty base URL disables it)
    funnelcake_base_url: str = ""
    funnelcake_timeout_seconds: float = Field(default=15.0, gt=0)
    funnelcake_user_agent: str = "vine-feed/1.0"

    # Redis event cache
    redis_url: str = "redis://localhost:6379/0"
    cache_ttl_seconds: int = 3600
    cache_ttl_splay_max: int = 600  # randomized extra TTL

    # Feed assembly
    default_page_size: int = Field(default=5, ge=1, le=100)
    addressable_batch_size: int = Field(default=20, ge=1, le=100)
    popular_fetch_multiplier: int = Field(default=4, ge=1)
    rest_author_lookup_limit: int = Field(default=100, ge=1)

    # Environment
    env: str = Field(default="dev", pattern="^(dev|prod)$")
    log_level: str = "INFO"


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get cached settings instance (singleton pattern)."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
