from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Logging Configuration
    LOG_LEVEL: str = "INFO"

    # Browser origins allowed to call the HTTP API
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # When enabled, join-room only subscribes members of the room
    ENFORCE_CHANNEL_MEMBERSHIP: bool = False

    # Server bind address for `python -m roomchat.main`
    HOST: str = "0.0.0.0"
    PORT: int = 5000


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


# Global settings instance
settings = get_settings()
