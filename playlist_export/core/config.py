"""
Application configuration management using Pydantic Settings.
"""
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    APP_NAME: str = "Playlist Export"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    ENVIRONMENT: str = Field(default="development", pattern="^(development|staging|production|test)$")
    PORT: int = 8000

    # URLs
    BASE_URL: str = "http://localhost:8000"
    BACKEND_CORS_ORIGINS: List[str] = Field(default=["http://localhost:8000"])

    # Spotify OAuth
    SPOTIFY_CLIENT_ID: str = ""
    SPOTIFY_CLIENT_SECRET: str = ""
    SPOTIFY_REDIRECT_PATH: str = "/callback"
    SPOTIFY_SCOPES: str = "playlist-read-private playlist-read-collaborative"
    SPOTIFY_SHOW_DIALOG: bool = True

    # Spotify Web API
    SPOTIFY_API_BASE_URL: str = "https://api.spotify.com/v1"
    SPOTIFY_PAGE_SIZE: int = Field(default=50, ge=1, le=50)
    SPOTIFY_MAX_RETRIES: int = 3
    SPOTIFY_TIMEOUT_SECONDS: int = 30

    # Fetch pipeline
    FETCH_PLAYLIST_TRACKS: bool = True

    # Sessions
    SESSION_GRACE_PERIOD_SECONDS: float = 3600  # 1 hour

    # Sentry
    SENTRY_DSN: Optional[str] = None
    SENTRY_ENVIRONMENT: Optional[str] = None
    SENTRY_TRACES_SAMPLE_RATE: float = 0.1

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: str | List[str]) -> List[str]:
        if isinstance(v, str):
            return [i.strip() for i in v.split(",")]
        return v

    @property
    def spotify_redirect_uri(self) -> str:
        """Absolute callback URL registered with Spotify."""
        return f"{self.BASE_URL.rstrip('/')}{self.SPOTIFY_REDIRECT_PATH}"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.ENVIRONMENT == "development"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings
    """
    return Settings()


# Create a settings instance for easy import
settings = get_settings()
