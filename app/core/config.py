"""
Application configuration settings.
Loads from environment variables (and an optional .env file) with type checking.
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings
from typing import Optional, List


class Settings(BaseSettings):
    # Application Metadata
    PROJECT_TITLE: str = "Bookmarks API"
    PROJECT_DESCRIPTION: str = "Personal bookmark manager with live updates"
    PROJECT_VERSION: str = "1.0.0"
    API_PREFIX: str = "/api"
    ENVIRONMENT: str = "development"  # or 'testing', 'production'
    LOG_LEVEL: str = "INFO"

    # Database Configuration
    DATABASE_URL: str = "sqlite+aiosqlite:///./bookmarks.db"
    SQL_ECHO: bool = False
    FRONTEND_URL: str = "http://localhost:3000"

    # Authentication
    SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: Optional[str] = None
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    SESSION_EXPIRE_MINUTES: int = 7 * 24 * 60
    SESSION_COOKIE_NAME: str = "bookmarks_session"
    SESSION_COOKIE_SECURE: bool = True

    # OAuth Provider
    GOOGLE_CLIENT_ID: Optional[str] = None
    GOOGLE_CLIENT_SECRET: Optional[str] = None
    GOOGLE_AUTHORIZE_URL: str = "https://accounts.google.com/o/oauth2/v2/auth"
    GOOGLE_ACCESS_TOKEN_URL: str = "https://oauth2.googleapis.com/token"
    GOOGLE_USERINFO_URL: str = "https://openidconnect.googleapis.com/v1/userinfo"
    OAUTH_CALLBACK_PATH: str = "/auth/callback"

    # Change feed
    FEED_QUEUE_SIZE: int = 100

    # CORS, comma separated
    BACKEND_CORS_ORIGINS: str = "*"

    @field_validator("FEED_QUEUE_SIZE")
    @classmethod
    def validate_feed_queue_size(cls, v):
        if v < 1:
            raise ValueError("FEED_QUEUE_SIZE must be at least 1")
        return v

    @property
    def ASYNC_DATABASE_URL(self) -> str:
        """DATABASE_URL rewritten for an async driver"""
        url = str(self.DATABASE_URL)
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)
        if url.startswith("sqlite://"):
            return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return url

    @property
    def cors_origins(self) -> List[str]:
        return [item.strip() for item in self.BACKEND_CORS_ORIGINS.split(",") if item.strip()]

    @property
    def oauth_configured(self) -> bool:
        return bool(self.GOOGLE_CLIENT_ID and self.GOOGLE_CLIENT_SECRET)

    class Config:
        env_file = ".env"
        case_sensitive = True
        env_file_encoding = "utf-8"


settings = Settings()
